# Generated manually for the catalog app

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


ALLERGEN_CHOICES = [
    ('peanuts', 'Peanuts'),
    ('tree_nuts', 'Tree nuts'),
    ('milk', 'Milk'),
    ('egg', 'Egg'),
    ('gluten', 'Gluten'),
    ('fish', 'Fish'),
    ('shellfish', 'Shellfish'),
    ('sesame', 'Sesame'),
    ('soy', 'Soy'),
]


class Migration(migrations.Migration):

    dependencies = [
        ('catalog', '0001_initial'),
        ('institutions', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ProductAllergen',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('allergen', models.CharField(choices=ALLERGEN_CHOICES, max_length=20)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allergens', to='catalog.product')),
            ],
            options={
                'db_table': 'product_allergens',
                'unique_together': {('product', 'allergen')},
            },
        ),
        migrations.CreateModel(
            name='ChildAllergenSetting',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('allergen', models.CharField(choices=ALLERGEN_CHOICES, max_length=20)),
                ('policy', models.CharField(choices=[('allow', 'Allow'), ('warn', 'Warn'), ('block', 'Block')], default='allow', max_length=10)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allergen_settings', to=settings.AUTH_USER_MODEL)),
                ('institution', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allergen_settings', to='institutions.institution')),
            ],
            options={
                'db_table': 'child_allergen_settings',
                'unique_together': {('child', 'allergen')},
            },
        ),
    ]
