# Generated manually for the catalog app

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('institutions', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100)),
                ('emoji', models.CharField(blank=True, max_length=200)),
                ('price', models.DecimalField(decimal_places=2, max_digits=8, validators=[MinValueValidator(Decimal('0.00'))])),
                ('max_per_day', models.PositiveIntegerField(blank=True, null=True)),
                ('unhealthy', models.BooleanField(default=False)),
                ('is_enabled', models.BooleanField(default=True)),
                ('sort_order', models.PositiveIntegerField(default=0)),
                ('refill_enabled', models.BooleanField(default=False)),
                ('refill_price', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True, validators=[MinValueValidator(Decimal('0.00'))])),
                ('refill_time_limit_minutes', models.PositiveIntegerField(default=0, help_text='0 means the rest of the day.')),
                ('refill_max_refills', models.PositiveIntegerField(default=0, help_text='0 means unlimited refills within the time window.')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('institution', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='products', to='institutions.institution')),
            ],
            options={
                'db_table': 'products',
                'ordering': ['sort_order', 'name'],
                'indexes': [models.Index(fields=['institution', 'is_enabled'], name='products_inst_enabled_idx')],
            },
        ),
        migrations.CreateModel(
            name='ProductLimit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('max_per_day', models.PositiveIntegerField()),
                ('institution', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='product_limits', to='institutions.institution')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='club_limits', to='catalog.product')),
            ],
            options={
                'db_table': 'product_limits',
                'unique_together': {('institution', 'product')},
            },
        ),
        migrations.CreateModel(
            name='ParentLimit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('parent_name', models.CharField(blank=True, max_length=100)),
                ('max_per_day', models.PositiveIntegerField()),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='parent_limits', to=settings.AUTH_USER_MODEL)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='parent_limits', to='catalog.product')),
            ],
            options={
                'db_table': 'parent_limits',
                'unique_together': {('child', 'product')},
            },
        ),
        migrations.CreateModel(
            name='ParentSugarPolicy',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('block_unhealthy', models.BooleanField(default=False)),
                ('max_unhealthy_per_day', models.PositiveIntegerField(blank=True, null=True)),
                ('max_unhealthy_per_product_per_day', models.PositiveIntegerField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('child', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='sugar_policy', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'parent_sugar_policies',
                'verbose_name_plural': 'parent sugar policies',
            },
        ),
    ]
