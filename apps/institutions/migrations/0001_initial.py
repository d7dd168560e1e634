# Generated manually for the institutions app

import uuid
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Institution',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200)),
                ('balance_limit_enabled', models.BooleanField(default=True)),
                ('balance_limit_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Most negative balance a checkout may produce. Empty means the global default.', max_digits=10, null=True)),
                ('balance_limit_exempt_admins', models.BooleanField(default=False)),
                ('balance_limit_exempt_test_users', models.BooleanField(default=False)),
                ('spending_limit_enabled', models.BooleanField(default=False)),
                ('spending_limit_amount', models.DecimalField(decimal_places=2, default=Decimal('40.00'), max_digits=10)),
                ('spending_limit_applies_to_regular_users', models.BooleanField(default=True)),
                ('spending_limit_applies_to_admins', models.BooleanField(default=False)),
                ('spending_limit_applies_to_test_users', models.BooleanField(default=False)),
                ('sugar_policy_enabled', models.BooleanField(default=False)),
                ('sugar_policy_max_unhealthy_enabled', models.BooleanField(default=False)),
                ('sugar_policy_max_unhealthy_per_day', models.PositiveIntegerField(default=2)),
                ('sugar_policy_max_per_product_enabled', models.BooleanField(default=True)),
                ('sugar_policy_max_per_product_per_day', models.PositiveIntegerField(default=1)),
                ('admins_purchase_free', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'institutions',
                'ordering': ['name'],
            },
        ),
    ]
