# ==========================================
# apps/institutions/models.py
# ==========================================

from decimal import Decimal
from django.db import models
import uuid


class Institution(models.Model):
    """A school/club (SFO) operating one café instance."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)

    # Balance floor (overdraft limit)
    balance_limit_enabled = models.BooleanField(default=True)
    balance_limit_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True,
        help_text='Most negative balance a checkout may produce. Empty means the global default.'
    )
    balance_limit_exempt_admins = models.BooleanField(default=False)
    balance_limit_exempt_test_users = models.BooleanField(default=False)

    # Daily spending limit (institution-wide)
    spending_limit_enabled = models.BooleanField(default=False)
    spending_limit_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('40.00')
    )
    spending_limit_applies_to_regular_users = models.BooleanField(default=True)
    spending_limit_applies_to_admins = models.BooleanField(default=False)
    spending_limit_applies_to_test_users = models.BooleanField(default=False)

    # Sugar policy
    sugar_policy_enabled = models.BooleanField(default=False)
    sugar_policy_max_unhealthy_enabled = models.BooleanField(default=False)
    sugar_policy_max_unhealthy_per_day = models.PositiveIntegerField(default=2)
    sugar_policy_max_per_product_enabled = models.BooleanField(default=True)
    sugar_policy_max_per_product_per_day = models.PositiveIntegerField(default=1)

    admins_purchase_free = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'institutions'
        ordering = ['name']

    def __str__(self):
        return self.name
