from django.db import models
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import uuid


class BalanceEventType(models.TextChoices):
    DEPOSIT = 'DEPOSIT', 'Deposit'
    BALANCE_ADJUSTMENT = 'BALANCE_ADJUSTMENT', 'Balance adjustment'
    SALE = 'SALE', 'Sale'
    SALE_UNDO = 'SALE_UNDO', 'Sale undo'


class Sale(models.Model):
    """Completed café sale. Undone sales keep their row with undone_at set."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='sales'
    )
    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        related_name='sales'
    )

    # Operator context
    session_admin = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_supervised'
    )
    session_admin_name = models.CharField(max_length=100, blank=True)
    clerk = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_rung_up'
    )

    total_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    created_at = models.DateTimeField(default=timezone.now)
    undone_at = models.DateTimeField(null=True, blank=True)
    undone_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_undone'
    )

    class Meta:
        db_table = 'sales'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='sales_customer_created_idx'),
            models.Index(fields=['institution', 'created_at'], name='sales_inst_created_idx'),
        ]

    def __str__(self):
        return f"Sale {self.total_amount} to {self.customer}"

    @property
    def is_undone(self):
        return self.undone_at is not None


class SaleItem(models.Model):
    """One grouped cart line of a sale: a product, refill or not, and its count."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name='items'
    )
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sale_items'
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_at_purchase = models.DecimalField(max_digits=8, decimal_places=2)
    is_refill = models.BooleanField(default=False)
    product_name_at_purchase = models.CharField(max_length=120)

    class Meta:
        db_table = 'sale_items'

    def __str__(self):
        return f"{self.quantity} x {self.product_name_at_purchase}"


class BalanceEvent(models.Model):
    """Balance mutation written by the ledger; source of realtime balance sync."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        related_name='balance_events'
    )
    target_user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='balance_events'
    )
    event_type = models.CharField(max_length=20, choices=BalanceEventType.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    balance_after = models.DecimalField(max_digits=10, decimal_places=2)
    source = models.CharField(max_length=30, blank=True)
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='balance_events_created'
    )
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'balance_events'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['target_user', 'created_at'], name='balance_events_user_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} {self.amount} for {self.target_user}"
