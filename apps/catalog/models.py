# ==========================================
# apps/catalog/models.py
# ==========================================

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid


class Product(models.Model):
    """Café product sold to children of one institution."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        related_name='products'
    )
    name = models.CharField(max_length=100)
    emoji = models.CharField(max_length=200, blank=True)
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    max_per_day = models.PositiveIntegerField(null=True, blank=True)
    unhealthy = models.BooleanField(default=False)
    is_enabled = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    # Refill: discounted repeat purchase within a time window
    refill_enabled = models.BooleanField(default=False)
    refill_price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    refill_time_limit_minutes = models.PositiveIntegerField(
        default=0,
        help_text='0 means the rest of the day.'
    )
    refill_max_refills = models.PositiveIntegerField(
        default=0,
        help_text='0 means unlimited refills within the time window.'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'products'
        ordering = ['sort_order', 'name']
        indexes = [
            models.Index(fields=['institution', 'is_enabled'], name='products_inst_enabled_idx'),
        ]

    def __str__(self):
        return self.name


class ProductLimit(models.Model):
    """Institution-wide daily purchase cap for a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        related_name='product_limits'
    )
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='club_limits')
    max_per_day = models.PositiveIntegerField()

    class Meta:
        db_table = 'product_limits'
        unique_together = [['institution', 'product']]

    def __str__(self):
        return f"{self.product.name}: max {self.max_per_day}/day"


class ParentLimit(models.Model):
    """Per-child daily cap set by a guardian. 0 blocks the product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    child = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='parent_limits')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='parent_limits')
    parent_name = models.CharField(max_length=100, blank=True)
    max_per_day = models.PositiveIntegerField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'parent_limits'
        unique_together = [['child', 'product']]

    def __str__(self):
        return f"{self.child} / {self.product.name}: max {self.max_per_day}/day"


class ParentSugarPolicy(models.Model):
    """Guardian-configured limits on products flagged unhealthy."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    child = models.OneToOneField('accounts.User', on_delete=models.CASCADE, related_name='sugar_policy')
    block_unhealthy = models.BooleanField(default=False)
    max_unhealthy_per_day = models.PositiveIntegerField(null=True, blank=True)
    max_unhealthy_per_product_per_day = models.PositiveIntegerField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'parent_sugar_policies'
        verbose_name_plural = 'parent sugar policies'

    def __str__(self):
        return f"Sugar policy for {self.child}"


class Allergen(models.TextChoices):
    PEANUTS = 'peanuts', 'Peanuts'
    TREE_NUTS = 'tree_nuts', 'Tree nuts'
    MILK = 'milk', 'Milk'
    EGG = 'egg', 'Egg'
    GLUTEN = 'gluten', 'Gluten'
    FISH = 'fish', 'Fish'
    SHELLFISH = 'shellfish', 'Shellfish'
    SESAME = 'sesame', 'Sesame'
    SOY = 'soy', 'Soy'


class AllergenPolicy(models.TextChoices):
    ALLOW = 'allow', 'Allow'
    WARN = 'warn', 'Warn'
    BLOCK = 'block', 'Block'


class ProductAllergen(models.Model):
    """An allergen contained in a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='allergens')
    allergen = models.CharField(max_length=20, choices=Allergen.choices)

    class Meta:
        db_table = 'product_allergens'
        unique_together = [['product', 'allergen']]

    def __str__(self):
        return f"{self.product.name}: {self.get_allergen_display()}"


class ChildAllergenSetting(models.Model):
    """How checkout treats an allergen for one child."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    child = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='allergen_settings')
    institution = models.ForeignKey(
        'institutions.Institution',
        on_delete=models.CASCADE,
        related_name='allergen_settings'
    )
    allergen = models.CharField(max_length=20, choices=Allergen.choices)
    policy = models.CharField(max_length=10, choices=AllergenPolicy.choices, default=AllergenPolicy.ALLOW)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'child_allergen_settings'
        unique_together = [['child', 'allergen']]

    def __str__(self):
        return f"{self.child} / {self.allergen}: {self.policy}"
