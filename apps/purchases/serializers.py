from rest_framework import serializers


MONEY = {'max_digits': 10, 'decimal_places': 2}


# =============================================================================
# INPUT SERIALIZERS
# =============================================================================

class SelectCustomerInputSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()


class AddProductInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()


class RemoveLineInputSerializer(serializers.Serializer):
    """Remove by cart index; the last line when omitted."""
    index = serializers.IntegerField(required=False, allow_null=True, default=None, min_value=0)


class ConfirmInputSerializer(serializers.Serializer):
    """
    Checkout and undo run only when `confirmed` is true. Without it the
    response carries what would be confirmed.
    """
    confirmed = serializers.BooleanField(default=False)


class LimitCheckInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    child_id = serializers.UUIDField()
    is_final_check = serializers.BooleanField(default=False)


class EvaluationItemInputSerializer(serializers.Serializer):
    product_id = serializers.CharField(required=False, allow_null=True, default=None)
    name = serializers.CharField(required=False, allow_blank=True, default='')
    price = serializers.DecimalField(required=False, allow_null=True, default=None, **MONEY)
    effective_price = serializers.DecimalField(required=False, allow_null=True, default=None, **MONEY)
    quantity = serializers.IntegerField(required=False, default=1, min_value=1)


class EvaluatePurchaseInputSerializer(serializers.Serializer):
    has_customer = serializers.BooleanField(default=True)
    current_balance = serializers.DecimalField(**MONEY)
    items = EvaluationItemInputSerializer(many=True)
    max_overdraft = serializers.DecimalField(required=False, allow_null=True, default=None, **MONEY)

    def validate_max_overdraft(self, value):
        if value is not None and value > 0:
            raise serializers.ValidationError('The overdraft floor cannot be positive.')
        return value


class DepositInputSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    amount = serializers.DecimalField(**MONEY)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError('Deposit amount must be positive.')
        return value


class BalanceEditInputSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    new_balance = serializers.DecimalField(**MONEY)


# =============================================================================
# RESPONSE SERIALIZERS
# =============================================================================

class CustomerSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    institution_id = serializers.CharField(allow_null=True)
    balance = serializers.DecimalField(**MONEY)
    daily_spend_limit = serializers.DecimalField(allow_null=True, **MONEY)
    role = serializers.CharField()
    is_test_user = serializers.BooleanField()


class OrderLineSerializer(serializers.Serializer):
    product_id = serializers.CharField()
    name = serializers.CharField()
    display_name = serializers.CharField()
    emoji = serializers.CharField()
    price = serializers.DecimalField(**MONEY)
    unit_price = serializers.DecimalField(**MONEY)
    is_refill = serializers.BooleanField()


class ItemSummarySerializer(serializers.Serializer):
    product_id = serializers.CharField(allow_null=True)
    name = serializers.CharField()
    quantity = serializers.IntegerField()
    amount = serializers.DecimalField(**MONEY)


class EvaluationMessagesSerializer(serializers.Serializer):
    has_customer = serializers.BooleanField()
    has_items = serializers.BooleanField()
    overdraft_breached = serializers.BooleanField()
    available_until_limit = serializers.DecimalField(**MONEY)
    overdraft_limit = serializers.DecimalField(**MONEY)


class PurchaseEvaluationSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    total = serializers.DecimalField(**MONEY)
    new_balance = serializers.DecimalField(**MONEY)
    items_summary = ItemSummarySerializer(many=True)
    messages = EvaluationMessagesSerializer()


class SessionStateSerializer(serializers.Serializer):
    customer = CustomerSerializer(allow_null=True)
    order = OrderLineSerializer(many=True)
    order_total = serializers.DecimalField(**MONEY)
    max_items = serializers.IntegerField()
    evaluation = PurchaseEvaluationSerializer(allow_null=True)


class AddResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)
    line = OrderLineSerializer(allow_null=True)


class LimitDecisionSerializer(serializers.Serializer):
    allowed = serializers.BooleanField()
    message = serializers.CharField(allow_null=True)


class LimitSnapshotEntrySerializer(serializers.Serializer):
    effective_max_per_day = serializers.IntegerField(allow_null=True)
    todays_qty = serializers.IntegerField()
    limit_source = serializers.CharField(allow_null=True)
    refill_enabled = serializers.BooleanField()
    refill_price = serializers.DecimalField(allow_null=True, **MONEY)
    refill_time_limit_minutes = serializers.IntegerField()
    refill_max_refills = serializers.IntegerField()


class RefillEligibilitySerializer(serializers.Serializer):
    eligible = serializers.BooleanField()
    purchase_count = serializers.IntegerField()
    refills_used = serializers.IntegerField()
    last_purchase_time = serializers.DateTimeField(allow_null=True)
    expires_at = serializers.DateTimeField(allow_null=True)


class ProductLockStateSerializer(serializers.Serializer):
    locked = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    remaining = serializers.IntegerField(allow_null=True)
    refill_eligible = serializers.BooleanField()
    refill_price = serializers.DecimalField(allow_null=True, **MONEY)
    refill_expires_at = serializers.DateTimeField(allow_null=True)


class CheckoutSummarySerializer(serializers.Serializer):
    customer_id = serializers.CharField()
    customer_name = serializers.CharField()
    items_summary = ItemSummarySerializer(many=True)
    total = serializers.DecimalField(**MONEY)
    current_balance = serializers.DecimalField(**MONEY)
    new_balance = serializers.DecimalField(**MONEY)
    warning = serializers.CharField(allow_null=True)
    allergy_warning = serializers.CharField(allow_null=True)


class CheckoutResultSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    stage = serializers.SerializerMethodField()
    stages = serializers.SerializerMethodField()
    reason = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)
    warning = serializers.CharField(allow_null=True)
    sale_id = serializers.CharField(allow_null=True)
    new_balance = serializers.DecimalField(allow_null=True, **MONEY)
    available_until_limit = serializers.DecimalField(allow_null=True, **MONEY)
    summary = CheckoutSummarySerializer(allow_null=True)

    def get_stage(self, obj) -> str:
        return obj.stage.value

    def get_stages(self, obj) -> list:
        return [stage.value for stage in obj.stages]


class UndoOutcomeSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    message = serializers.CharField(allow_null=True)
    sale_id = serializers.CharField(allow_null=True)
    customer_id = serializers.CharField(allow_null=True)
    customer_name = serializers.CharField(allow_null=True)
    refunded_amount = serializers.DecimalField(allow_null=True, **MONEY)
    new_balance = serializers.DecimalField(allow_null=True, **MONEY)


class BalanceResponseSerializer(serializers.Serializer):
    user_id = serializers.CharField()
    balance = serializers.DecimalField(**MONEY)
