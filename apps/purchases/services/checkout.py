"""
Checkout orchestration.

Runs the checkout of a café session as a linear sequence of stages:

    IDLE -> ALLERGY_CHECK -> SUGAR_POLICY_CHECK -> LIMIT_CHECK -> EVALUATE
         -> CONFIRM -> COMMIT -> SUCCESS | FAILURE

Business rejections come back as a CheckoutResult with a reason code and
a user-facing message; the cart and balance are untouched whenever the
result is not successful. There is no retry and nothing to roll back:
the ledger commit is the only write.
"""

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

import structlog
from django.conf import settings

from .allergy_policy import check_cart_allergies, describe_allergy_reasons
from .data_source import CafeDataSource
from .exceptions import CafeServiceError, DataSourceError
from .limit_resolver import can_purchase, todays_total_spend
from .order_management import OrderLine, clear_order
from .purchase_evaluation import ItemSummary, PurchaseEvaluation, evaluate_purchase
from .records import CommitLine, CustomerInfo, InstitutionSettings, safe_decimal
from .sales_cache import get_todays_sales_for_child, invalidate_todays_sales_cache
from .sugar_policy import evaluate_sugar_policy, get_effective_sugar_policy, get_unhealthy_purchases_snapshot


logger = structlog.get_logger(__name__)


class CheckoutStage(str, Enum):
    IDLE = 'idle'
    ALLERGY_CHECK = 'allergy_check'
    SUGAR_POLICY_CHECK = 'sugar_policy_check'
    LIMIT_CHECK = 'limit_check'
    EVALUATE = 'evaluate'
    CONFIRM = 'confirm'
    COMMIT = 'commit'
    SUCCESS = 'success'
    FAILURE = 'failure'


REASON_NO_CUSTOMER = 'no-customer'
REASON_EMPTY_CART = 'empty-cart'
REASON_IN_PROGRESS = 'in-progress'
REASON_ALLERGY_BLOCKED = 'allergy-blocked'
REASON_SUGAR_POLICY = 'sugar-policy'
REASON_PRODUCT_LIMIT = 'product-limit'
REASON_SPENDING_LIMIT = 'spending-limit'
REASON_OVERDRAFT = 'overdraft'
REASON_CANCELLED = 'cancelled'
REASON_REMOTE_ERROR = 'remote-error'

DEFAULT_SPENDING_LIMIT = Decimal('40.00')


@dataclass(frozen=True)
class CheckoutSummary:
    """What the operator is asked to confirm."""

    customer_id: str
    customer_name: str
    items_summary: List[ItemSummary]
    total: Decimal
    current_balance: Decimal
    new_balance: Decimal
    warning: Optional[str] = None
    allergy_warning: Optional[str] = None


@dataclass
class CheckoutResult:
    success: bool
    stage: CheckoutStage
    reason: Optional[str] = None
    message: Optional[str] = None
    stages: List[CheckoutStage] = field(default_factory=list)
    evaluation: Optional[PurchaseEvaluation] = None
    summary: Optional[CheckoutSummary] = None
    warning: Optional[str] = None
    sale_id: Optional[str] = None
    new_balance: Optional[Decimal] = None
    available_until_limit: Optional[Decimal] = None


@dataclass(frozen=True)
class UndoPrompt:
    institution_id: Optional[str]
    operator_name: str = ''


@dataclass(frozen=True)
class UndoOutcome:
    success: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    sale_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    refunded_amount: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None


def resolve_overdraft_limit(institution: Optional[InstitutionSettings]) -> Decimal:
    """The institution's balance floor, or FLANGO['OVERDRAFT_LIMIT'] when unset."""
    if institution is not None and institution.balance_limit_amount is not None:
        return safe_decimal(institution.balance_limit_amount)
    return safe_decimal(settings.FLANGO['OVERDRAFT_LIMIT'])


def balance_limit_applies(institution: Optional[InstitutionSettings], customer: CustomerInfo) -> bool:
    if institution is None:
        return True
    if not institution.balance_limit_enabled:
        return False
    if customer.is_admin and institution.balance_limit_exempt_admins:
        return False
    if customer.is_test_user and institution.balance_limit_exempt_test_users:
        return False
    return True


def spending_limit_applies(institution: Optional[InstitutionSettings], customer: CustomerInfo) -> bool:
    if institution is None or not institution.spending_limit_enabled:
        return False
    is_admin = customer.is_admin
    is_test_user = customer.is_test_user
    is_regular = not is_admin and not is_test_user
    return (
        (is_regular and institution.spending_limit_applies_to_regular_users)
        or (is_admin and institution.spending_limit_applies_to_admins)
        or (is_test_user and institution.spending_limit_applies_to_test_users)
    )


def group_order_lines(order: List[OrderLine], free: bool = False) -> List[CommitLine]:
    """Group the cart by (product, refill) for the ledger, keeping cart order."""
    grouped = {}
    for line in order:
        key = (line.product_id, line.is_refill)
        if key in grouped:
            grouped[key] = dataclasses.replace(grouped[key], quantity=grouped[key].quantity + 1)
        else:
            grouped[key] = CommitLine(
                product_id=line.product_id,
                quantity=1,
                price=Decimal('0.00') if free else line.unit_price,
                is_refill=line.is_refill,
                product_name=line.display_name,
            )
    return list(grouped.values())


def _operator_ids(operator):
    if operator is None:
        return None, '', None
    role = getattr(operator, 'role', None)
    name = operator.get_display_name() if hasattr(operator, 'get_display_name') else str(operator)
    if role == 'clerk':
        return None, name, str(operator.pk)
    return str(operator.pk), name, None


class _Run:
    def __init__(self):
        self.stages = [CheckoutStage.IDLE]

    def enter(self, stage: CheckoutStage):
        self.stages.append(stage)

    def fail(self, reason: str, message: str, **extra) -> CheckoutResult:
        stage = self.stages[-1]
        self.stages.append(CheckoutStage.FAILURE)
        logger.info("checkout_rejected", reason=reason, stage=stage.value)
        return CheckoutResult(
            success=False,
            stage=CheckoutStage.FAILURE,
            reason=reason,
            message=message,
            stages=list(self.stages),
            **extra
        )


def complete_purchase(
    session,
    *,
    confirm: Callable[[CheckoutSummary], bool],
    data_source: Optional[CafeDataSource] = None
) -> CheckoutResult:
    """
    Check out the session's cart for the selected customer.

    Args:
        session: CafeSession with the customer and cart
        confirm: Called with the CheckoutSummary; the sale is committed
            only when it returns True
        data_source: Overrides the session's data source

    Returns:
        CheckoutResult. On success the cart and customer are cleared, the
        caches invalidated and the new balance mirrored and broadcast.
    """
    run = _Run()
    data_source = data_source or session.data_source

    customer = session.get_current_customer()
    if customer is None:
        return run.fail(REASON_NO_CUSTOMER, 'Select a customer before completing the purchase.')
    order = list(session.order)
    if not order:
        return run.fail(REASON_EMPTY_CART, 'The order is empty.')
    if session.commit_in_progress:
        return run.fail(REASON_IN_PROGRESS, 'A purchase is already being completed.')

    product_ids = list(dict.fromkeys(line.product_id for line in order))
    try:
        products = {}
        for product_id in product_ids:
            product = data_source.get_product(product_id)
            if product is not None:
                products[product_id] = product
        institution = data_source.get_institution_settings(customer.institution_id) if customer.institution_id else None
    except DataSourceError as exc:
        return run.fail(REASON_REMOTE_ERROR, str(exc))

    # Allergies; a warning is shown with the confirmation summary
    run.enter(CheckoutStage.ALLERGY_CHECK)
    allergy = check_cart_allergies(customer, order, data_source=data_source)
    if allergy.blocked:
        return run.fail(
            REASON_ALLERGY_BLOCKED,
            f'{customer.name} may not buy these items because of registered allergies:\n'
            f'{describe_allergy_reasons(allergy.reasons)}',
        )
    allergy_warning = None
    if allergy.needs_warning:
        allergy_warning = (
            f'Registered allergy warnings for {customer.name}:\n'
            f'{describe_allergy_reasons(allergy.reasons)}'
        )

    # Sugar policy
    run.enter(CheckoutStage.SUGAR_POLICY_CHECK)
    if any(p.unhealthy for p in products.values()):
        try:
            policy = get_effective_sugar_policy(customer, data_source=data_source)
        except DataSourceError as exc:
            logger.warning("sugar_policy_lookup_failed", child_id=customer.id, error=str(exc))
            policy = None
        if policy is not None:
            unhealthy = get_unhealthy_purchases_snapshot(customer.id, data_source=data_source)
            violation = evaluate_sugar_policy(policy, unhealthy, order, products)
            if violation is not None:
                return run.fail(REASON_SUGAR_POLICY, violation.message)

    # Final per-product limit check; the cart is the purchase being verified
    run.enter(CheckoutStage.LIMIT_CHECK)
    names = {line.product_id: line.name for line in order}
    for product_id in product_ids:
        try:
            decision = can_purchase(
                product_id,
                customer.id,
                order,
                customer.institution_id,
                product_name_fallback=names[product_id],
                is_final_check=True,
                data_source=data_source,
            )
        except DataSourceError as exc:
            logger.warning("final_limit_check_skipped", product_id=product_id, error=str(exc))
            continue
        if not decision.allowed:
            return run.fail(REASON_PRODUCT_LIMIT, decision.message)

    # Evaluation
    run.enter(CheckoutStage.EVALUATE)
    free = bool(institution and institution.admins_purchase_free and customer.is_admin)
    items = [dataclasses.replace(line, effective_price=Decimal('0.00')) for line in order] if free else order
    overdraft_limit = resolve_overdraft_limit(institution)
    evaluation = evaluate_purchase(
        customer=customer,
        current_balance=customer.balance,
        order_items=items,
        products=products.values(),
        max_overdraft=overdraft_limit,
    )
    session.last_evaluation = evaluation
    total = evaluation.total
    current_balance = safe_decimal(customer.balance)

    if spending_limit_applies(institution, customer):
        lookup = get_todays_sales_for_child(customer.id, customer.institution_id, data_source=data_source)
        spent = todays_total_spend(lookup) if lookup.error is None else Decimal('0')
        limit = safe_decimal(institution.spending_limit_amount) or DEFAULT_SPENDING_LIMIT
        if spent + total > limit:
            remaining = max(Decimal('0'), limit - spent)
            return run.fail(
                REASON_SPENDING_LIMIT,
                f'Daily spending limit reached. Limit: {limit:.2f} kr. '
                f'Spent today: {spent:.2f} kr. Remaining: {remaining:.2f} kr.',
                evaluation=evaluation,
            )

    if balance_limit_applies(institution, customer) and evaluation.messages.overdraft_breached:
        available = evaluation.messages.available_until_limit
        return run.fail(
            REASON_OVERDRAFT,
            f'Not enough money on the account. {available:.2f} kr. left '
            f'before reaching the {overdraft_limit} kr. limit.',
            evaluation=evaluation,
            available_until_limit=available,
        )

    warning = None
    if evaluation.new_balance < 0:
        warning = f'The balance will be negative after this purchase ({evaluation.new_balance:.2f} kr.).'

    # Confirmation
    run.enter(CheckoutStage.CONFIRM)
    summary = CheckoutSummary(
        customer_id=customer.id,
        customer_name=customer.name,
        items_summary=evaluation.items_summary,
        total=total,
        current_balance=current_balance,
        new_balance=evaluation.new_balance,
        warning=warning,
        allergy_warning=allergy_warning,
    )
    if not confirm(summary):
        return run.fail(REASON_CANCELLED, 'The purchase was cancelled.', evaluation=evaluation, summary=summary)

    # Commit
    run.enter(CheckoutStage.COMMIT)
    session_admin_id, session_admin_name, clerk_id = _operator_ids(session.get_current_session_admin())
    session.commit_in_progress = True
    try:
        result = data_source.commit_sale(
            customer_id=customer.id,
            lines=group_order_lines(order, free=free),
            session_admin_id=session_admin_id,
            session_admin_name=session_admin_name,
            clerk_id=clerk_id,
        )
    except CafeServiceError as exc:
        logger.error("sale_commit_failed", customer_id=customer.id, error=str(exc))
        return run.fail(REASON_REMOTE_ERROR, str(exc), evaluation=evaluation, summary=summary)
    finally:
        session.commit_in_progress = False

    invalidate_todays_sales_cache()
    session.invalidate_caches()
    session.bus.update_customer_balance_globally(customer.id, result.new_balance, -result.total, source='purchase')
    clear_order(session.order)
    session.clear_current_customer()

    run.enter(CheckoutStage.SUCCESS)
    logger.info("checkout_completed", sale_id=result.sale_id, customer_id=customer.id, total=str(result.total))
    return CheckoutResult(
        success=True,
        stage=CheckoutStage.SUCCESS,
        stages=list(run.stages),
        evaluation=evaluation,
        summary=summary,
        warning=warning,
        sale_id=result.sale_id,
        new_balance=result.new_balance,
    )


def undo_last_sale(
    session,
    *,
    confirm: Callable[[UndoPrompt], bool],
    data_source: Optional[CafeDataSource] = None
) -> UndoOutcome:
    """
    Reverse the institution's most recent sale through the ledger.

    The refund is computed by the ledger; afterwards the customer's
    balance is re-read and the caches and cart are cleared.
    """
    data_source = data_source or session.data_source
    if session.commit_in_progress:
        return UndoOutcome(False, REASON_IN_PROGRESS, 'A purchase is being completed.')

    operator = session.get_current_session_admin()
    _, operator_name, _ = _operator_ids(operator)
    if not confirm(UndoPrompt(session.institution_id, operator_name)):
        return UndoOutcome(False, REASON_CANCELLED, 'Undo was cancelled.')

    try:
        result = data_source.undo_last_sale(
            institution_id=session.institution_id,
            performed_by_id=str(operator.pk) if operator is not None else None,
        )
    except CafeServiceError as exc:
        logger.warning("undo_last_sale_failed", institution_id=session.institution_id, error=str(exc))
        return UndoOutcome(False, REASON_REMOTE_ERROR, str(exc))

    invalidate_todays_sales_cache()
    session.invalidate_caches()
    try:
        new_balance = session.bus.refresh_customer_balance(result.customer_id, data_source=data_source)
    except CafeServiceError as exc:
        logger.warning("balance_refresh_failed", user_id=result.customer_id, error=str(exc))
        new_balance = result.new_balance
        session.bus.update_customer_balance_globally(
            result.customer_id, new_balance, result.refunded_amount, source='undo'
        )

    clear_order(session.order)
    session.on_order_changed()

    logger.info("sale_undone", sale_id=result.sale_id, customer_id=result.customer_id)
    return UndoOutcome(
        success=True,
        sale_id=result.sale_id,
        customer_id=result.customer_id,
        customer_name=result.customer_name,
        refunded_amount=result.refunded_amount,
        new_balance=new_balance,
    )
