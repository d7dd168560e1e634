from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from apps.accounts.permissions import IsCafeOperator, IsInstitutionAdmin
from .exceptions import (
    InvalidAmountAPIError,
    LedgerUnavailableError,
    CustomerNotInInstitutionError,
)
from .permissions import get_customer_in_institution, get_product_in_institution
from .serializers import (
    SelectCustomerInputSerializer,
    AddProductInputSerializer,
    RemoveLineInputSerializer,
    ConfirmInputSerializer,
    LimitCheckInputSerializer,
    EvaluatePurchaseInputSerializer,
    DepositInputSerializer,
    BalanceEditInputSerializer,
    SessionStateSerializer,
    AddResultSerializer,
    OrderLineSerializer,
    LimitDecisionSerializer,
    LimitSnapshotEntrySerializer,
    RefillEligibilitySerializer,
    ProductLockStateSerializer,
    PurchaseEvaluationSerializer,
    CheckoutResultSerializer,
    UndoOutcomeSerializer,
    BalanceResponseSerializer,
)
from .services import (
    CustomerNotFoundError,
    DataSourceError,
    InvalidAmountError,
    add_product_to_order,
    calculate_order_total,
    can_purchase,
    complete_purchase,
    evaluate_purchase,
    get_cafe_session,
    get_child_product_limit_snapshot,
    get_refill_eligibility,
    remove_product_from_order,
    undo_last_sale,
)
from .services.checkout import (
    REASON_CANCELLED,
    REASON_IN_PROGRESS,
    REASON_REMOTE_ERROR,
    resolve_overdraft_limit,
)


CHECKOUT_STATUS = {
    REASON_CANCELLED: status.HTTP_200_OK,
    REASON_IN_PROGRESS: status.HTTP_409_CONFLICT,
    REASON_REMOTE_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def _session_state(session):
    """Current customer, cart and a fresh evaluation of the cart."""
    customer = session.get_current_customer()
    evaluation = session.last_evaluation
    if evaluation is None and customer is not None:
        try:
            institution = session.data_source.get_institution_settings(customer.institution_id)
        except DataSourceError as exc:
            raise LedgerUnavailableError(str(exc))
        evaluation = evaluate_purchase(
            customer=customer,
            current_balance=customer.balance,
            order_items=session.order,
            max_overdraft=resolve_overdraft_limit(institution),
        )
        session.last_evaluation = evaluation
    return SessionStateSerializer({
        'customer': customer,
        'order': session.order,
        'order_total': calculate_order_total(session.order),
        'max_items': settings.FLANGO['MAX_ITEMS_PER_ORDER'],
        'evaluation': evaluation,
    }).data


# =============================================================================
# SESSION
# =============================================================================

@extend_schema(responses=SessionStateSerializer)
@api_view(['GET'])
@permission_classes([IsCafeOperator])
def session_state(request):
    """
    Get the operator's café session.

    GET /api/cafe/session/
    """
    session = get_cafe_session(request.user)
    with session.mutex:
        return Response(_session_state(session))


@extend_schema(request=SelectCustomerInputSerializer, responses=SessionStateSerializer)
@api_view(['POST', 'DELETE'])
@permission_classes([IsCafeOperator])
def session_customer(request):
    """
    Select or clear the current customer.

    POST   /api/cafe/session/customer/   {"customer_id": "<uuid>"}
    DELETE /api/cafe/session/customer/
    """
    session = get_cafe_session(request.user)
    with session.mutex:
        if request.method == 'DELETE':
            session.clear_current_customer()
            return Response(_session_state(session))

        serializer = SelectCustomerInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session.select_customer(serializer.validated_data['customer_id'])
        except CustomerNotFoundError:
            raise CustomerNotInInstitutionError()
        return Response(_session_state(session))


@extend_schema(request=AddProductInputSerializer, responses=AddResultSerializer)
@api_view(['POST', 'DELETE'])
@permission_classes([IsCafeOperator])
def session_order(request):
    """
    Add one unit of a product to the cart, or remove a line.

    POST   /api/cafe/session/order/   {"product_id": "<uuid>"}
    DELETE /api/cafe/session/order/   {"index": 2}  (last line when omitted)
    """
    session = get_cafe_session(request.user)
    with session.mutex:
        if request.method == 'DELETE':
            serializer = RemoveLineInputSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            removed = remove_product_from_order(
                session.order,
                serializer.validated_data['index'],
                session=session,
            )
            if removed is None:
                return Response(
                    {'detail': 'Nothing to remove at that position.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            return Response({
                'removed': OrderLineSerializer(removed).data,
                'session': _session_state(session),
            })

        serializer = AddProductInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = get_product_in_institution(session, serializer.validated_data['product_id'])

        result = add_product_to_order(session.order, product, session=session)
        return Response(
            AddResultSerializer(result).data,
            status=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
        )


@extend_schema(responses=ProductLockStateSerializer(many=True))
@api_view(['GET'])
@permission_classes([IsCafeOperator])
def session_locks(request):
    """
    Lock state of every product for the current customer and cart.

    GET /api/cafe/session/locks/
    """
    session = get_cafe_session(request.user)
    with session.mutex:
        states = session.locks.current()
        return Response({
            product_id: ProductLockStateSerializer(state).data
            for product_id, state in states.items()
        })


@extend_schema(request=ConfirmInputSerializer, responses=CheckoutResultSerializer)
@api_view(['POST'])
@permission_classes([IsCafeOperator])
def session_checkout(request):
    """
    Complete the purchase for the current customer.

    POST /api/cafe/session/checkout/   {"confirmed": true}

    Without `confirmed` the checkout stops at the confirmation step and
    returns the summary to show the operator.
    """
    serializer = ConfirmInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    confirmed = serializer.validated_data['confirmed']

    session = get_cafe_session(request.user)
    with session.mutex:
        result = complete_purchase(session, confirm=lambda summary: confirmed)

    if result.success:
        response_status = status.HTTP_201_CREATED
    else:
        response_status = CHECKOUT_STATUS.get(result.reason, status.HTTP_400_BAD_REQUEST)
    return Response(CheckoutResultSerializer(result).data, status=response_status)


@extend_schema(request=ConfirmInputSerializer, responses=UndoOutcomeSerializer)
@api_view(['POST'])
@permission_classes([IsInstitutionAdmin])
def session_undo_last_sale(request):
    """
    Undo the institution's most recent sale.

    POST /api/cafe/session/undo-last-sale/   {"confirmed": true}
    """
    serializer = ConfirmInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    confirmed = serializer.validated_data['confirmed']

    session = get_cafe_session(request.user)
    with session.mutex:
        outcome = undo_last_sale(session, confirm=lambda prompt: confirmed)

    if outcome.success:
        response_status = status.HTTP_200_OK
    else:
        response_status = CHECKOUT_STATUS.get(outcome.reason, status.HTTP_400_BAD_REQUEST)
    return Response(UndoOutcomeSerializer(outcome).data, status=response_status)


# =============================================================================
# LIMITS AND REFILLS
# =============================================================================

@extend_schema(request=LimitCheckInputSerializer, responses=LimitDecisionSerializer)
@api_view(['POST'])
@permission_classes([IsCafeOperator])
def limits_check(request):
    """
    Check whether a child may buy one more unit of a product.

    POST /api/cafe/limits/check/   {"product_id": ..., "child_id": ...}

    The session cart is counted when the child is the selected customer.
    """
    serializer = LimitCheckInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    session = get_cafe_session(request.user)
    with session.mutex:
        child = get_customer_in_institution(session, params['child_id'])
        product = get_product_in_institution(session, params['product_id'])
        current = session.get_current_customer()
        order = list(session.order) if current is not None and current.id == child.id else []
        try:
            decision = can_purchase(
                product.id,
                child.id,
                order,
                child.institution_id,
                is_final_check=params['is_final_check'],
                data_source=session.data_source,
            )
        except DataSourceError as exc:
            raise LedgerUnavailableError(str(exc))
    return Response(LimitDecisionSerializer(decision).data)


@extend_schema(responses=LimitSnapshotEntrySerializer(many=True))
@api_view(['GET'])
@permission_classes([IsCafeOperator])
def child_limits(request, child_id):
    """
    Limit snapshot for every product of the institution.

    GET /api/cafe/children/{child_id}/limits/
    """
    session = get_cafe_session(request.user)
    child = get_customer_in_institution(session, child_id)
    snapshot = get_child_product_limit_snapshot(child.id, child.institution_id, data_source=session.data_source)
    return Response({
        product_id: LimitSnapshotEntrySerializer(entry).data
        for product_id, entry in snapshot.items()
    })


@extend_schema(responses=RefillEligibilitySerializer)
@api_view(['GET'])
@permission_classes([IsCafeOperator])
def child_refill(request, child_id, product_id):
    """
    Refill eligibility of a child for a product.

    GET /api/cafe/children/{child_id}/refill/{product_id}/
    """
    session = get_cafe_session(request.user)
    child = get_customer_in_institution(session, child_id)
    product = get_product_in_institution(session, product_id)
    eligibility = get_refill_eligibility(
        child.id, product.id, product, child.institution_id, data_source=session.data_source
    )
    return Response(RefillEligibilitySerializer(eligibility).data)


# =============================================================================
# EVALUATION AND LEDGER
# =============================================================================

@extend_schema(request=EvaluatePurchaseInputSerializer, responses=PurchaseEvaluationSerializer)
@api_view(['POST'])
@permission_classes([IsCafeOperator])
def evaluate(request):
    """
    Evaluate a cart against a balance without touching any state.

    POST /api/cafe/evaluate/
    """
    serializer = EvaluatePurchaseInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    max_overdraft = params['max_overdraft']
    if max_overdraft is None:
        session = get_cafe_session(request.user)
        max_overdraft = resolve_overdraft_limit(
            session.data_source.get_institution_settings(session.institution_id)
        )

    evaluation = evaluate_purchase(
        customer=request.user if params['has_customer'] else None,
        current_balance=params['current_balance'],
        order_items=params['items'],
        max_overdraft=max_overdraft,
    )
    return Response(PurchaseEvaluationSerializer(evaluation).data)


@extend_schema(request=DepositInputSerializer, responses=BalanceResponseSerializer)
@api_view(['POST'])
@permission_classes([IsInstitutionAdmin])
def deposits(request):
    """
    Deposit money on a customer's balance.

    POST /api/cafe/deposits/   {"user_id": ..., "amount": "50.00"}
    """
    serializer = DepositInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    session = get_cafe_session(request.user)
    customer = get_customer_in_institution(session, params['user_id'])
    try:
        balance = session.data_source.deposit(
            user_id=customer.id,
            amount=params['amount'],
            performed_by_id=str(request.user.pk),
        )
    except InvalidAmountError as exc:
        raise InvalidAmountAPIError(str(exc))
    except DataSourceError as exc:
        raise LedgerUnavailableError(str(exc))

    return Response(
        BalanceResponseSerializer({'user_id': customer.id, 'balance': balance}).data,
        status=status.HTTP_201_CREATED
    )


@extend_schema(request=BalanceEditInputSerializer, responses=BalanceResponseSerializer)
@api_view(['POST'])
@permission_classes([IsInstitutionAdmin])
def balance(request):
    """
    Set a customer's balance directly.

    POST /api/cafe/balance/   {"user_id": ..., "new_balance": "12.50"}
    """
    serializer = BalanceEditInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    params = serializer.validated_data

    session = get_cafe_session(request.user)
    customer = get_customer_in_institution(session, params['user_id'])
    try:
        new_balance = session.data_source.edit_balance(
            user_id=customer.id,
            new_balance=params['new_balance'],
            performed_by_id=str(request.user.pk),
        )
    except InvalidAmountError as exc:
        raise InvalidAmountAPIError(str(exc))
    except DataSourceError as exc:
        raise LedgerUnavailableError(str(exc))

    return Response(BalanceResponseSerializer({'user_id': customer.id, 'balance': new_balance}).data)
