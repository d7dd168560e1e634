"""
Purchases app services layer.

The café purchase engine: limits, today's sales, refills, cart, allergies,
evaluation, checkout and balance sync. Services take a CafeSession and/or
a CafeDataSource explicitly; ledger writes are atomic.
"""

from .exceptions import (
    CafeServiceError,
    DataSourceError,
    SaleCommitError,
    CustomerNotFoundError,
    InvalidAmountError,
)

from .records import (
    safe_decimal,
    ProductInfo,
    CustomerInfo,
    InstitutionSettings,
    SaleRow,
    SalesLookup,
    SugarPolicy,
    UnhealthySnapshot,
)

from .data_source import (
    CafeDataSource,
    OrmCafeDataSource,
    get_data_source,
    set_data_source,
    logged_call,
)

from .sales_cache import (
    TodaysSalesCache,
    get_todays_sales_for_child,
    invalidate_todays_sales_cache,
)

from .limit_resolver import (
    LimitDecision,
    LimitSnapshotEntry,
    can_purchase,
    get_child_product_limit_snapshot,
)

from .refill_eligibility import (
    RefillEligibility,
    get_refill_eligibility,
)

from .order_management import (
    OrderLine,
    AddResult,
    ChildLimitSnapshotStore,
    add_product_to_order,
    remove_product_from_order,
    clear_order,
    calculate_order_total,
)

from .purchase_evaluation import (
    PurchaseEvaluation,
    evaluate_purchase,
)

from .allergy_policy import (
    AllergyCheck,
    check_cart_allergies,
    evaluate_cart_allergy,
)

from .sugar_policy import (
    get_effective_sugar_policy,
    get_unhealthy_purchases_snapshot,
    evaluate_sugar_policy,
)

from .balance_sync import (
    BalanceChange,
    BalanceEventBus,
    DepositEventProcessor,
    get_balance_bus,
    handle_balance_event,
)

from .product_locks import (
    ProductLockState,
    LockRefreshCoordinator,
    compute_product_locks,
)

from .session import (
    CafeSession,
    get_cafe_session,
    reset_cafe_sessions,
)

from .checkout import (
    CheckoutStage,
    CheckoutResult,
    UndoOutcome,
    complete_purchase,
    undo_last_sale,
)


__all__ = [
    # Exceptions
    'CafeServiceError',
    'DataSourceError',
    'SaleCommitError',
    'CustomerNotFoundError',
    'InvalidAmountError',

    # Records
    'safe_decimal',
    'ProductInfo',
    'CustomerInfo',
    'InstitutionSettings',
    'SaleRow',
    'SalesLookup',
    'SugarPolicy',
    'UnhealthySnapshot',

    # Data source
    'CafeDataSource',
    'OrmCafeDataSource',
    'get_data_source',
    'set_data_source',
    'logged_call',

    # Today's sales
    'TodaysSalesCache',
    'get_todays_sales_for_child',
    'invalidate_todays_sales_cache',

    # Limits
    'LimitDecision',
    'LimitSnapshotEntry',
    'can_purchase',
    'get_child_product_limit_snapshot',

    # Refills
    'RefillEligibility',
    'get_refill_eligibility',

    # Cart
    'OrderLine',
    'AddResult',
    'ChildLimitSnapshotStore',
    'add_product_to_order',
    'remove_product_from_order',
    'clear_order',
    'calculate_order_total',

    # Evaluation
    'PurchaseEvaluation',
    'evaluate_purchase',

    # Allergies
    'AllergyCheck',
    'check_cart_allergies',
    'evaluate_cart_allergy',

    # Sugar policy
    'get_effective_sugar_policy',
    'get_unhealthy_purchases_snapshot',
    'evaluate_sugar_policy',

    # Balance sync
    'BalanceChange',
    'BalanceEventBus',
    'DepositEventProcessor',
    'get_balance_bus',
    'handle_balance_event',

    # Product locks
    'ProductLockState',
    'LockRefreshCoordinator',
    'compute_product_locks',

    # Session
    'CafeSession',
    'get_cafe_session',
    'reset_cafe_sessions',

    # Checkout
    'CheckoutStage',
    'CheckoutResult',
    'UndoOutcome',
    'complete_purchase',
    'undo_last_sale',
]
