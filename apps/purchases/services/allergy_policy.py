"""
Allergy policy.

Each child may have allergens marked `warn` or `block`. At checkout the
cart's product allergens are compared against that policy: any `block`
rejects the purchase, otherwise any `warn` has to be acknowledged when
the operator confirms.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

import structlog

from .data_source import CafeDataSource, get_data_source
from .exceptions import DataSourceError
from .records import CustomerInfo


logger = structlog.get_logger(__name__)

LEVEL_NONE = 'none'
LEVEL_WARN = 'warn'
LEVEL_BLOCK = 'block'

POLICY_ALLOW = 'allow'

ALLERGEN_NAMES = {
    'peanuts': 'peanuts',
    'tree_nuts': 'tree nuts',
    'milk': 'milk',
    'egg': 'egg',
    'gluten': 'gluten',
    'fish': 'fish',
    'shellfish': 'shellfish',
    'sesame': 'sesame',
    'soy': 'soy',
}


@dataclass(frozen=True)
class AllergyReason:
    allergen: str
    policy: str
    product_name: str


@dataclass(frozen=True)
class AllergyCheck:
    level: str = LEVEL_NONE
    reasons: List[AllergyReason] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.level == LEVEL_BLOCK

    @property
    def needs_warning(self) -> bool:
        return self.level == LEVEL_WARN


def allergen_display_name(key: str) -> str:
    return ALLERGEN_NAMES.get(key, key)


def evaluate_cart_allergy(
    order_lines: Iterable,
    allergens_by_product: Mapping[str, List[str]],
    policy: Mapping[str, str]
) -> AllergyCheck:
    """
    Compare the cart's allergens with the child's policy.

    Every cart line contributes a reason for each of its product's
    allergens that is not allowed. The level is `block` if any reason
    blocks, else `warn` if any warns, else `none`.
    """
    reasons = []
    for line in order_lines:
        for allergen in allergens_by_product.get(str(line.product_id), []):
            rule = policy.get(allergen)
            if not rule or rule == POLICY_ALLOW:
                continue
            reasons.append(AllergyReason(allergen, rule, line.name or 'Unknown item'))

    if any(reason.policy == LEVEL_BLOCK for reason in reasons):
        return AllergyCheck(LEVEL_BLOCK, reasons)
    if any(reason.policy == LEVEL_WARN for reason in reasons):
        return AllergyCheck(LEVEL_WARN, reasons)
    return AllergyCheck(LEVEL_NONE, reasons)


def describe_allergy_reasons(reasons: Iterable[AllergyReason]) -> str:
    """One line per allergen listing the cart products that contain it."""
    grouped: Dict[str, List[str]] = {}
    for reason in reasons:
        names = grouped.setdefault(allergen_display_name(reason.allergen), [])
        if reason.product_name not in names:
            names.append(reason.product_name)
    return '\n'.join(f'{allergen}: {", ".join(names)}' for allergen, names in grouped.items())


def check_cart_allergies(
    customer: Optional[CustomerInfo],
    order_lines: List,
    *,
    data_source: Optional[CafeDataSource] = None
) -> AllergyCheck:
    """
    Load the child's allergy policy and the cart's allergens and evaluate them.

    Lookup failures are logged and treated as no registered allergies.
    """
    if customer is None or not order_lines:
        return AllergyCheck()
    data_source = data_source or get_data_source()

    product_ids = list(dict.fromkeys(str(line.product_id) for line in order_lines if line.product_id))
    try:
        policy = data_source.get_allergy_policy(customer.id, customer.institution_id)
        if not policy:
            return AllergyCheck()
        allergens = data_source.list_product_allergens(product_ids)
    except DataSourceError as exc:
        logger.warning("allergy_policy_lookup_failed", child_id=customer.id, error=str(exc))
        return AllergyCheck()

    return evaluate_cart_allergy(order_lines, allergens, policy)
