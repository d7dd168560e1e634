"""
Purchases App - Café Purchase Engine

This app decides, for a selected child and cart, which products may be
added, at which effective price (refills), and whether a checkout is
admissible against the institution's overdraft floor.

Key Features:
- Daily purchase caps (institution default, parent override)
- Refill pricing within a time window
- Sugar policy enforcement
- Overdraft and spending limit gates at checkout
- Per-operator café session (customer, cart, evaluation)
- Realtime balance sync with deposit retry

Architecture:
- Models: Sale, SaleItem, BalanceEvent (ledger of record)
- Services: limit resolver, sales cache, refill eligibility, order
  management, purchase evaluation, checkout, balance sync, product locks
- Views: session-scoped API under /api/cafe/
"""

__version__ = '1.0.0'
