"""
Holding deposit enumerations.
"""

import enum


class DepositStatus(str, enum.Enum):
    """Holding deposit lifecycle states."""
    AWAITING_PAYMENT = "awaiting_payment"  # Created with the application, not yet paid
    HELD = "held"  # Paid; may be reserving a bedroom
    APPLIED_TO_RENT = "applied_to_rent"  # Consumed against first rent
    APPLIED_TO_DEPOSIT = "applied_to_deposit"  # Consumed against security deposit
    REFUNDED = "refunded"
    FORFEITED = "forfeited"
