"""
Payment schedule enumerations.
"""

import enum


class ScheduleStatus(str, enum.Enum):
    """Payment schedule line status, derived by the ledger."""
    PENDING = "pending"  # Nothing paid, not yet due
    PARTIAL = "partial"  # Part paid
    PAID = "paid"  # Fully paid
    OVERDUE = "overdue"  # Past due date and not settled


class PaymentType(str, enum.Enum):
    RENT = "rent"
    DEPOSIT = "deposit"
    UTILITIES = "utilities"
    FEES = "fees"
    OTHER = "other"


class ScheduleType(str, enum.Enum):
    AUTOMATED = "automated"  # Produced by the schedule generator
    MANUAL = "manual"  # Created or edited by staff


class PaymentOption(str, enum.Enum):
    """Rent payment cadence chosen by a tenancy member."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    MONTHLY_TO_QUARTERLY = "monthly_to_quarterly"
    UPFRONT = "upfront"
