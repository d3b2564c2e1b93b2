"""
Application and tenancy enumerations.
"""

import enum


class ApplicationStatus(str, enum.Enum):
    """Application status enumeration."""
    SUBMITTED = "submitted"  # Awaiting decision
    APPROVED = "approved"  # Approved, usually with a holding deposit
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class TenancyStatus(str, enum.Enum):
    """Tenancy status enumeration."""
    PENDING = "pending"  # Agreement being drafted/signed
    APPROVAL = "approval"  # All parties signed, schedule generated
    ACTIVE = "active"  # Tenants in occupation
    EXPIRED = "expired"
