"""
Shared enumerations.

Status values are stored as their lowercase string values.
"""

import enum
from sqlalchemy import Enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        ADMIN: Agency administrator, may run maintenance operations
        AGENT: Letting agent handling applications, deposits and payments
        TENANT: Tenant or applicant (read-only access to own records)
    """
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    TENANT = "TENANT"


def value_enum(enum_cls, length: int = 30) -> Enum:
    """Column type persisting an enum by value rather than by member name."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=length,
        validate_strings=True,
    )
