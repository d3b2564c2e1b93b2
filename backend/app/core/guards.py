"""
Security guards for role-based access control.
"""

from typing import List
from fastapi import Depends
from backend.app.core.exceptions import InsufficientPermissionsError
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.post("/holding-deposits")
        async def create(current_user: dict = Depends(require_role(STAFF_ROLES))):
            ...
    
    Raises:
        InsufficientPermissionsError (403) if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        try:
            user_role = UserRole(current_user.get("role"))
        except ValueError:
            raise InsufficientPermissionsError("Invalid role in token")

        if user_role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}",
                details={"role": current_user.get("role")},
            )
        
        return current_user
    
    return role_checker


STAFF_ROLES = [UserRole.ADMIN, UserRole.AGENT]

require_staff = require_role(STAFF_ROLES)
require_admin = require_role([UserRole.ADMIN])
