"""
Authentication dependencies for FastAPI.

This module reads the caller and the agency scope from the bearer token.
Every domain operation receives the agency id explicitly from the payload.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.
    
    Returns:
        Decoded token payload (sub, user_id, agency_id, role)
        
    Raises:
        AuthenticationError: 401 if the token is missing, invalid or incomplete
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")
    
    return payload
