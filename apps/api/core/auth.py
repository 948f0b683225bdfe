"""
Authentication dependencies.

Users live in the identity provider, not in this database, so the current
user is whatever the verified bearer token says it is.
"""
from dataclasses import dataclass
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from core.exceptions import UnauthorizedError
from core.security import decode_access_token

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    Get the current authenticated user from JWT token.

    Raises UnauthorizedError if the token is missing, invalid or expired.
    """
    # Check if credentials are missing (return 401, not 403)
    if not credentials:
        raise UnauthorizedError("Missing authorization token")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    return AuthenticatedUser(id=str(user_id), email=payload.get("email"))
