# Users Feature - Dependencies

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.features.users.models import User
from app.features.users.service import UserService
from app.core.security import decode_token
from app.core.logging import logger
from app.shared.exceptions import CredentialsException


# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """
    Dependency to get current authenticated user.

    Tokens are issued by the main CalmTunes application; the user id is
    stored in the "sub" claim.

    Args:
        credentials: HTTP Bearer credentials

    Returns:
        User: Current authenticated user

    Raises:
        CredentialsException: If credentials are invalid
    """
    token = credentials.credentials

    # Decode token
    payload = decode_token(token)
    if payload is None:
        logger.warning("Failed to decode access token")
        raise CredentialsException("Invalid authentication credentials")

    user_id = payload.get("sub")
    if user_id is None:
        raise CredentialsException("Invalid authentication credentials")

    # Get user from database
    user = await UserService.get_user(user_id)
    if user is None:
        raise CredentialsException("User not found")

    if not user.is_active:
        logger.warning(f"Inactive user attempted access: {user_id}")
        raise CredentialsException("Your account has been deactivated")

    return user
