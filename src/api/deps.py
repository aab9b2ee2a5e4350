"""FastAPI dependencies for authentication."""

import logging
from typing import Annotated, Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.core.exceptions import AuthenticationError
from src.db.supabase import SupabaseClient

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Any:
    """Validate the bearer token against Supabase auth.

    Args:
        credentials: HTTP Bearer token credentials.

    Returns:
        The Supabase user object.

    Raises:
        AuthenticationError: If no token is supplied or it does not resolve
            to a user.
    """
    if credentials is None:
        logger.warning("AUTH: No credentials provided in request")
        raise AuthenticationError()

    try:
        client = SupabaseClient.get_client()
        response = client.auth.get_user(credentials.credentials)
    except Exception as e:
        logger.warning("AUTH: Token validation failed: %s", e)
        raise AuthenticationError() from e

    if response is None or response.user is None:
        logger.warning("AUTH: Token validation returned no user")
        raise AuthenticationError()

    return response.user


CurrentUser = Annotated[Any, Depends(get_current_user)]
