"""
API Dependencies

FastAPI dependency injection for authentication and the service container.

Security: Firebase ID tokens are verified cryptographically (RS256 against
Google's JWKS, HS256 with AUTH_JWT_SECRET for local development). Never
decode without verification.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from aura.domain.accounts import Identity
from aura.domain.models import UserProfile
from aura.infrastructure.exceptions import AuthError
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    """Return the container built in the application lifespan."""
    return request.app.state.services


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> Identity:
    """
    Verify the bearer token and return the caller's identity.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return services.tokens.verify(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    identity: Identity = Depends(get_identity),
    services: ServiceContainer = Depends(get_services),
) -> UserProfile:
    """Load the caller's profile, creating it on first sign-in."""
    user = await services.store.get(identity.uid)
    if user is None:
        user = await services.accounts.initialize_user(identity)
    return user
