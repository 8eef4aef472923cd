"""
Auth Routes

Email/password and Google sign-in proxied to Firebase Auth. Sign-up also
creates the profile so that a paid plan chosen at registration starts its
trial immediately.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from aura.api.dependencies import get_services
from aura.domain.accounts import Identity
from aura.domain.models import UserProfile
from aura.domain.tiers import PremiumTier
from aura.infrastructure.auth import AuthSession
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=6)
    plan: PremiumTier = PremiumTier.FREE


class SignInRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)


class GoogleSignInRequest(BaseModel):
    id_token: str = Field(..., min_length=1)
    plan: PremiumTier = PremiumTier.FREE


class PasswordResetRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class AuthResponse(BaseModel):
    """Tokens for the client plus the profile when one was created or loaded."""
    uid: str
    id_token: str
    refresh_token: Optional[str] = None
    user: Optional[UserProfile] = None


def _identity(session: AuthSession) -> Identity:
    return Identity(
        uid=session.uid,
        email=session.email,
        email_verified=session.email_verified,
        display_name=session.display_name,
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/auth/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    request: SignUpRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Create an account and its profile on the chosen plan."""
    session = await services.identity.sign_up(request.email, request.password)
    user = await services.accounts.initialize_user(_identity(session), plan=request.plan)
    return AuthResponse(
        uid=session.uid,
        id_token=session.id_token,
        refresh_token=session.refresh_token,
        user=user,
    )


@router.post("/auth/signin", response_model=AuthResponse)
async def sign_in(
    request: SignInRequest,
    services: ServiceContainer = Depends(get_services),
):
    session = await services.identity.sign_in(request.email, request.password)
    return AuthResponse(
        uid=session.uid,
        id_token=session.id_token,
        refresh_token=session.refresh_token,
    )


@router.post("/auth/google", response_model=AuthResponse)
async def sign_in_with_google(
    request: GoogleSignInRequest,
    services: ServiceContainer = Depends(get_services),
):
    """
    Sign in with a Google ID token.

    First-time Google users get a profile on the requested plan; returning
    users keep theirs.
    """
    session = await services.identity.sign_in_with_google(request.id_token)
    user = await services.accounts.initialize_user(_identity(session), plan=request.plan)
    return AuthResponse(
        uid=session.uid,
        id_token=session.id_token,
        refresh_token=session.refresh_token,
        user=user,
    )


@router.post("/auth/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def send_password_reset(
    request: PasswordResetRequest,
    services: ServiceContainer = Depends(get_services),
):
    await services.identity.send_password_reset(request.email)
    return {"status": "sent"}
