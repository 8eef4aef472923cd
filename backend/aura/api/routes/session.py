"""
Session Routes

The bootstrap call a client makes after every sign-in or reload, plus the
profile preferences, onboarding and marketing dismissal endpoints.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from aura.api.dependencies import get_current_user, get_identity, get_services
from aura.domain.access import mode_catalog
from aura.domain.accounts import CURRENT_MARKETING_VERSION, Identity
from aura.domain.models import ChatThread, DailyInsight, UserProfile
from aura.domain.modes import CoachingMode
from aura.domain.tiers import PremiumTier
from aura.services import ServiceContainer


router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class ModeEntry(BaseModel):
    mode: CoachingMode
    name: str
    description: str
    min_tier: PremiumTier
    locked: bool
    rented: bool
    rental_expires_at: Optional[datetime] = None


class SessionResponse(BaseModel):
    """Everything a client renders after sign-in."""
    user: UserProfile
    current_mode: CoachingMode
    active_thread: Optional[ChatThread] = None
    threads: List[ChatThread]
    insights: List[DailyInsight]
    modes: List[ModeEntry]
    needs_onboarding: bool
    show_marketing: bool


class PreferencesRequest(BaseModel):
    voice_enabled: Optional[bool] = None
    language: Optional[str] = Field(None, min_length=2, max_length=8)


class OnboardingRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class OnboardingResponse(BaseModel):
    user: UserProfile
    thread: ChatThread


def mode_entries(user: UserProfile) -> List[ModeEntry]:
    return [ModeEntry(**item) for item in mode_catalog(user)]


# ============================================================================
# Endpoints
# ============================================================================

@router.get("/session", response_model=SessionResponse)
async def load_session(
    identity: Identity = Depends(get_identity),
    services: ServiceContainer = Depends(get_services),
):
    """
    Load profile, threads and insights.

    Creates the profile on first sign-in, expires an elapsed trial and
    resolves the current mode.
    """
    state = await services.accounts.load_session(identity)
    return SessionResponse(
        user=state.user,
        current_mode=state.current_mode,
        active_thread=state.active_thread,
        threads=state.threads,
        insights=state.insights,
        modes=mode_entries(state.user),
        needs_onboarding=not state.user.name,
        show_marketing=state.user.last_viewed_marketing_version < CURRENT_MARKETING_VERSION,
    )


@router.patch("/session/profile", response_model=UserProfile)
async def update_preferences(
    request: PreferencesRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    return await services.accounts.update_preferences(
        user,
        voice_enabled=request.voice_enabled,
        language=request.language,
    )


@router.post("/session/onboarding", response_model=OnboardingResponse)
async def complete_onboarding(
    request: OnboardingRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Store the display name and open the first BASELINE session."""
    user, thread = await services.accounts.complete_onboarding(user, request.name)
    return OnboardingResponse(user=user, thread=thread)


@router.post("/session/marketing/dismiss", response_model=UserProfile)
async def dismiss_marketing(
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    return await services.accounts.dismiss_marketing(user)
