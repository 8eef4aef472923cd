"""
Mode Routes

Coaching mode catalog, mode switching and coin rentals.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from aura.api.dependencies import get_current_user, get_services
from aura.api.routes.session import ModeEntry, mode_entries
from aura.domain.accounts import RENTAL_COST_COINS, RENTAL_DURATION
from aura.domain.models import ChatThread, UserProfile
from aura.domain.modes import CoachingMode
from aura.services import ServiceContainer


router = APIRouter()


class ModeCatalogResponse(BaseModel):
    current_mode: CoachingMode
    rental_cost: int = RENTAL_COST_COINS
    rental_minutes: int = int(RENTAL_DURATION.total_seconds() // 60)
    modes: List[ModeEntry]


class ActivateModeResponse(BaseModel):
    current_mode: CoachingMode
    active_thread: Optional[ChatThread] = None


class RentModeResponse(BaseModel):
    current_mode: CoachingMode
    coins: int
    rental_expires_at: datetime


@router.get("/modes", response_model=ModeCatalogResponse)
async def get_mode_catalog(
    user: UserProfile = Depends(get_current_user),
):
    """Modes with lock and rental state for the current user."""
    return ModeCatalogResponse(current_mode=user.current_mode, modes=mode_entries(user))


@router.post("/modes/{mode}/activate", response_model=ActivateModeResponse)
async def activate_mode(
    mode: CoachingMode,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    user, thread = await services.accounts.switch_mode(user, mode)
    return ActivateModeResponse(current_mode=user.current_mode, active_thread=thread)


@router.post("/modes/{mode}/rent", response_model=RentModeResponse)
async def rent_mode(
    mode: CoachingMode,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Spend coins for one hour in a locked mode.

    Answers 402 when the balance is short and 400 when the mode is already
    unlocked by the user's plan.
    """
    user = await services.accounts.rent_mode(user, mode)
    return RentModeResponse(
        current_mode=user.current_mode,
        coins=user.coins,
        rental_expires_at=user.rental_access[mode],
    )
