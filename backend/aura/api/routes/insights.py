"""
Insight Routes

The psychological dossier: the latest META synthesis followed by the
insight stream, newest first.
"""

from fastapi import APIRouter, Depends

from aura.api.dependencies import get_current_user, get_services
from aura.domain.models import InsightDossier, TwinState, UserProfile
from aura.services import ServiceContainer


router = APIRouter()


@router.get("/insights", response_model=InsightDossier)
async def get_dossier(
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    insights = await services.store.list_insights(user.id)
    return InsightDossier.from_insights(insights)


@router.get("/insights/twin", response_model=TwinState)
async def get_twin_state(
    user: UserProfile = Depends(get_current_user),
):
    """Latest twin-state snapshot from state analysis."""
    return user.twin_state
