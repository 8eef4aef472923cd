"""
AI Proxy Route

Authenticated server-side generation so the model API key never reaches
the browser.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from aura.api.dependencies import get_current_user, get_services
from aura.domain.models import UserProfile
from aura.infrastructure.exceptions import ModelUnavailableError, RateLimitError
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    contents: str = Field(..., min_length=1, max_length=32000)
    system_instruction: Optional[str] = Field(None, max_length=16000)


class GenerateResponse(BaseModel):
    text: str
    model: str


@router.post("/ai/generate", response_model=GenerateResponse)
async def generate(
    request: GenerateRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    try:
        text = await services.companion.generate_raw(
            request.contents,
            system_instruction=request.system_instruction,
        )
    except RateLimitError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=e.message,
        )
    except ModelUnavailableError as e:
        logger.warning(f"Model proxy unavailable for user {user.id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service unavailable",
        )

    return GenerateResponse(text=text, model=services.model.model_name)
