"""
Chat Routes for Aura

API endpoints for coaching threads and the conversation turn.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from aura.api.dependencies import get_current_user, get_services
from aura.domain.conversation import TurnStatus
from aura.domain.models import ChatThread, CoreMemory, Message, UserProfile
from aura.domain.modes import CoachingMode
from aura.infrastructure.exceptions import AccessDeniedError
from aura.services import ServiceContainer


router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class ThreadSummary(BaseModel):
    """A thread without its messages, for the session drawer."""
    id: str
    mode: CoachingMode
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime


class ThreadListResponse(BaseModel):
    threads: List[ThreadSummary]
    total: int


class CreateThreadRequest(BaseModel):
    """Request to open a new session in a mode."""
    mode: CoachingMode = CoachingMode.BASELINE


class SendMessageRequest(BaseModel):
    text: str = Field(..., max_length=8000)
    mode: Optional[CoachingMode] = None


class SideEffectsResponse(BaseModel):
    speak: bool = False
    redirect: Optional[str] = None
    coins_awarded: int = 0
    memory: Optional[CoreMemory] = None


class TurnResponse(BaseModel):
    """Result of one conversation turn."""
    status: TurnStatus
    thread: ChatThread
    reply: Optional[Message] = None
    coins: int
    side_effects: SideEffectsResponse


# ============================================================================
# Helpers
# ============================================================================

async def load_thread(services: ServiceContainer, user: UserProfile, thread_id: str) -> ChatThread:
    thread = await services.store.get_thread(user.id, thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread


# ============================================================================
# Thread Endpoints
# ============================================================================

@router.get("/chats", response_model=ThreadListResponse)
async def list_threads(
    mode: Optional[CoachingMode] = None,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    List the user's threads, most recently updated first.

    Pass mode to restrict the list to one coaching mode.
    """
    threads = await services.store.list_threads(user.id)
    if mode is not None:
        threads = [t for t in threads if t.mode == mode]

    return ThreadListResponse(
        threads=[
            ThreadSummary(
                id=t.id,
                mode=t.mode,
                title=t.title,
                message_count=len(t.messages),
                created_at=t.created_at,
                updated_at=t.updated_at,
            )
            for t in threads
        ],
        total=len(threads),
    )


@router.get("/chats/{thread_id}", response_model=ChatThread)
async def get_thread(
    thread_id: str,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    return await load_thread(services, user, thread_id)


@router.post("/chats", response_model=ChatThread, status_code=201)
async def create_thread(
    request: CreateThreadRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Open an empty session in a mode the user can enter."""
    return await services.orchestrator.start_thread(user, request.mode)


# ============================================================================
# Message Endpoints
# ============================================================================

@router.post("/chats/{thread_id}/messages", response_model=TurnResponse)
async def send_message(
    thread_id: str,
    request: SendMessageRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Run one conversation turn.

    Blank text returns the thread unchanged. A mode the user cannot enter
    answers 403 with redirect=upgrade.
    """
    thread = await load_thread(services, user, thread_id)
    result = await services.orchestrator.handle_turn(
        request.text,
        thread,
        user,
        mode=request.mode,
    )

    if result.status == TurnStatus.ACCESS_DENIED:
        mode = request.mode or thread.mode
        raise AccessDeniedError(
            f"{mode.value} requires an upgrade",
            mode=mode.value,
            redirect=result.side_effects.redirect or "upgrade",
        )

    effects = result.side_effects
    return TurnResponse(
        status=result.status,
        thread=result.thread,
        reply=result.reply,
        coins=result.user.coins,
        side_effects=SideEffectsResponse(
            speak=effects.speak,
            redirect=effects.redirect,
            coins_awarded=effects.coins_awarded,
            memory=effects.memory,
        ),
    )
