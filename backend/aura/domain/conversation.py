"""
Conversation Orchestrator

Runs one user turn end to end: gate the mode, interpret the message,
persist the user side of the turn, produce the persona reply, persist it,
and schedule the analysis passes that update twin state and insights.

The user message, memory and coin award are persisted before the reply is
requested. Background passes never block the reply; they are tracked here
and drained on shutdown.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional, Set

from aura.domain.access import can_enter
from aura.domain.models import (
    ChatThread,
    CoreMemory,
    DailyInsight,
    Message,
    SignalPackage,
    UserProfile,
    utc_now,
)
from aura.domain.modes import CoachingMode
from aura.infrastructure.ai.companion_ai import CompanionAI
from aura.infrastructure.db.repositories import DocumentStore
from aura.infrastructure.exceptions import AccessDeniedError, ValidationError


logger = logging.getLogger(__name__)


COINS_PER_TURN = 10
SIGNAL_HISTORY_WINDOW = 5


class TurnStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    ACCESS_DENIED = "access_denied"


@dataclass
class SideEffects:
    """What the client should do after a turn."""
    speak: bool = False
    redirect: Optional[str] = None
    coins_awarded: int = 0
    memory: Optional[CoreMemory] = None


@dataclass
class TurnResult:
    status: TurnStatus
    thread: ChatThread
    user: UserProfile
    side_effects: SideEffects = field(default_factory=SideEffects)
    background_tasks: List[asyncio.Task] = field(default_factory=list)
    reply: Optional[Message] = None


class ConversationOrchestrator:
    """
    Coordinates the store and the companion AI for chat turns.

    Args:
        store: Document store for profiles, threads and insights
        companion: Prompting and parsing for every model call
    """

    def __init__(self, store: DocumentStore, companion: CompanionAI):
        self.store = store
        self.companion = companion
        self._tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Threads
    # =========================================================================

    async def start_thread(self, user: UserProfile, mode: CoachingMode) -> ChatThread:
        """
        Open an empty thread in mode and make it active.

        Raises:
            AccessDeniedError: if the user cannot enter mode
        """
        mode = CoachingMode(mode)
        if not can_enter(mode, user):
            raise AccessDeniedError(f"{mode.value} requires an upgrade", mode=mode.value)

        thread = ChatThread.start(mode)
        await self.store.upsert_thread(user.id, thread)
        await self.store.put(user.id, {"active_thread_id": thread.id, "current_mode": mode})
        logger.info(f"Started {mode.value} thread {thread.id} for user {user.id}")
        return thread

    # =========================================================================
    # Turns
    # =========================================================================

    async def handle_turn(
        self,
        user_text: str,
        thread: ChatThread,
        user: UserProfile,
        *,
        mode: Optional[CoachingMode] = None,
        insights: Optional[List[DailyInsight]] = None,
    ) -> TurnResult:
        """
        Process one user message.

        Args:
            user_text: Raw message text
            thread: Thread the message belongs to
            user: Current profile
            mode: Mode to converse in; must match the thread's mode when given
            insights: Known insights; loaded from the store when omitted

        Returns:
            TurnResult with the updated thread and profile. Rejected turns
            return the inputs unchanged and persist nothing.

        Raises:
            ValidationError: mode differs from the thread's mode
        """
        mode = CoachingMode(mode or thread.mode)

        if not user_text or not user_text.strip():
            return TurnResult(status=TurnStatus.EMPTY, thread=thread, user=user)

        if not can_enter(mode, user):
            logger.info(f"User {user.id} denied entry to {mode.value}")
            return TurnResult(
                status=TurnStatus.ACCESS_DENIED,
                thread=thread,
                user=user,
                side_effects=SideEffects(redirect="upgrade"),
            )

        if mode != thread.mode:
            raise ValidationError(
                f"Thread {thread.id} is a {thread.mode.value} session",
                details={"thread_mode": thread.mode.value, "mode": mode.value},
            )

        text = user_text.strip()
        history_texts = [m.text for m in thread.messages[-SIGNAL_HISTORY_WINDOW:]]

        signal, memory = await asyncio.gather(
            self.companion.preprocess_signal(text, history_texts),
            self.companion.scan_for_memory(text, user.memories),
        )

        # User side of the turn
        user_message = Message(role="user", text=text, mode=mode, signal=signal)
        thread = thread.model_copy(update={
            "messages": [*thread.messages, user_message],
            "updated_at": utc_now(),
        })

        memories = list(user.memories)
        if memory is not None:
            await self.store.append_memory(user.id, memory)
            memories.append(memory)
            logger.info(f"Stored core memory for user {user.id} (importance {memory.importance})")

        coins = await self.store.add_coins(user.id, COINS_PER_TURN)
        await self.store.upsert_thread(user.id, thread)

        profile_fields = {}
        if user.active_thread_id != thread.id:
            profile_fields["active_thread_id"] = thread.id
        if user.current_mode != mode:
            profile_fields["current_mode"] = mode
        if profile_fields:
            await self.store.put(user.id, profile_fields)

        user = user.model_copy(update={"coins": coins, "memories": memories, **profile_fields})

        if insights is None:
            insights = await self.store.list_insights(user.id)

        background: List[asyncio.Task] = []
        if len(thread.messages) >= 2 and not insights:
            background.append(self._spawn(
                self._initial_telemetry_pass(user.id, thread, signal),
                f"initial-telemetry:{user.id}",
            ))

        # Assistant side of the turn
        reply_text = await self.companion.generate_reply(
            text=text,
            history=thread.messages[:-1],
            mode=mode,
            user_name=user.name,
            insights=insights,
            signal=signal,
            memories=memories,
        )
        reply = Message(role="assistant", text=reply_text, mode=mode)
        thread = thread.model_copy(update={
            "messages": [*thread.messages, reply],
            "updated_at": utc_now(),
        })
        await self.store.upsert_thread(user.id, thread)

        background.append(self._spawn(
            self._state_analysis_pass(user.id, thread, mode, signal),
            f"state-analysis:{user.id}",
        ))

        return TurnResult(
            status=TurnStatus.OK,
            thread=thread,
            user=user,
            side_effects=SideEffects(
                speak=user.voice_enabled,
                coins_awarded=COINS_PER_TURN,
                memory=memory,
            ),
            background_tasks=background,
            reply=reply,
        )

    # =========================================================================
    # Background passes
    # =========================================================================

    async def _state_analysis_pass(
        self,
        user_id: str,
        thread: ChatThread,
        mode: CoachingMode,
        signal: SignalPackage,
    ) -> None:
        result = await self.companion.analyze_state(thread.messages, mode, signal)
        if result is None:
            return
        twin_state, insight = result
        await self.store.put(user_id, {"twin_state": twin_state})
        await self.store.append_insight(user_id, insight)
        logger.info(f"Updated twin state for user {user_id}: {twin_state.mood}")

    async def _initial_telemetry_pass(
        self,
        user_id: str,
        thread: ChatThread,
        signal: SignalPackage,
    ) -> None:
        insights = await self.companion.initial_telemetry(thread, signal)
        for insight in insights:
            await self.store.append_insight(user_id, insight)
        if insights:
            logger.info(f"Generated {len(insights)} initial insights for user {user_id}")

    async def _guarded(self, coro: Awaitable[None], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Background pass {name} failed")

    def _spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def aclose(self, timeout: Optional[float] = 10.0) -> None:
        """Wait for background passes, cancelling any still running after timeout."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} background passes at shutdown")
