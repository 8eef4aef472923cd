"""
Unit tests for ConversationOrchestrator.

The model is mocked; the store is the in-memory LocalDocumentStore.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from aura.domain.conversation import COINS_PER_TURN, TurnStatus
from aura.domain.models import ChatThread, DailyInsight, Message
from aura.domain.modes import CoachingMode
from aura.infrastructure.ai.companion_ai import FALLBACK_REPLY
from aura.infrastructure.exceptions import AccessDeniedError, ModelUnavailableError, ValidationError


def scripted_model(mock_model, reply="Tell me more.", memory=None, state=None):
    """Route each prompt kind to a canned response."""
    async def generate(prompt, *, system_instruction=None, response_schema=None):
        if prompt.startswith("Analyze user message"):
            return json.dumps({"emotion": "anxious", "intensity": 70, "intent": "fear"})
        if prompt.startswith("Analyze for LONG-TERM MEMORY"):
            if memory is None:
                return json.dumps({"is_memory": False})
            return json.dumps(memory)
        if prompt.startswith("Analyze conversation"):
            if state is None:
                raise ModelUnavailableError("no state")
            return json.dumps(state)
        return reply

    mock_model.generate = AsyncMock(side_effect=generate)
    return mock_model


def greeted_thread():
    """A BASELINE thread that already holds the opening assistant message."""
    greeting = Message(role="assistant", text="Welcome back.", mode=CoachingMode.BASELINE)
    return ChatThread(mode=CoachingMode.BASELINE, messages=[greeting])


async def seed(store, user):
    await store.create(user)
    return user


class TestRejectedTurns:

    @pytest.mark.asyncio
    async def test_empty_text_returns_inputs(self, orchestrator, store, free_user):
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.BASELINE)

        result = await orchestrator.handle_turn("   ", thread, free_user)

        assert result.status == TurnStatus.EMPTY
        assert result.thread is thread
        assert result.user is free_user
        assert await store.list_threads(free_user.id) == []

    @pytest.mark.asyncio
    async def test_locked_mode_is_denied_without_mutation(self, orchestrator, store, free_user):
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.SHADOW)

        result = await orchestrator.handle_turn("hello", thread, free_user)

        assert result.status == TurnStatus.ACCESS_DENIED
        assert result.side_effects.redirect == "upgrade"
        assert result.thread is thread
        assert await store.list_threads(free_user.id) == []
        assert (await store.get(free_user.id)).coins == free_user.coins

    @pytest.mark.asyncio
    async def test_mode_must_match_thread(self, orchestrator, store, plus_user, mock_model):
        await seed(store, plus_user)
        thread = ChatThread.start(CoachingMode.BASELINE)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.handle_turn("hello", thread, plus_user, mode=CoachingMode.SHADOW)

        assert exc_info.value.details == {"thread_mode": "BASELINE", "mode": "SHADOW"}
        mock_model.generate.assert_not_called()
        assert await store.list_threads(plus_user.id) == []
        stored = await store.get(plus_user.id)
        assert stored.current_mode == plus_user.current_mode
        assert stored.coins == plus_user.coins


class TestSuccessfulTurn:

    @pytest.mark.asyncio
    async def test_failing_model_still_appends_one_pair(self, orchestrator, store, free_user):
        """Signal, memory and reply all fail; the turn still completes."""
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.BASELINE)

        result = await orchestrator.handle_turn("I feel stuck", thread, free_user)
        await asyncio.gather(*result.background_tasks)

        assert result.status == TurnStatus.OK
        assert [m.role for m in result.thread.messages] == ["user", "assistant"]
        assert result.thread.messages[0].signal.emotion == "neutral"
        assert result.reply.text == FALLBACK_REPLY
        assert result.side_effects.memory is None

        stored = await store.get_thread(free_user.id, thread.id)
        assert len(stored.messages) == 2

    @pytest.mark.asyncio
    async def test_coins_accumulate_per_turn(self, orchestrator, store, free_user, mock_model):
        scripted_model(mock_model)
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.BASELINE)
        user = free_user

        for text in ["one", "two", "three"]:
            result = await orchestrator.handle_turn(text, thread, user)
            thread, user = result.thread, result.user

        await orchestrator.aclose()
        assert user.coins == free_user.coins + 3 * COINS_PER_TURN
        assert (await store.get(free_user.id)).coins == free_user.coins + 3 * COINS_PER_TURN
        assert len(thread.messages) == 6

    @pytest.mark.asyncio
    async def test_reply_and_signal_are_recorded(self, orchestrator, store, free_user, mock_model):
        scripted_model(mock_model, reply="What scares you most?")
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.BASELINE)

        result = await orchestrator.handle_turn("I am afraid of failing", thread, free_user)
        await orchestrator.aclose()

        assert result.reply.text == "What scares you most?"
        assert result.reply.mode == CoachingMode.BASELINE
        assert result.thread.messages[0].signal.intent == "fear"
        assert result.side_effects.speak is True
        assert result.side_effects.coins_awarded == COINS_PER_TURN

    @pytest.mark.asyncio
    async def test_important_memory_is_stored(self, orchestrator, store, free_user, mock_model):
        scripted_model(mock_model, memory={
            "is_memory": True,
            "content": "Has a sister named Mia",
            "category": "fact",
            "importance": 8,
        })
        await seed(store, free_user)
        thread = ChatThread.start(CoachingMode.BASELINE)

        result = await orchestrator.handle_turn("My sister Mia is visiting", thread, free_user)
        await orchestrator.aclose()

        assert result.side_effects.memory.content == "Has a sister named Mia"
        stored = await store.get(free_user.id)
        assert [m.content for m in stored.memories] == ["Has a sister named Mia"]

    @pytest.mark.asyncio
    async def test_trivial_memory_is_ignored(self, orchestrator, store, free_user, mock_model):
        scripted_model(mock_model, memory={
            "is_memory": True, "content": "Had coffee", "category": "fact", "importance": 3,
        })
        await seed(store, free_user)

        result = await orchestrator.handle_turn("I had coffee", ChatThread.start(CoachingMode.BASELINE), free_user)
        await orchestrator.aclose()

        assert result.side_effects.memory is None
        assert (await store.get(free_user.id)).memories == []

    @pytest.mark.asyncio
    async def test_state_analysis_updates_twin_and_insights(
        self, orchestrator, store, free_user, mock_model
    ):
        scripted_model(mock_model, state={
            "mood": "stressed",
            "energy": 30,
            "coherence": 60,
            "title": "Pressure building",
            "trend": "down",
        })
        await seed(store, free_user)

        result = await orchestrator.handle_turn(
            "Work is too much", ChatThread.start(CoachingMode.BASELINE), free_user
        )
        await asyncio.gather(*result.background_tasks)

        stored = await store.get(free_user.id)
        assert stored.twin_state.mood == "stressed"
        assert stored.twin_state.energy == 30
        insights = await store.list_insights(free_user.id)
        titles = [i.title for i in insights]
        assert "Pressure building" in titles

    @pytest.mark.asyncio
    async def test_initial_telemetry_only_without_insights(
        self, orchestrator, store, free_user, mock_model
    ):
        scripted_model(mock_model)
        await seed(store, free_user)
        existing = [DailyInsight(title="Earlier")]

        result = await orchestrator.handle_turn(
            "hello", greeted_thread(), free_user, insights=existing,
        )
        assert len(result.background_tasks) == 1

        result = await orchestrator.handle_turn(
            "hello", greeted_thread(), free_user, insights=[],
        )
        assert len(result.background_tasks) == 2
        await orchestrator.aclose()

    @pytest.mark.asyncio
    async def test_turn_updates_active_thread_and_mode(self, orchestrator, store, plus_user):
        await seed(store, plus_user)
        thread = ChatThread.start(CoachingMode.SHADOW)

        result = await orchestrator.handle_turn("hi", thread, plus_user)
        await orchestrator.aclose()

        stored = await store.get(plus_user.id)
        assert stored.active_thread_id == thread.id
        assert stored.current_mode == CoachingMode.SHADOW
        assert result.user.current_mode == CoachingMode.SHADOW

    @pytest.mark.asyncio
    async def test_background_failure_is_contained(self, orchestrator, store, free_user, mock_model):
        scripted_model(mock_model, state={"mood": "happy"})
        await seed(store, free_user)
        store.append_insight = AsyncMock(side_effect=RuntimeError("disk full"))

        result = await orchestrator.handle_turn("hi", ChatThread.start(CoachingMode.BASELINE), free_user)
        await asyncio.gather(*result.background_tasks)

        assert result.status == TurnStatus.OK
        assert orchestrator.pending_tasks == 0


class TestStartThread:

    @pytest.mark.asyncio
    async def test_start_thread_sets_active(self, orchestrator, store, free_user):
        await seed(store, free_user)

        thread = await orchestrator.start_thread(free_user, CoachingMode.BASELINE)

        assert thread.title == "Baseline Session"
        stored = await store.get(free_user.id)
        assert stored.active_thread_id == thread.id

    @pytest.mark.asyncio
    async def test_start_locked_thread_raises(self, orchestrator, store, free_user):
        await seed(store, free_user)

        with pytest.raises(AccessDeniedError):
            await orchestrator.start_thread(free_user, CoachingMode.SHADOW)
        assert await store.list_threads(free_user.id) == []


class TestShutdown:

    @pytest.mark.asyncio
    async def test_aclose_cancels_slow_passes(self, orchestrator, store, free_user, mock_model):
        await seed(store, free_user)

        async def slow(*args, **kwargs):
            await asyncio.sleep(10)

        orchestrator.companion.analyze_state = AsyncMock(side_effect=slow)
        result = await orchestrator.handle_turn("hi", ChatThread.start(CoachingMode.BASELINE), free_user)
        assert orchestrator.pending_tasks >= 1

        await orchestrator.aclose(timeout=0.05)

        assert all(task.done() for task in result.background_tasks)
