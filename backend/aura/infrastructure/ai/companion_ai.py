"""
Companion AI

Builds the model prompts behind a conversation turn and turns model output
into domain objects:

- signal preprocessing (emotion, intent, language of one message)
- long-term memory scan
- the persona reply
- state analysis (twin state plus one insight)
- the initial telemetry pass for users without insights

Every method recovers from ModelUnavailableError with a documented default
and logs a warning. None of them raise.
"""

import asyncio
import logging
from typing import Any, List, Optional, Tuple

from aura.domain.models import (
    ChatThread,
    CoreMemory,
    DailyInsight,
    Message,
    SignalPackage,
    TwinState,
)
from aura.domain.modes import CoachingMode, MODE_CONFIG
from aura.infrastructure.ai.model_client import ModelClient, parse_json_response
from aura.infrastructure.exceptions import ModelUnavailableError


logger = logging.getLogger(__name__)


FALLBACK_REPLY = (
    "I'm having trouble connecting right now. Please give me a moment and try again."
)

MEMORY_IMPORTANCE_THRESHOLD = 7
STATE_HISTORY_WINDOW = 20
REPLY_HISTORY_WINDOW = 5
REPLY_INSIGHT_WINDOW = 5


# =============================================================================
# Response schemas (google-genai Schema dict form)
# =============================================================================

SIGNAL_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "emotion": {"type": "STRING"},
        "intensity": {"type": "INTEGER"},
        "intent": {"type": "STRING"},
        "hidden_meaning": {"type": "STRING"},
        "contradiction_score": {"type": "INTEGER"},
        "stress_marker": {"type": "BOOLEAN"},
        "topics": {"type": "ARRAY", "items": {"type": "STRING"}},
        "detected_language": {"type": "STRING"},
    },
}

MEMORY_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "is_memory": {"type": "BOOLEAN"},
        "content": {"type": "STRING"},
        "category": {"type": "STRING"},
        "importance": {"type": "INTEGER"},
    },
    "required": ["is_memory"],
}

STATE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "mood": {"type": "STRING"},
        "energy": {"type": "INTEGER"},
        "coherence": {"type": "INTEGER"},
        "emotional_score": {"type": "INTEGER"},
        "dominant_emotion": {"type": "STRING"},
        "title": {"type": "STRING"},
        "bullets": {"type": "ARRAY", "items": {"type": "STRING"}},
        "trend": {"type": "STRING"},
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "insight_type": {"type": "STRING"},
        "summary": {"type": "STRING"},
        "patterns": {"type": "ARRAY", "items": {"type": "STRING"}},
        "blind_spots": {"type": "ARRAY", "items": {"type": "STRING"}},
        "conflicts": {"type": "ARRAY", "items": {"type": "STRING"}},
        "trajectory": {"type": "STRING"},
        "actionable_step": {"type": "STRING"},
    },
}

_INTENTS = {
    "venting", "planning", "avoidance", "fear",
    "ambition", "reflection", "confusion", "neutral",
}
_MOODS = {"neutral", "happy", "stressed", "focused", "reflective"}
_CATEGORIES = {"emotional", "fact", "preference", "milestone"}
_TRENDS = {"up", "down", "stable"}
_INSIGHT_TYPES = {
    "behavioral", "emotional", "strategic", "shadow", "future", "meta", "conflict",
}


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _choice(value: Any, allowed: set, default: str) -> str:
    if isinstance(value, str) and value.lower() in allowed:
        return value.lower()
    return default


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _transcript(messages: List[Message]) -> str:
    return "\n".join(f"{m.role}: {m.text}" for m in messages)


class CompanionAI:
    """
    Prompt construction and output parsing for the companion persona.

    Args:
        model: Model client used for every call
        reply_timeout_seconds: Upper bound on the persona reply
    """

    def __init__(self, model: ModelClient, reply_timeout_seconds: float = 45.0):
        self.model = model
        self.reply_timeout_seconds = reply_timeout_seconds

    # =========================================================================
    # Signal preprocessing
    # =========================================================================

    async def preprocess_signal(self, text: str, history: List[str]) -> SignalPackage:
        """Classify one user message. Neutral signal on failure."""
        context = "\n".join(history)
        prompt = (
            f'Analyze user message: "{text}"\n'
            f"Recent context:\n{context}\n"
            "1. Detect language ('en', 'sv', 'fr', 'de', 'es', 'zh'). Default 'en'.\n"
            "2. Detect emotion, intensity (0-100), intent (venting, planning, avoidance, "
            "fear, ambition, reflection, confusion, neutral), hidden meaning, "
            "contradiction score (0-100), stress marker and topics.\n"
            "Return JSON."
        )
        try:
            raw = await self.model.generate(prompt, response_schema=SIGNAL_SCHEMA)
            data = parse_json_response(raw)
        except ModelUnavailableError as e:
            logger.warning(f"Signal preprocessing unavailable, using neutral signal: {e.message}")
            return SignalPackage.neutral()

        return SignalPackage(
            emotion=str(data.get("emotion") or "neutral"),
            intensity=_clamp(data.get("intensity"), 0, 100, 50),
            intent=_choice(data.get("intent"), _INTENTS, "neutral"),
            hidden_meaning=str(data.get("hidden_meaning") or ""),
            contradiction_score=_clamp(data.get("contradiction_score"), 0, 100, 0),
            stress_marker=bool(data.get("stress_marker", False)),
            topics=_strings(data.get("topics")),
            detected_language=str(data.get("detected_language") or "en"),
        )

    # =========================================================================
    # Memory scan
    # =========================================================================

    async def scan_for_memory(
        self,
        text: str,
        existing: List[CoreMemory],
    ) -> Optional[CoreMemory]:
        """Extract a durable memory worth keeping, or None."""
        known = "; ".join(m.content for m in existing)
        prompt = (
            f'Analyze for LONG-TERM MEMORY. User said: "{text}"\n'
            "Score importance 1-10. Ignore trivial.\n"
            f"Existing: {known}\n"
            "Return JSON: { is_memory: boolean, content: string, "
            "category: 'emotional'|'fact'|'preference'|'milestone', importance: number }"
        )
        try:
            raw = await self.model.generate(prompt, response_schema=MEMORY_SCHEMA)
            data = parse_json_response(raw)
        except ModelUnavailableError as e:
            logger.warning(f"Memory scan unavailable, skipping: {e.message}")
            return None

        importance = _clamp(data.get("importance"), 0, 10, 0)
        content = str(data.get("content") or "").strip()
        if not data.get("is_memory") or importance < MEMORY_IMPORTANCE_THRESHOLD or not content:
            return None

        return CoreMemory(
            content=content,
            category=_choice(data.get("category"), _CATEGORIES, "fact"),
            importance=importance,
        )

    # =========================================================================
    # Persona reply
    # =========================================================================

    def build_reply_prompt(
        self,
        *,
        text: str,
        history: List[Message],
        mode: CoachingMode,
        user_name: str,
        insights: List[DailyInsight],
        signal: Optional[SignalPackage],
        memories: List[CoreMemory],
    ) -> Tuple[str, str]:
        """Return (system_instruction, prompt) for the persona reply."""
        system_instruction = f"User Name: {user_name or 'Friend'}. " + MODE_CONFIG[mode].prompt
        if signal and signal.detected_language:
            system_instruction += f" Respond in {signal.detected_language}."

        sections = [f"Context:\n{_transcript(history[-REPLY_HISTORY_WINDOW:])}"]
        if memories:
            sections.append(
                "Core memories:\n" + "\n".join(f"- {m.content}" for m in memories)
            )
        recent = insights[-REPLY_INSIGHT_WINDOW:]
        if recent:
            sections.append(
                "Recent insights:\n" + "\n".join(f"- {i.title}: {i.summary}" for i in recent)
            )
        if signal:
            sections.append(
                f"Signal: emotion={signal.emotion}, intensity={signal.intensity}, "
                f"intent={signal.intent}, hidden meaning={signal.hidden_meaning or 'none'}"
            )
        sections.append(f'User: "{text}"\nRespond in character.')
        return system_instruction, "\n\n".join(sections)

    async def generate_reply(
        self,
        *,
        text: str,
        history: List[Message],
        mode: CoachingMode,
        user_name: str,
        insights: List[DailyInsight],
        signal: Optional[SignalPackage],
        memories: List[CoreMemory],
    ) -> str:
        """Persona reply. FALLBACK_REPLY on timeout or error."""
        system_instruction, prompt = self.build_reply_prompt(
            text=text,
            history=history,
            mode=mode,
            user_name=user_name,
            insights=insights,
            signal=signal,
            memories=memories,
        )
        try:
            return await asyncio.wait_for(
                self.model.generate(prompt, system_instruction=system_instruction),
                timeout=self.reply_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Reply timed out after {self.reply_timeout_seconds}s, using fallback")
        except ModelUnavailableError as e:
            logger.warning(f"Reply unavailable, using fallback: {e.message}")
        return FALLBACK_REPLY

    # =========================================================================
    # State analysis and insights
    # =========================================================================

    async def analyze_state(
        self,
        history: List[Message],
        mode: CoachingMode,
        signal: Optional[SignalPackage] = None,
    ) -> Optional[Tuple[TwinState, DailyInsight]]:
        """
        Analyze recent conversation.

        Returns:
            (twin_state, insight), or None when there is too little history
            or the model is unavailable
        """
        if len(history) < 2:
            return None

        prompt = (
            "Analyze conversation for psychological patterns. "
            f"Focus: {MODE_CONFIG[mode].insight_focus} "
            "Return JSON with mood, energy, coherence, and insight details.\n"
            f"{_transcript(history[-STATE_HISTORY_WINDOW:])}"
        )
        if signal:
            prompt += f"\nLatest signal: {signal.emotion} ({signal.intent})"

        try:
            raw = await self.model.generate(prompt, response_schema=STATE_SCHEMA)
            data = parse_json_response(raw)
        except ModelUnavailableError as e:
            logger.warning(f"State analysis unavailable, twin state unchanged: {e.message}")
            return None

        energy = _clamp(data.get("energy"), 0, 100, 50)
        twin_state = TwinState(
            mood=_choice(data.get("mood"), _MOODS, "neutral"),
            energy=energy,
            coherence=_clamp(data.get("coherence"), 0, 100, 50),
        )
        insight = DailyInsight(
            source_mode=mode,
            emotional_score=_clamp(data.get("emotional_score"), 0, 100, 50),
            energy_level=energy,
            dominant_emotion=str(data.get("dominant_emotion") or "Neutral"),
            title=str(data.get("title") or "Daily Analysis"),
            bullets=_strings(data.get("bullets")),
            trend=_choice(data.get("trend"), _TRENDS, "stable"),
            tags=_strings(data.get("tags")),
            insight_type=_choice(data.get("insight_type"), _INSIGHT_TYPES, "behavioral"),
            summary=str(data.get("summary") or ""),
            patterns=_strings(data.get("patterns")),
            blind_spots=_strings(data.get("blind_spots")),
            conflicts=_strings(data.get("conflicts")),
            trajectory=str(data.get("trajectory") or "Stable"),
            actionable_step=str(data.get("actionable_step") or "Reflect"),
        )
        return twin_state, insight

    async def initial_telemetry(
        self,
        thread: ChatThread,
        signal: Optional[SignalPackage] = None,
    ) -> List[DailyInsight]:
        """First insights for a user who has none yet."""
        modes = [CoachingMode.BASELINE]
        results = await asyncio.gather(
            *(self.analyze_state(thread.messages, mode, signal) for mode in modes)
        )
        return [result[1] for result in results if result is not None]

    # =========================================================================
    # Raw proxy
    # =========================================================================

    async def generate_raw(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        """Pass-through generation for the authenticated proxy endpoint."""
        return await self.model.generate(contents, system_instruction=system_instruction)
