"""
Domain Models for Aura

Pure Python/Pydantic models with no framework dependencies.
These models define the core business entities: the user profile with its
wallet and memories, chat threads, per-message signals and insights.
"""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from aura.domain.modes import CoachingMode, MODE_CONFIG
from aura.domain.tiers import PremiumTier, SubscriptionStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to aware UTC; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


Mood = Literal["neutral", "happy", "stressed", "focused", "reflective"]
Intent = Literal[
    "venting", "planning", "avoidance", "fear",
    "ambition", "reflection", "confusion", "neutral",
]
MemoryCategory = Literal["emotional", "fact", "preference", "milestone"]
InsightType = Literal[
    "behavioral", "emotional", "strategic", "shadow", "future", "meta", "conflict",
]


# =============================================================================
# Conversation
# =============================================================================

class SignalPackage(BaseModel):
    """Structured interpretation of a single user message."""
    emotion: str = "neutral"
    intensity: int = Field(50, ge=0, le=100)
    intent: Intent = "neutral"
    hidden_meaning: str = ""
    contradiction_score: int = Field(0, ge=0, le=100)
    stress_marker: bool = False
    topics: List[str] = Field(default_factory=list)
    detected_language: str = "en"

    @classmethod
    def neutral(cls) -> "SignalPackage":
        return cls()


class Message(BaseModel):
    """A single chat message."""
    id: str = Field(default_factory=new_id)
    role: Literal["user", "assistant"]
    text: str
    timestamp: datetime = Field(default_factory=utc_now)
    mode: CoachingMode
    signal: Optional[SignalPackage] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ChatThread(BaseModel):
    """An ordered message list bound to one coaching mode."""
    id: str = Field(default_factory=new_id)
    mode: CoachingMode
    title: str = ""
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_dates(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def start(cls, mode: CoachingMode, title: Optional[str] = None) -> "ChatThread":
        """Create an empty thread with the default session title."""
        mode = CoachingMode(mode)
        return cls(mode=mode, title=title or f"{MODE_CONFIG[mode].name} Session")


# =============================================================================
# Memory, Twin State and Insights
# =============================================================================

class CoreMemory(BaseModel):
    """A durable fact about the user extracted from conversation."""
    id: str = Field(default_factory=new_id)
    content: str
    category: MemoryCategory = "fact"
    importance: int = Field(..., ge=1, le=10)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class TwinState(BaseModel):
    """The companion's current read of the user's state."""
    mood: Mood = "neutral"
    energy: int = Field(50, ge=0, le=100)
    coherence: int = Field(10, ge=0, le=100)


class CrossModelConflict(BaseModel):
    label: str
    description: str = ""
    resolution: str = ""


class DistortionScores(BaseModel):
    """Cognitive distortion intensities, each 0-10."""
    all_or_nothing: int = Field(0, ge=0, le=10)
    catastrophizing: int = Field(0, ge=0, le=10)
    emotional_reasoning: int = Field(0, ge=0, le=10)
    should_statements: int = Field(0, ge=0, le=10)
    personalization: int = Field(0, ge=0, le=10)


class DailyInsight(BaseModel):
    """
    AI-generated psychological summary of recent conversation.

    Insights are appended, never removed. The optional trailing fields are
    only populated by META-mode synthesis.
    """
    id: str = Field(default_factory=new_id)
    date: datetime = Field(default_factory=utc_now)
    source_mode: CoachingMode = CoachingMode.BASELINE
    emotional_score: int = 50
    energy_level: int = 50
    dominant_emotion: str = "Neutral"

    title: str = "Daily Analysis"
    bullets: List[str] = Field(default_factory=list)
    trend: Literal["up", "down", "stable"] = "stable"
    tags: List[str] = Field(default_factory=list)
    insight_type: InsightType = "behavioral"

    summary: str = ""
    patterns: List[str] = Field(default_factory=list)
    blind_spots: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    trajectory: str = "Stable"
    actionable_step: str = "Reflect"

    memory_strength: int = 50
    pattern_persistence: int = 50

    agreements: Optional[List[str]] = None
    root_cause: Optional[str] = None
    long_term_trend: Optional[str] = None
    cross_model_conflicts: Optional[List[CrossModelConflict]] = None
    distortions: Optional[DistortionScores] = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class InsightDossier(BaseModel):
    """Display projection: the latest META insight leads, the rest stream below."""
    synthesis: Optional[DailyInsight] = None
    stream: List[DailyInsight] = Field(default_factory=list)

    @classmethod
    def from_insights(cls, insights: List[DailyInsight]) -> "InsightDossier":
        meta = [i for i in insights if i.source_mode == CoachingMode.META]
        synthesis = meta[-1] if meta else None
        stream = [i for i in insights if synthesis is None or i.id != synthesis.id]
        return cls(synthesis=synthesis, stream=list(reversed(stream)))


# =============================================================================
# User Profile
# =============================================================================

class PaymentMethodSummary(BaseModel):
    """Non-sensitive card details shown in the subscription portal."""
    id: str
    type: Literal["card", "apple_pay", "google_pay"] = "card"
    brand: str = ""
    last4: str = ""
    expiry: Optional[str] = None


class UserProfile(BaseModel):
    """
    The user's profile document.

    tier and subscription_status are independent: the tier records what was
    purchased, the status records billing health.
    """
    id: str
    email: Optional[str] = None
    email_verified: bool = False
    name: str = ""
    joined_at: datetime = Field(default_factory=utc_now)

    tier: PremiumTier = PremiumTier.FREE
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    stripe_customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    cancel_at_period_end: bool = False
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethodSummary] = None
    last_payment_failure_reason: Optional[str] = None
    features: List[str] = Field(default_factory=list)

    coins: int = 0
    streak_days: int = 0
    voice_enabled: bool = True
    language: str = "en"
    last_viewed_marketing_version: int = 0
    memories: List[CoreMemory] = Field(default_factory=list)

    current_mode: CoachingMode = CoachingMode.BASELINE
    active_thread_id: Optional[str] = None
    twin_state: TwinState = Field(default_factory=TwinState)
    rental_access: Dict[CoachingMode, datetime] = Field(default_factory=dict)

    @field_validator("joined_at", "trial_ends_at", "next_billing_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @field_validator("rental_access")
    @classmethod
    def normalize_rentals(cls, v: Dict[CoachingMode, datetime]) -> Dict[CoachingMode, datetime]:
        return {mode: ensure_utc(expiry) for mode, expiry in v.items()}
