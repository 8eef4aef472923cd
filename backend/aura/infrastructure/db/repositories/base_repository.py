"""
Document Store Interface for Aura

Abstract persistence contract shared by every storage strategy. Profiles,
threads and insights are documents keyed by user id; memories and insights
are append-only; coin balances change through an atomic increment.

Missing data is tolerated: an absent profile is None, and absent
collections are empty lists.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from aura.domain.models import ChatThread, CoreMemory, DailyInsight, UserProfile


class DocumentStore(ABC):
    """
    Persistence interface for user documents.

    Implementations raise StoreUnavailableError when the backend cannot be
    reached; anything else is a programming error.
    """

    # =========================================================================
    # Profile
    # =========================================================================

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserProfile]:
        """Load a profile, or None if it does not exist."""

    @abstractmethod
    async def create(self, profile: UserProfile) -> UserProfile:
        """Insert a new profile, including any memories it carries."""

    @abstractmethod
    async def find_by_customer(self, stripe_customer_id: str) -> Optional[UserProfile]:
        """Load the profile linked to a Stripe customer, or None."""

    @abstractmethod
    async def put(self, user_id: str, fields: Dict[str, Any]) -> None:
        """
        Field-scoped merge into the profile. Last write wins per field.

        Memories are not writable here; use append_memory.
        """

    @abstractmethod
    async def add_coins(self, user_id: str, amount: int) -> int:
        """Atomically add amount (may be negative) and return the new balance."""

    @abstractmethod
    async def append_memory(self, user_id: str, memory: CoreMemory) -> None:
        """Insert-only memory record."""

    # =========================================================================
    # Threads
    # =========================================================================

    @abstractmethod
    async def list_threads(self, user_id: str) -> List[ChatThread]:
        """All threads, most recently updated first."""

    @abstractmethod
    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]:
        """Load one thread owned by user_id."""

    @abstractmethod
    async def upsert_thread(self, user_id: str, thread: ChatThread) -> None:
        """Full-document replace-or-create."""

    # =========================================================================
    # Insights
    # =========================================================================

    @abstractmethod
    async def append_insight(self, user_id: str, insight: DailyInsight) -> None:
        """Append an insight; insights are never removed."""

    @abstractmethod
    async def list_insights(self, user_id: str) -> List[DailyInsight]:
        """All insights, oldest first."""

    # =========================================================================
    # Webhook idempotency
    # =========================================================================

    @abstractmethod
    async def is_event_processed(self, event_id: str) -> bool:
        """Whether a webhook event was already applied."""

    @abstractmethod
    async def mark_event_processed(self, event_id: str, event_type: str) -> None:
        """Record a webhook event as applied."""

    async def close(self) -> None:
        """Release backend resources."""
        return None


def check_put_fields(fields: Dict[str, Any]) -> None:
    """Reject profile merges that would clobber append-only or identity fields."""
    forbidden = {"id", "memories"} & set(fields)
    if forbidden:
        raise ValueError(f"Fields not writable through put: {sorted(forbidden)}")
