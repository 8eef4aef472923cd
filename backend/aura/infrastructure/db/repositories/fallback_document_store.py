"""
Fallback Document Store

Routes every call to a primary store and retries it on a local store when
the primary raises StoreUnavailableError. The degradation is logged; callers
never see the error.
"""

import logging
from typing import Any, Dict, List, Optional

from aura.domain.models import ChatThread, CoreMemory, DailyInsight, UserProfile
from aura.infrastructure.db.repositories.base_repository import DocumentStore
from aura.infrastructure.exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)


class FallbackDocumentStore(DocumentStore):
    """Primary store with a transparent local fallback."""

    def __init__(self, primary: DocumentStore, local: DocumentStore):
        self.primary = primary
        self.local = local

    async def _call(self, operation: str, *args):
        try:
            return await getattr(self.primary, operation)(*args)
        except StoreUnavailableError as e:
            logger.warning(
                f"Primary store unavailable for {operation}, using local fallback: {e.message}"
            )
            return await getattr(self.local, operation)(*args)

    async def get(self, user_id: str) -> Optional[UserProfile]:
        return await self._call("get", user_id)

    async def create(self, profile: UserProfile) -> UserProfile:
        return await self._call("create", profile)

    async def find_by_customer(self, stripe_customer_id: str) -> Optional[UserProfile]:
        return await self._call("find_by_customer", stripe_customer_id)

    async def put(self, user_id: str, fields: Dict[str, Any]) -> None:
        await self._call("put", user_id, fields)

    async def add_coins(self, user_id: str, amount: int) -> int:
        return await self._call("add_coins", user_id, amount)

    async def append_memory(self, user_id: str, memory: CoreMemory) -> None:
        await self._call("append_memory", user_id, memory)

    async def list_threads(self, user_id: str) -> List[ChatThread]:
        return await self._call("list_threads", user_id)

    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]:
        return await self._call("get_thread", user_id, thread_id)

    async def upsert_thread(self, user_id: str, thread: ChatThread) -> None:
        await self._call("upsert_thread", user_id, thread)

    async def append_insight(self, user_id: str, insight: DailyInsight) -> None:
        await self._call("append_insight", user_id, insight)

    async def list_insights(self, user_id: str) -> List[DailyInsight]:
        return await self._call("list_insights", user_id)

    async def is_event_processed(self, event_id: str) -> bool:
        return await self._call("is_event_processed", event_id)

    async def mark_event_processed(self, event_id: str, event_type: str) -> None:
        await self._call("mark_event_processed", event_id, event_type)

    async def close(self) -> None:
        await self.primary.close()
        await self.local.close()
