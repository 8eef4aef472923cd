"""
Local Document Store

In-process key-value store with the same shape as the SQL store. Documents
are held in their JSON form, so every read returns a fresh copy. When a path
is configured the whole store is persisted to a JSON file after each write
and reloaded at startup.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from aura.domain.models import ChatThread, CoreMemory, DailyInsight, UserProfile
from aura.infrastructure.db.repositories.base_repository import DocumentStore, check_put_fields
from aura.infrastructure.exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class LocalDocumentStore(DocumentStore):
    """
    Dictionary-backed document store.

    Used as the primary store in development and tests, and as the fallback
    behind the SQL store when the database is unreachable.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path) if path else None
        self._lock = asyncio.Lock()
        self._profiles: Dict[str, dict] = {}
        self._threads: Dict[str, Dict[str, dict]] = {}
        self._insights: Dict[str, List[dict]] = {}
        self._events: Dict[str, str] = {}

        if self._path and self._path.exists():
            self._load()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load local store from {self._path}: {e}")
            return

        self._profiles = data.get("profiles", {})
        self._threads = data.get("threads", {})
        self._insights = data.get("insights", {})
        self._events = data.get("events", {})
        logger.info(f"Loaded local store from {self._path} ({len(self._profiles)} profiles)")

    def _snapshot(self) -> str:
        return json.dumps({
            "profiles": self._profiles,
            "threads": self._threads,
            "insights": self._insights,
            "events": self._events,
        })

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, self._path)

    async def _flush(self, operation: str) -> None:
        if not self._path:
            return
        try:
            await asyncio.to_thread(self._write, self._snapshot())
        except OSError as e:
            raise StoreUnavailableError(
                f"Failed to persist local store: {e}",
                operation=operation,
                original_error=e,
            )

    # =========================================================================
    # Profile
    # =========================================================================

    async def get(self, user_id: str) -> Optional[UserProfile]:
        data = self._profiles.get(user_id)
        return UserProfile.model_validate(data) if data is not None else None

    async def create(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            self._profiles[profile.id] = profile.model_dump(mode="json")
            await self._flush("create")
        return profile

    async def find_by_customer(self, stripe_customer_id: str) -> Optional[UserProfile]:
        for data in self._profiles.values():
            if data.get("stripe_customer_id") == stripe_customer_id:
                return UserProfile.model_validate(data)
        return None

    async def put(self, user_id: str, fields: Dict[str, Any]) -> None:
        check_put_fields(fields)
        async with self._lock:
            current = self._profiles.get(user_id) or UserProfile(id=user_id).model_dump(mode="json")
            merged = {**current, **{k: _jsonable(v) for k, v in fields.items()}}
            self._profiles[user_id] = UserProfile.model_validate(merged).model_dump(mode="json")
            await self._flush("put")

    async def add_coins(self, user_id: str, amount: int) -> int:
        async with self._lock:
            current = self._profiles.get(user_id) or UserProfile(id=user_id).model_dump(mode="json")
            current["coins"] = int(current.get("coins", 0)) + amount
            self._profiles[user_id] = current
            await self._flush("add_coins")
            return current["coins"]

    async def append_memory(self, user_id: str, memory: CoreMemory) -> None:
        async with self._lock:
            current = self._profiles.get(user_id) or UserProfile(id=user_id).model_dump(mode="json")
            current.setdefault("memories", []).append(memory.model_dump(mode="json"))
            self._profiles[user_id] = current
            await self._flush("append_memory")

    # =========================================================================
    # Threads
    # =========================================================================

    async def list_threads(self, user_id: str) -> List[ChatThread]:
        threads = [
            ChatThread.model_validate(data)
            for data in self._threads.get(user_id, {}).values()
        ]
        return sorted(threads, key=lambda t: t.updated_at, reverse=True)

    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]:
        data = self._threads.get(user_id, {}).get(thread_id)
        return ChatThread.model_validate(data) if data is not None else None

    async def upsert_thread(self, user_id: str, thread: ChatThread) -> None:
        async with self._lock:
            self._threads.setdefault(user_id, {})[thread.id] = thread.model_dump(mode="json")
            await self._flush("upsert_thread")

    # =========================================================================
    # Insights
    # =========================================================================

    async def append_insight(self, user_id: str, insight: DailyInsight) -> None:
        async with self._lock:
            self._insights.setdefault(user_id, []).append(insight.model_dump(mode="json"))
            await self._flush("append_insight")

    async def list_insights(self, user_id: str) -> List[DailyInsight]:
        insights = [DailyInsight.model_validate(d) for d in self._insights.get(user_id, [])]
        return sorted(insights, key=lambda i: i.date)

    # =========================================================================
    # Webhook idempotency
    # =========================================================================

    async def is_event_processed(self, event_id: str) -> bool:
        return event_id in self._events

    async def mark_event_processed(self, event_id: str, event_type: str) -> None:
        async with self._lock:
            self._events[event_id] = event_type
            await self._flush("mark_event_processed")
        logger.debug(f"Marked event {event_id} ({event_type}) processed")
