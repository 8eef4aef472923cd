"""
SQL Document Store

DocumentStore implementation on SQLModel tables over async SQLAlchemy
(Postgres via asyncpg in production, SQLite via aiosqlite in tests).
Driver and connection failures surface as StoreUnavailableError.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from aura.domain.models import (
    ChatThread,
    CoreMemory,
    DailyInsight,
    UserProfile,
    ensure_utc,
)
from aura.infrastructure.db.database import DatabaseManager
from aura.infrastructure.db.models import (
    ChatThreadModel,
    CoreMemoryModel,
    InsightModel,
    ProcessedWebhookEventModel,
    UserProfileModel,
)
from aura.infrastructure.db.repositories.base_repository import DocumentStore, check_put_fields
from aura.infrastructure.exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)

_JSON_FIELDS = {"payment_method", "features", "twin_state"}


def _column_value(field: str, value: Any) -> Any:
    """Convert a domain field value into its column representation."""
    if value is None:
        return None
    if field == "rental_access":
        return {
            getattr(mode, "value", mode): ensure_utc(expiry).isoformat()
            for mode, expiry in value.items()
        }
    if field in _JSON_FIELDS:
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        return value
    if isinstance(value, datetime):
        return ensure_utc(value)
    return getattr(value, "value", value)


class SqlDocumentStore(DocumentStore):
    """
    Relational document store.

    Each public call runs in its own transaction.
    """

    def __init__(self, db: DatabaseManager):
        self._db = db

    @asynccontextmanager
    async def _session(
        self,
        operation: str,
        collection: str,
    ) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._db.session() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Store {operation} on {collection} failed: {e}")
            raise StoreUnavailableError(
                f"Database {operation} failed",
                operation=operation,
                collection=collection,
                original_error=e,
            )

    # =========================================================================
    # Profile
    # =========================================================================

    async def get(self, user_id: str) -> Optional[UserProfile]:
        async with self._session("get", "user_profiles") as session:
            model = await session.get(UserProfileModel, user_id)
            if model is None:
                return None
            result = await session.execute(
                select(CoreMemoryModel)
                .where(CoreMemoryModel.user_id == user_id)
                .order_by(CoreMemoryModel.created_at)
            )
            memories = [self._memory_to_domain(m) for m in result.scalars().all()]
            return self._profile_to_domain(model, memories)

    async def create(self, profile: UserProfile) -> UserProfile:
        async with self._session("create", "user_profiles") as session:
            session.add(self._profile_to_model(profile))
            for memory in profile.memories:
                session.add(self._memory_to_model(profile.id, memory))
        logger.info(f"Created profile for user {profile.id}")
        return profile

    async def find_by_customer(self, stripe_customer_id: str) -> Optional[UserProfile]:
        async with self._session("find_by_customer", "user_profiles") as session:
            result = await session.execute(
                select(UserProfileModel.id)
                .where(UserProfileModel.stripe_customer_id == stripe_customer_id)
                .limit(1)
            )
            user_id = result.scalar_one_or_none()
        if user_id is None:
            return None
        return await self.get(user_id)

    async def put(self, user_id: str, fields: Dict[str, Any]) -> None:
        check_put_fields(fields)
        values = {k: _column_value(k, v) for k, v in fields.items()}
        values["updated_at"] = datetime.now(timezone.utc)

        async with self._session("put", "user_profiles") as session:
            result = await session.execute(
                update(UserProfileModel)
                .where(UserProfileModel.id == user_id)
                .values(**values)
            )
            if result.rowcount == 0:
                model = self._profile_to_model(UserProfile(id=user_id))
                for key, value in values.items():
                    setattr(model, key, value)
                session.add(model)

    async def add_coins(self, user_id: str, amount: int) -> int:
        async with self._session("add_coins", "user_profiles") as session:
            result = await session.execute(
                update(UserProfileModel)
                .where(UserProfileModel.id == user_id)
                .values(
                    coins=UserProfileModel.coins + amount,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            if result.rowcount == 0:
                model = self._profile_to_model(UserProfile(id=user_id, coins=amount))
                session.add(model)
                return amount

            balance = await session.execute(
                select(UserProfileModel.coins).where(UserProfileModel.id == user_id)
            )
            return balance.scalar_one()

    async def append_memory(self, user_id: str, memory: CoreMemory) -> None:
        async with self._session("append_memory", "core_memories") as session:
            session.add(self._memory_to_model(user_id, memory))

    # =========================================================================
    # Threads
    # =========================================================================

    async def list_threads(self, user_id: str) -> List[ChatThread]:
        async with self._session("list_threads", "chat_threads") as session:
            result = await session.execute(
                select(ChatThreadModel)
                .where(ChatThreadModel.user_id == user_id)
                .order_by(ChatThreadModel.updated_at.desc())
            )
            return [self._thread_to_domain(m) for m in result.scalars().all()]

    async def get_thread(self, user_id: str, thread_id: str) -> Optional[ChatThread]:
        async with self._session("get_thread", "chat_threads") as session:
            model = await session.get(ChatThreadModel, thread_id)
            if model is None or model.user_id != user_id:
                return None
            return self._thread_to_domain(model)

    async def upsert_thread(self, user_id: str, thread: ChatThread) -> None:
        async with self._session("upsert_thread", "chat_threads") as session:
            model = await session.get(ChatThreadModel, thread.id)
            if model is None:
                session.add(self._thread_to_model(user_id, thread))
                return
            model.mode = thread.mode.value
            model.title = thread.title
            model.messages = [m.model_dump(mode="json") for m in thread.messages]
            model.updated_at = ensure_utc(thread.updated_at)
            session.add(model)

    # =========================================================================
    # Insights
    # =========================================================================

    async def append_insight(self, user_id: str, insight: DailyInsight) -> None:
        async with self._session("append_insight", "insights") as session:
            session.add(InsightModel(
                id=insight.id,
                user_id=user_id,
                source_mode=insight.source_mode.value,
                date=ensure_utc(insight.date),
                payload=insight.model_dump(mode="json"),
            ))

    async def list_insights(self, user_id: str) -> List[DailyInsight]:
        async with self._session("list_insights", "insights") as session:
            result = await session.execute(
                select(InsightModel)
                .where(InsightModel.user_id == user_id)
                .order_by(InsightModel.date)
            )
            return [DailyInsight.model_validate(m.payload) for m in result.scalars().all()]

    # =========================================================================
    # Webhook idempotency
    # =========================================================================

    async def is_event_processed(self, event_id: str) -> bool:
        async with self._session("is_event_processed", "processed_webhook_events") as session:
            model = await session.get(ProcessedWebhookEventModel, event_id)
            return model is not None

    async def mark_event_processed(self, event_id: str, event_type: str) -> None:
        async with self._session("mark_event_processed", "processed_webhook_events") as session:
            existing = await session.get(ProcessedWebhookEventModel, event_id)
            if existing is None:
                session.add(ProcessedWebhookEventModel(event_id=event_id, event_type=event_type))

    async def close(self) -> None:
        await self._db.close()

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _profile_to_domain(
        self,
        model: UserProfileModel,
        memories: List[CoreMemory],
    ) -> UserProfile:
        """Convert database model to domain entity."""
        return UserProfile(
            id=model.id,
            email=model.email,
            email_verified=model.email_verified,
            name=model.name or "",
            joined_at=model.joined_at,
            tier=model.tier,
            subscription_status=model.subscription_status,
            stripe_customer_id=model.stripe_customer_id,
            subscription_id=model.subscription_id,
            cancel_at_period_end=model.cancel_at_period_end or False,
            trial_ends_at=model.trial_ends_at,
            next_billing_date=model.next_billing_date,
            payment_method=model.payment_method,
            last_payment_failure_reason=model.last_payment_failure_reason,
            features=model.features or [],
            coins=model.coins or 0,
            streak_days=model.streak_days or 0,
            voice_enabled=model.voice_enabled,
            language=model.language or "en",
            last_viewed_marketing_version=model.last_viewed_marketing_version or 0,
            memories=memories,
            current_mode=model.current_mode,
            active_thread_id=model.active_thread_id,
            twin_state=model.twin_state or {},
            rental_access=model.rental_access or {},
        )

    def _profile_to_model(self, domain: UserProfile) -> UserProfileModel:
        """Convert domain entity to database model."""
        return UserProfileModel(
            id=domain.id,
            email=domain.email,
            email_verified=domain.email_verified,
            name=domain.name,
            joined_at=ensure_utc(domain.joined_at),
            tier=domain.tier.value,
            subscription_status=domain.subscription_status.value,
            stripe_customer_id=domain.stripe_customer_id,
            subscription_id=domain.subscription_id,
            cancel_at_period_end=domain.cancel_at_period_end,
            trial_ends_at=ensure_utc(domain.trial_ends_at),
            next_billing_date=ensure_utc(domain.next_billing_date),
            payment_method=_column_value("payment_method", domain.payment_method),
            last_payment_failure_reason=domain.last_payment_failure_reason,
            features=list(domain.features),
            coins=domain.coins,
            streak_days=domain.streak_days,
            voice_enabled=domain.voice_enabled,
            language=domain.language,
            last_viewed_marketing_version=domain.last_viewed_marketing_version,
            current_mode=domain.current_mode.value,
            active_thread_id=domain.active_thread_id,
            twin_state=domain.twin_state.model_dump(mode="json"),
            rental_access=_column_value("rental_access", domain.rental_access),
        )

    def _memory_to_domain(self, model: CoreMemoryModel) -> CoreMemory:
        return CoreMemory(
            id=model.id,
            content=model.content,
            category=model.category,
            importance=model.importance,
            created_at=model.created_at,
        )

    def _memory_to_model(self, user_id: str, domain: CoreMemory) -> CoreMemoryModel:
        return CoreMemoryModel(
            id=domain.id,
            user_id=user_id,
            content=domain.content,
            category=domain.category,
            importance=domain.importance,
            created_at=ensure_utc(domain.created_at),
        )

    def _thread_to_domain(self, model: ChatThreadModel) -> ChatThread:
        return ChatThread(
            id=model.id,
            mode=model.mode,
            title=model.title or "",
            messages=model.messages or [],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _thread_to_model(self, user_id: str, domain: ChatThread) -> ChatThreadModel:
        return ChatThreadModel(
            id=domain.id,
            user_id=user_id,
            mode=domain.mode.value,
            title=domain.title,
            messages=[m.model_dump(mode="json") for m in domain.messages],
            created_at=ensure_utc(domain.created_at),
            updated_at=ensure_utc(domain.updated_at),
        )
