"""
Service Container

Builds every collaborator once at startup from Settings. Strategies
(document store backend, model provider) are chosen here; the container
lives on app.state and reaches routes through api.dependencies.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from aura.config.settings import Settings
from aura.domain.accounts import AccountService
from aura.domain.billing import SubscriptionActions, SubscriptionSync
from aura.domain.conversation import ConversationOrchestrator
from aura.infrastructure.ai.companion_ai import CompanionAI
from aura.infrastructure.ai.gemini_service import GeminiClient
from aura.infrastructure.ai.model_client import ModelClient, OfflineModelClient
from aura.infrastructure.auth import IdentityService, TokenVerifier
from aura.infrastructure.db import (
    DatabaseManager,
    DocumentStore,
    FallbackDocumentStore,
    LocalDocumentStore,
    SqlDocumentStore,
)
from aura.infrastructure.payments import StripeService


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    model: ModelClient
    companion: CompanionAI
    payments: StripeService
    identity: IdentityService
    tokens: TokenVerifier
    orchestrator: ConversationOrchestrator
    accounts: AccountService
    subscription_actions: SubscriptionActions
    subscription_sync: SubscriptionSync
    database: Optional[DatabaseManager] = None

    async def startup(self) -> None:
        """Create tables for development databases; production schema is managed by Alembic."""
        if self.database is None or not self.settings.is_development:
            return
        try:
            await self.database.create_tables()
            logger.info("Database tables ensured")
        except Exception as e:
            logger.warning(f"Database table creation skipped: {e}")

    async def shutdown(self) -> None:
        """Drain background passes, then release the store and engine."""
        await self.orchestrator.aclose()
        await self.store.close()
        if self.database is not None:
            await self.database.close()


def build_store(settings: Settings, database: Optional[DatabaseManager]) -> DocumentStore:
    """Select the document store strategy."""
    if settings.store_backend == "sql" and database is not None:
        primary = SqlDocumentStore(database)
        if settings.store_local_fallback:
            logger.info("Document store: sql with local fallback")
            return FallbackDocumentStore(primary, LocalDocumentStore(settings.local_store_path))
        logger.info("Document store: sql")
        return primary

    logger.info("Document store: local")
    return LocalDocumentStore(settings.local_store_path)


def build_model(settings: Settings) -> ModelClient:
    """Select the generative model strategy."""
    if settings.llm_provider == "gemini":
        return GeminiClient(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            temperature=settings.model_temperature,
            timeout_seconds=settings.model_timeout_seconds,
        )
    logger.warning("LLM_PROVIDER=offline: AI calls will use fallback defaults")
    return OfflineModelClient()


def build_services(settings: Settings) -> ServiceContainer:
    """Wire the application's collaborators."""
    database = DatabaseManager.from_settings(settings) if settings.database_url else None
    store = build_store(settings, database)
    model = build_model(settings)
    companion = CompanionAI(model, reply_timeout_seconds=settings.reply_timeout_seconds)
    payments = StripeService.from_settings(settings)

    orchestrator = ConversationOrchestrator(store, companion)
    accounts = AccountService(store, orchestrator)

    return ServiceContainer(
        settings=settings,
        store=store,
        model=model,
        companion=companion,
        payments=payments,
        identity=IdentityService(settings.firebase_api_key),
        tokens=TokenVerifier(settings.firebase_project_id, settings.auth_jwt_secret),
        orchestrator=orchestrator,
        accounts=accounts,
        subscription_actions=SubscriptionActions(store, payments),
        subscription_sync=SubscriptionSync(store, payments, accounts),
        database=database,
    )
