"""
SQLModel ORM Models for Aura

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from aura.infrastructure.db.models.user_profile import UserProfileModel
from aura.infrastructure.db.models.core_memory import CoreMemoryModel
from aura.infrastructure.db.models.chat_thread import ChatThreadModel
from aura.infrastructure.db.models.insight import InsightModel
from aura.infrastructure.db.models.webhook_event import ProcessedWebhookEventModel


__all__ = [
    "UserProfileModel",
    "CoreMemoryModel",
    "ChatThreadModel",
    "InsightModel",
    "ProcessedWebhookEventModel",
]
