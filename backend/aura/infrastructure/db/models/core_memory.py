"""
CoreMemory SQLModel for Aura

Insert-only per-user memory records.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class CoreMemoryModel(SQLModel, table=True):
    """core_memories table."""

    __tablename__ = "core_memories"

    id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(..., index=True, nullable=False, max_length=128)
    content: str = Field(..., nullable=False)
    category: str = Field(default="fact", max_length=16)
    importance: int = Field(default=7)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
