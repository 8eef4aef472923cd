"""
ChatThread SQLModel for Aura

Database model for chat threads. A thread is replaced as a whole document,
so its messages are stored inline as JSON.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel


class ChatThreadModel(SQLModel, table=True):
    """
    chat_threads table.

    Stores conversation threads for users.
    """

    __tablename__ = "chat_threads"

    id: str = Field(primary_key=True, max_length=64, description="Unique thread identifier")

    user_id: str = Field(
        ...,
        index=True,
        nullable=False,
        max_length=128,
        description="Owner uid"
    )

    mode: str = Field(default="BASELINE", max_length=16)
    title: str = Field(default="", max_length=255)
    messages: list = Field(default_factory=list, sa_column=Column(JSON))

    # Timestamps (UTC)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
        description="Thread creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
        index=True,
        description="Last message timestamp"
    )
