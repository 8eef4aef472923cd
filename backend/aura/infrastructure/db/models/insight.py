"""
Insight SQLModel for Aura

Append-only insight records. The full insight body is kept as JSON; date and
source mode are columns for ordering and filtering.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel


class InsightModel(SQLModel, table=True):
    """insights table."""

    __tablename__ = "insights"

    id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(..., index=True, nullable=False, max_length=128)
    source_mode: str = Field(default="BASELINE", max_length=16)
    date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
