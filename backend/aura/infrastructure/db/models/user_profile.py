"""
UserProfile SQLModel for Aura

Database model for the per-user profile document. Scalar profile fields are
columns; nested values (payment method, twin state, rentals) are JSON.
Memories live in their own table so appends never rewrite the profile row.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel


class UserProfileModel(SQLModel, table=True):
    """
    user_profiles table.

    Timestamps are timezone-aware UTC.
    """

    __tablename__ = "user_profiles"

    id: str = Field(primary_key=True, max_length=128, description="Identity provider uid")
    email: Optional[str] = Field(default=None, index=True, max_length=320)
    email_verified: bool = Field(default=False)
    name: str = Field(default="", max_length=255)
    joined_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )

    # Subscription & payment
    tier: str = Field(default="FREE", max_length=16)
    subscription_status: str = Field(default="free", max_length=32)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    subscription_id: Optional[str] = Field(default=None, index=True)
    cancel_at_period_end: bool = Field(default=False)
    trial_ends_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    next_billing_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    payment_method: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    last_payment_failure_reason: Optional[str] = Field(default=None)
    features: list = Field(default_factory=list, sa_column=Column(JSON))

    # Wallet and preferences
    coins: int = Field(default=0, nullable=False)
    streak_days: int = Field(default=0)
    voice_enabled: bool = Field(default=True)
    language: str = Field(default="en", max_length=8)
    last_viewed_marketing_version: int = Field(default=0)

    # Session state
    current_mode: str = Field(default="BASELINE", max_length=16)
    active_thread_id: Optional[str] = Field(default=None)
    twin_state: dict = Field(default_factory=dict, sa_column=Column(JSON))
    rental_access: dict = Field(default_factory=dict, sa_column=Column(JSON))

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
