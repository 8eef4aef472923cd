"""
Wallet Routes

Coin balance and coin-pack checkout. Coins are credited when Stripe
confirms the payment through the webhook, never on redirect.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from aura.api.dependencies import get_current_user, get_services
from aura.api.routes.subscriptions import ensure_customer
from aura.domain.models import UserProfile
from aura.domain.subscription import (
    COIN_PACKS,
    CheckoutResponse,
    CoinCheckoutRequest,
    CoinPack,
)
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter()


class CoinPackInfo(BaseModel):
    pack: CoinPack
    name: str
    coins: int
    price: int  # In cents


class WalletResponse(BaseModel):
    coins: int
    packs: List[CoinPackInfo]


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(
    user: UserProfile = Depends(get_current_user),
):
    return WalletResponse(
        coins=user.coins,
        packs=[CoinPackInfo(pack=pack, **info) for pack, info in COIN_PACKS.items()],
    )


@router.post("/wallet/checkout", response_model=CheckoutResponse)
async def create_coin_checkout(
    request: CoinCheckoutRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Start a one-off Stripe payment for a coin pack."""
    customer_id = await ensure_customer(services, user)
    session = await services.payments.create_coin_checkout_session(
        customer_id=customer_id,
        pack=request.pack,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        user_id=user.id,
    )
    logger.info(f"Created coin checkout {session.id} for user {user.id}")
    return CheckoutResponse(checkout_url=session.url, session_id=session.id)
