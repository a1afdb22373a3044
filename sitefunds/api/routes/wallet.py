"""
Wallet API Routes

Provides the read-only wallet summary endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends

from ...exceptions import AuthorizationError
from ...permissions import Actor
from ...services import Services
from ..auth import get_actor
from ..deps import get_services

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/me")
async def my_wallet(
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Wallet summary of the current user."""
    return services.wallet.wallet_summary(actor.user_id).to_dict()


@router.get("/{user_id}")
async def user_wallet(
    user_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Wallet summary of the user or a member of their team."""
    if (
        user_id != actor.user_id
        and not services.permissions.is_top_role(actor.role)
        and not services.hierarchy.is_descendant(user_id, actor.user_id)
    ):
        raise AuthorizationError(f"Access denied to wallet of user {user_id}")

    return services.wallet.wallet_summary(user_id).to_dict()
