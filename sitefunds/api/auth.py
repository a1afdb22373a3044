"""
Authentication Module

Resolves the acting user from the X-User-ID header against the user
profiles supplied by the user-management collaborator.
"""

import os

from fastapi import Depends, HTTPException, Header, status
from pydantic import BaseModel

from ..permissions import Actor
from ..services import Services
from .deps import get_services


class User(BaseModel):
    """Authenticated user model."""

    user_id: str
    name: str
    role: str
    permissions: list[str]

    def as_actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, name=self.name)


DEV_USER_ID = "dev"


def _dev_user(services: Services) -> User:
    profile = services.hierarchy.find_user(DEV_USER_ID)
    name = profile.name if profile else "Developer"
    role = profile.role if profile else services.permissions.top_role or "director"
    return User(
        user_id=DEV_USER_ID,
        name=name,
        role=role,
        permissions=services.permissions.permissions_for(role),
    )


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    services: Services = Depends(get_services),
) -> User:
    """Get current authenticated user from request headers.

    Args:
        x_user_id: User ID from header
        services: Service container

    Returns:
        Authenticated User

    Raises:
        HTTPException: If authentication fails
    """
    # Development mode: requests without a header act as the top authority
    if os.getenv("ENVIRONMENT", "development") == "development":
        if not x_user_id:
            return _dev_user(services)

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )

    profile = services.hierarchy.find_user(x_user_id)

    if not profile or not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not authorized",
        )

    return User(
        user_id=profile.id,
        name=profile.name,
        role=profile.role,
        permissions=services.permissions.permissions_for(profile.role),
    )


async def get_actor(user: User = Depends(get_current_user)) -> Actor:
    """Acting user as passed to the fund flow services."""
    return user.as_actor()
