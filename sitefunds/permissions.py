"""
Permissions Module

Capability table keyed by role and operation. Every workflow checks its
operation once, at the boundary, instead of comparing role numbers inline.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import load_config
from .exceptions import AuthorizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The user performing an operation."""

    user_id: str
    role: str
    name: str = ""


class PermissionTable:
    """Evaluates role capabilities loaded from configuration."""

    def __init__(self, config: dict | None = None, config_dir: Path | str | None = None):
        """Initialize the permission table.

        Args:
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.config = config if config is not None else load_config(config_dir)
        self.roles: list[str] = list(self.config.get("roles", []))
        self.permissions: dict[str, list[str]] = self.config.get("permissions", {})

    @property
    def top_role(self) -> str | None:
        return self.roles[0] if self.roles else None

    def is_top_role(self, role: str) -> bool:
        return role == self.top_role

    def rank(self, role: str) -> int:
        """Position of a role in the hierarchy (0 = top authority).

        Unknown roles rank below every configured role.
        """
        try:
            return self.roles.index(role)
        except ValueError:
            return len(self.roles)

    def permissions_for(self, role: str) -> list[str]:
        return list(self.permissions.get(role, []))

    def has_permission(self, actor: Actor, operation: str) -> bool:
        """Check if an actor's role grants an operation.

        Supports the "*" wildcard and namespace wildcards such as "expense.*".
        """
        granted = self.permissions.get(actor.role, [])
        if "*" in granted or operation in granted:
            return True

        namespace = operation.split(".", 1)[0]
        return f"{namespace}.*" in granted

    def require(self, actor: Actor, operation: str) -> None:
        """Raise AuthorizationError unless the actor may perform the operation."""
        if not self.has_permission(actor, operation):
            logger.info(f"Denied {operation} for user {actor.user_id} ({actor.role})")
            raise AuthorizationError(
                f"Role '{actor.role}' is not permitted to perform '{operation}'",
                {"operation": operation, "role": actor.role},
            )
