"""
Organization Hierarchy Module

Parent/child user chains (director -> manager -> supervisor -> worker).
Traversals are iterative breadth-first walks bounded by a maximum depth, so
a cycle or an unexpectedly deep chain can never recurse without limit.
"""

import logging
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from .exceptions import AuthorizationError, NotFoundError
from .kinds import USERS
from .money import decimal_or_none, str_or_none
from .repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class UserProfile:
    """User identity as supplied by the user-management collaborator."""

    id: str
    name: str
    role: str
    parent_id: str | None = None
    daily_rate: Decimal | None = None
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "parent_id": self.parent_id,
            "daily_rate": str_or_none(self.daily_rate),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            role=data["role"],
            parent_id=data.get("parent_id"),
            daily_rate=decimal_or_none(data.get("daily_rate")),
            is_active=data.get("is_active", True),
        )


class OrgHierarchy:
    """Ancestor/descendant queries over user profiles."""

    def __init__(self, repository: Repository, max_depth: int = 10):
        self.repository = repository
        self.max_depth = max_depth

    def get_user(self, user_id: str) -> UserProfile:
        data = self.repository.get(USERS, user_id)
        if data is None:
            raise NotFoundError("User", user_id)
        return UserProfile.from_dict(data)

    def find_user(self, user_id: str) -> UserProfile | None:
        data = self.repository.get(USERS, user_id)
        return UserProfile.from_dict(data) if data else None

    def add_user(self, user: UserProfile) -> UserProfile:
        """Register a new user profile."""
        self.repository.insert(USERS, user.id, user.to_dict())
        return user

    def load_users(self, users: Iterable[UserProfile | dict]) -> int:
        """Insert or refresh profiles from the configured user directory.

        Args:
            users: Profiles or their dicts (id, name, role, parent_id,
                daily_rate, is_active)

        Returns:
            Number of profiles loaded
        """
        count = 0
        with self.repository.transaction():
            for entry in users:
                user = entry if isinstance(entry, UserProfile) else UserProfile.from_dict(entry)
                if self.repository.get(USERS, user.id) is None:
                    self.repository.insert(USERS, user.id, user.to_dict())
                else:
                    self.repository.update(USERS, user.id, user.to_dict())
                count += 1

        if count:
            logger.info(f"Loaded {count} user profiles")
        return count

    def _children_map(self) -> dict[str, list[str]]:
        children: dict[str, list[str]] = {}
        for data in self.repository.find(USERS):
            parent_id = data.get("parent_id")
            if parent_id:
                children.setdefault(parent_id, []).append(data["id"])
        return children

    def children(self, user_id: str) -> list[str]:
        return list(self._children_map().get(user_id, []))

    def descendants(self, user_id: str) -> list[str]:
        """All users below user_id, nearest first, up to max_depth levels."""
        children = self._children_map()
        result: list[str] = []
        seen = {user_id}
        queue = deque([(user_id, 0)])

        while queue:
            current, depth = queue.popleft()
            if depth >= self.max_depth:
                if children.get(current):
                    logger.warning(f"Hierarchy below {user_id} truncated at depth {self.max_depth}")
                continue
            for child_id in children.get(current, []):
                if child_id in seen:
                    continue
                seen.add(child_id)
                result.append(child_id)
                queue.append((child_id, depth + 1))

        return result

    def ancestors(self, user_id: str) -> list[str]:
        """Chain of superiors from the direct parent upwards."""
        result: list[str] = []
        seen = {user_id}
        current = self.find_user(user_id)

        while current and current.parent_id and len(result) < self.max_depth:
            if current.parent_id in seen:
                logger.warning(f"Cycle in hierarchy at user {current.parent_id}")
                break
            seen.add(current.parent_id)
            result.append(current.parent_id)
            current = self.find_user(current.parent_id)

        return result

    def superior(self, user_id: str) -> str | None:
        user = self.find_user(user_id)
        return user.parent_id if user else None

    def is_descendant(self, candidate_id: str, of_user_id: str) -> bool:
        """True when of_user_id is somewhere above candidate_id."""
        return of_user_id in self.ancestors(candidate_id)

    def require_team_member(self, lead_id: str, user_id: str, message: str) -> None:
        """Raise AuthorizationError unless user_id reports (transitively) to lead_id."""
        if not self.is_descendant(user_id, lead_id):
            raise AuthorizationError(message, {"user_id": user_id, "lead_id": lead_id})
