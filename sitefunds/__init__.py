"""
Site Fund Flow

Fund allocation, utilization, approval and worker ledger core for
construction projects.
"""

from .exceptions import (
    AuthorizationError,
    ConflictError,
    FundFlowError,
    ImmutableStateError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .permissions import Actor, PermissionTable
from .repository import MemoryRepository, Page, Repository, SqlRepository
from .services import Services, build_services

__all__ = [
    # Services
    "Services",
    "build_services",
    "Actor",
    "PermissionTable",
    # Persistence
    "Repository",
    "MemoryRepository",
    "SqlRepository",
    "Page",
    # Errors
    "FundFlowError",
    "ValidationError",
    "InvalidStateError",
    "ImmutableStateError",
    "ConflictError",
    "InsufficientFundsError",
    "NotFoundError",
    "AuthorizationError",
]
