"""
API Dependencies

Process-wide service container for the API. Development runs on the
in-memory repository unless a database backend is requested.
"""

import logging
import os
from functools import lru_cache

from ..database import get_sql_repository
from ..repository import MemoryRepository, Repository
from ..services import Services, build_services

logger = logging.getLogger(__name__)


def _repository_from_env() -> Repository:
    default_backend = "memory" if os.getenv("ENVIRONMENT", "development") == "development" else "sql"
    backend = os.getenv("REPOSITORY_BACKEND", default_backend)

    if backend == "memory":
        logger.info("Using in-memory repository")
        return MemoryRepository()
    if backend == "sql":
        return get_sql_repository()

    raise ValueError(f"Unknown REPOSITORY_BACKEND: {backend}")


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Get the process-wide service container."""
    return build_services(_repository_from_env(), config_dir=os.getenv("FUND_FLOW_CONFIG_DIR"))
