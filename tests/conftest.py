"""
Pytest configuration and fixtures for site fund flow tests.
"""

import os
from decimal import Decimal
from pathlib import Path

import pytest

from sitefunds.allocations import FundAllocation
from sitefunds.config import load_config
from sitefunds.hierarchy import UserProfile
from sitefunds.permissions import Actor
from sitefunds.repository import MemoryRepository
from sitefunds.services import Services, build_services

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def config(config_dir: Path) -> dict:
    """Load the fund flow configuration."""
    return load_config(config_dir)


@pytest.fixture
def repository() -> MemoryRepository:
    """Return an empty in-memory repository."""
    return MemoryRepository()


@pytest.fixture
def services(repository: MemoryRepository, config: dict) -> Services:
    """Return services over the in-memory repository, with a seeded org.

    director
      +-- manager
            +-- supervisor
            |     +-- worker    (daily rate 355)
            +-- supervisor2
                  +-- worker2   (daily rate 500)
    """
    services = build_services(repository, config=config)
    for profile in (
        UserProfile(id="director", name="Dina Director", role="director"),
        UserProfile(id="manager", name="Manny Manager", role="manager", parent_id="director"),
        UserProfile(id="supervisor", name="Sam Supervisor", role="supervisor", parent_id="manager"),
        UserProfile(id="supervisor2", name="Sue Supervisor", role="supervisor", parent_id="manager"),
        UserProfile(
            id="worker", name="Wes Worker", role="worker", parent_id="supervisor", daily_rate=Decimal("355")
        ),
        UserProfile(
            id="worker2", name="Wyn Worker", role="worker", parent_id="supervisor2", daily_rate=Decimal("500")
        ),
    ):
        services.hierarchy.add_user(profile)
    return services


@pytest.fixture
def director() -> Actor:
    return Actor(user_id="director", role="director", name="Dina Director")


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="manager", role="manager", name="Manny Manager")


@pytest.fixture
def supervisor() -> Actor:
    return Actor(user_id="supervisor", role="supervisor", name="Sam Supervisor")


@pytest.fixture
def supervisor2() -> Actor:
    return Actor(user_id="supervisor2", role="supervisor", name="Sue Supervisor")


@pytest.fixture
def worker() -> Actor:
    return Actor(user_id="worker", role="worker", name="Wes Worker")


@pytest.fixture
def disburse(services: Services):
    """Factory creating an allocation and taking it through to disbursed."""

    def _disburse(
        funder: Actor,
        approver: Actor,
        to_user: str,
        amount: str,
        parent_allocation_id: str | None = None,
    ) -> FundAllocation:
        recipient = Actor(user_id=to_user, role=services.hierarchy.get_user(to_user).role)
        allocation = services.allocations.create(
            funder,
            to_user=to_user,
            amount=amount,
            site_id="site-1",
            parent_allocation_id=parent_allocation_id,
        )
        services.allocations.approve(approver, allocation.id)
        return services.allocations.disburse(recipient, allocation.id)

    return _disburse


@pytest.fixture
def funded_supervisor(services: Services, director: Actor, manager: Actor, disburse) -> FundAllocation:
    """A disbursed allocation of 50000 from the manager to the supervisor."""
    return disburse(manager, director, "supervisor", "50000")


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.setdefault("POSTGRES_HOST", "localhost")
    os.environ.setdefault("POSTGRES_PORT", "5432")
    os.environ.setdefault("POSTGRES_DB", "site_funds_test")
    os.environ.setdefault("POSTGRES_USER", "test")
    os.environ.setdefault("POSTGRES_PASSWORD", "test")
    yield
