"""
Service Container

Wires the fund flow services around one repository and one loaded
configuration.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .allocations import AllocationLedger
from .approvals import BillWorkflow, ExpenseWorkflow
from .config import load_config
from .contracts import ContractInstallmentTracker
from .hierarchy import OrgHierarchy, UserProfile
from .permissions import PermissionTable
from .repository import Repository
from .utilization import UtilizationAggregator, WalletBalanceCalculator
from .worker_ledger import AttendanceRegister, WorkerLedgerAccount

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """All fund flow services sharing a repository."""

    repository: Repository
    config: dict
    permissions: PermissionTable
    hierarchy: OrgHierarchy
    allocations: AllocationLedger
    utilization: UtilizationAggregator
    wallet: WalletBalanceCalculator
    expenses: ExpenseWorkflow
    bills: BillWorkflow
    ledger: WorkerLedgerAccount
    attendance: AttendanceRegister
    contracts: ContractInstallmentTracker


def build_services(
    repository: Repository,
    config: dict | None = None,
    config_dir: Path | str | None = None,
    users: Iterable[UserProfile | dict] | None = None,
) -> Services:
    """Build the service container.

    Args:
        repository: Record store shared by every service
        config: Already loaded configuration (takes precedence)
        config_dir: Path to configuration directory
        users: User directory to load; the configured users if None

    Returns:
        Services
    """
    config = config if config is not None else load_config(config_dir)

    permissions = PermissionTable(config=config)
    hierarchy = OrgHierarchy(repository, max_depth=config.get("hierarchy", {}).get("max_depth", 10))
    hierarchy.load_users(users if users is not None else config.get("users", []))
    allocations = AllocationLedger(repository, hierarchy, permissions)
    utilization = UtilizationAggregator(repository, allocations, config=config)
    ledger = WorkerLedgerAccount(repository, hierarchy, permissions, allocations, config=config)
    attendance = AttendanceRegister(repository, hierarchy, permissions, config=config)

    workflow_args = (repository, hierarchy, permissions, allocations, utilization)

    services = Services(
        repository=repository,
        config=config,
        permissions=permissions,
        hierarchy=hierarchy,
        allocations=allocations,
        utilization=utilization,
        wallet=WalletBalanceCalculator(repository, hierarchy, utilization),
        expenses=ExpenseWorkflow(*workflow_args, config=config),
        bills=BillWorkflow(*workflow_args, config=config),
        ledger=ledger,
        attendance=attendance,
        contracts=ContractInstallmentTracker(
            repository, hierarchy, permissions, ledger, attendance, config=config
        ),
    )

    logger.info(
        f"Fund flow services ready ({type(repository).__name__}, "
        f"over-utilization policy: {utilization.policy})"
    )
    return services
