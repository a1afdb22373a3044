"""
Utilization Aggregator Module

Computes how much of an allocation has been consumed by approved expenses,
approved bills, worker ledger payments and sub-allocations. Figures are
always recomputed from the source records; nothing is cached.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..allocations.ledger import AllocationLedger, FundAllocation
from ..config import load_config
from ..exceptions import InsufficientFundsError, ValidationError
from ..kinds import ALLOCATIONS, BILLS, EXPENSES, LEDGER_ENTRIES
from ..money import ZERO, percent, quantize, to_decimal
from ..repository import Repository

logger = logging.getLogger(__name__)

# Statuses whose amounts count against the funding allocation
EXPENSE_UTILIZED_STATUSES = ("approved", "paid")
BILL_UTILIZED_STATUSES = ("approved", "credited", "paid")
SUB_ALLOCATION_UTILIZED_STATUSES = ("approved", "disbursed")

OVER_UTILIZATION_POLICIES = ("advisory", "enforce")


def _sum(rows: list[dict], key: str) -> Decimal:
    return sum((Decimal(str(r.get(key) or 0)) for r in rows), ZERO)


@dataclass
class UtilizationReport:
    """Consumption of a single allocation."""

    allocation_id: str
    allocated: Decimal
    expenses_total: Decimal
    bills_total: Decimal
    ledger_debit_net: Decimal
    sub_allocations_total: Decimal
    total_utilized: Decimal
    remaining_balance: Decimal
    utilization_percent: int
    pending_requests_total: Decimal = ZERO
    status: str = "ok"  # 'ok', 'warning', 'critical', 'exceeded'

    @property
    def is_over_utilized(self) -> bool:
        return self.remaining_balance < 0

    def to_dict(self) -> dict:
        return {
            "allocation_id": self.allocation_id,
            "allocated": str(self.allocated),
            "expenses_total": str(self.expenses_total),
            "bills_total": str(self.bills_total),
            "ledger_debit_net": str(self.ledger_debit_net),
            "sub_allocations_total": str(self.sub_allocations_total),
            "total_utilized": str(self.total_utilized),
            "remaining_balance": str(self.remaining_balance),
            "utilization_percent": self.utilization_percent,
            "pending_requests_total": str(self.pending_requests_total),
            "status": self.status,
            "is_over_utilized": self.is_over_utilized,
        }


@dataclass
class FundAvailability:
    """Advisory answer to "can this allocation cover this amount?"."""

    allocation_id: str
    requested: Decimal
    balance: Decimal
    available: bool
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "allocation_id": self.allocation_id,
            "requested": str(self.requested),
            "balance": str(self.balance),
            "available": self.available,
            "message": self.message,
        }


class UtilizationAggregator:
    """Attributes downstream spending to allocations."""

    def __init__(
        self,
        repository: Repository,
        allocations: AllocationLedger,
        config: dict | None = None,
        config_dir: Path | str | None = None,
    ):
        """Initialize the aggregator.

        Args:
            repository: Record store
            allocations: Allocation ledger
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.repository = repository
        self.allocations = allocations
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        utilization = self.config.get("utilization", {})
        self.thresholds = utilization.get("thresholds", {})
        self.policy = utilization.get("over_utilization_policy", "advisory")

        if self.policy not in OVER_UTILIZATION_POLICIES:
            raise ValidationError(
                f"Unknown over-utilization policy: {self.policy}",
                {"allowed": list(OVER_UTILIZATION_POLICIES)},
            )

    @property
    def enforces_balance(self) -> bool:
        return self.policy == "enforce"

    def utilization(self, allocation_id: str) -> UtilizationReport:
        """Compute utilization for an allocation.

        Args:
            allocation_id: Allocation ID

        Returns:
            UtilizationReport
        """
        return self.utilization_for(self.allocations.get(allocation_id))

    def utilization_for(self, allocation: FundAllocation) -> UtilizationReport:
        """Compute utilization for an already loaded allocation."""
        expenses = self.repository.find(EXPENSES, fund_allocation_id=allocation.id)
        bills = self.repository.find(BILLS, fund_allocation_id=allocation.id)
        entries = self.repository.find(LEDGER_ENTRIES, fund_allocation_id=allocation.id)
        children = self.repository.find(
            ALLOCATIONS,
            parent_allocation_id=allocation.id,
            status=list(SUB_ALLOCATION_UTILIZED_STATUSES),
        )

        expenses_total = _sum(
            [e for e in expenses if e.get("status") in EXPENSE_UTILIZED_STATUSES],
            "approved_amount",
        )
        bills_total = _sum(
            [b for b in bills if b.get("status") in BILL_UTILIZED_STATUSES],
            "approved_amount",
        )

        debits = _sum([e for e in entries if e.get("entry_type") == "debit"], "amount")
        credits = _sum([e for e in entries if e.get("entry_type") == "credit"], "amount")
        # Money earned but not yet paid out does not consume the allocation
        ledger_debit_net = max(debits - credits, ZERO)

        sub_allocations_total = _sum(children, "amount")

        pending_requests_total = (
            _sum([e for e in expenses if e.get("status") == "pending"], "requested_amount")
            + _sum([b for b in bills if b.get("status") == "pending"], "total_amount")
        )

        total_utilized = quantize(expenses_total + bills_total + ledger_debit_net + sub_allocations_total)
        remaining = quantize(allocation.amount - total_utilized)
        utilization_percent = percent(total_utilized, allocation.amount)

        return UtilizationReport(
            allocation_id=allocation.id,
            allocated=allocation.amount,
            expenses_total=quantize(expenses_total),
            bills_total=quantize(bills_total),
            ledger_debit_net=quantize(ledger_debit_net),
            sub_allocations_total=quantize(sub_allocations_total),
            total_utilized=total_utilized,
            remaining_balance=remaining,
            utilization_percent=utilization_percent,
            pending_requests_total=quantize(pending_requests_total),
            status=self._status(utilization_percent),
        )

    def _status(self, utilization_percent: int) -> str:
        if utilization_percent >= self.thresholds.get("exceeded", 100):
            return "exceeded"
        elif utilization_percent >= self.thresholds.get("critical", 90):
            return "critical"
        elif utilization_percent >= self.thresholds.get("warning", 70):
            return "warning"
        return "ok"

    def check_availability(self, allocation_id: str, amount: Any) -> FundAvailability:
        """Check whether an allocation's remaining balance covers an amount.

        Advisory: callers decide what to do with an unavailable result.

        Args:
            allocation_id: Allocation ID
            amount: Amount about to be requested

        Returns:
            FundAvailability
        """
        requested = to_decimal(amount)
        report = self.utilization(allocation_id)
        available = requested <= report.remaining_balance

        if available:
            message = "Sufficient funds available"
        else:
            message = (
                f"Insufficient funds in allocation: balance {report.remaining_balance}, "
                f"requested {requested}"
            )

        return FundAvailability(
            allocation_id=allocation_id,
            requested=requested,
            balance=report.remaining_balance,
            available=available,
            message=message,
        )

    def apply_policy(self, availability: FundAvailability) -> list[str]:
        """Turn an availability check into warnings or a rejection.

        Returns:
            Warning messages (empty when funds are available)

        Raises:
            InsufficientFundsError: Policy is 'enforce' and funds are short
        """
        if availability.available:
            return []

        if self.enforces_balance:
            raise InsufficientFundsError(availability.message, availability.to_dict())

        logger.warning(f"Allocation {availability.allocation_id} over-committed: {availability.message}")
        return [availability.message]
