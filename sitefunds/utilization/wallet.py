"""
Wallet Balance Module

Per-user view of funds received, spent and passed on. The figures are
advisory and recomputed from allocations and their utilization each call.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ..allocations.ledger import AllocationStatus, FundAllocation
from ..hierarchy import OrgHierarchy
from ..kinds import ALLOCATIONS
from ..money import ZERO, quantize
from ..repository import Repository
from .aggregator import UtilizationAggregator, UtilizationReport

logger = logging.getLogger(__name__)

ONWARD_STATUSES = (AllocationStatus.APPROVED.value, AllocationStatus.DISBURSED.value)
INCOMING_PENDING_STATUSES = (AllocationStatus.PENDING.value, AllocationStatus.APPROVED.value)


@dataclass
class AllocationBalance:
    """Utilization of one allocation a user received."""

    allocation_id: str
    from_user: str
    site_id: str | None
    allocated: Decimal
    utilized: Decimal
    remaining: Decimal
    allocation_date: date

    def to_dict(self) -> dict:
        return {
            "allocation_id": self.allocation_id,
            "from_user": self.from_user,
            "site_id": self.site_id,
            "allocated": str(self.allocated),
            "utilized": str(self.utilized),
            "remaining": str(self.remaining),
            "allocation_date": self.allocation_date.isoformat(),
        }


@dataclass
class WalletSummary:
    """Summary of a user's wallet."""

    user_id: str
    total_received: Decimal = ZERO
    total_disbursed_onward: Decimal = ZERO
    total_spent: Decimal = ZERO
    remaining_balance: Decimal = ZERO
    pending_to_receive: Decimal = ZERO
    allocations: list[AllocationBalance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_received": str(self.total_received),
            "total_disbursed_onward": str(self.total_disbursed_onward),
            "total_spent": str(self.total_spent),
            "remaining_balance": str(self.remaining_balance),
            "pending_to_receive": str(self.pending_to_receive),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class WalletBalanceCalculator:
    """Computes wallet summaries from allocations and utilization."""

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        aggregator: UtilizationAggregator,
    ):
        self.repository = repository
        self.hierarchy = hierarchy
        self.aggregator = aggregator

    def wallet_summary(self, user_id: str) -> WalletSummary:
        """Get the wallet summary for a user.

        Sub-allocations that name the allocation they draw on are already
        counted in that allocation's utilization; only onward allocations
        without a parent reduce the balance a second time.

        Args:
            user_id: User ID

        Returns:
            WalletSummary
        """
        self.hierarchy.get_user(user_id)

        incoming = [FundAllocation.from_dict(d) for d in self.repository.find(ALLOCATIONS, to_user=user_id)]
        outgoing = [
            FundAllocation.from_dict(d)
            for d in self.repository.find(ALLOCATIONS, from_user=user_id, status=list(ONWARD_STATUSES))
            if d.get("to_user") != user_id
        ]

        received = [a for a in incoming if a.status == AllocationStatus.DISBURSED]
        received.sort(key=lambda a: (a.allocation_date, a.created_at))

        breakdown = []
        total_received = ZERO
        total_spent = ZERO

        for allocation in received:
            report: UtilizationReport = self.aggregator.utilization_for(allocation)
            total_received += allocation.amount
            total_spent += report.total_utilized
            breakdown.append(AllocationBalance(
                allocation_id=allocation.id,
                from_user=allocation.from_user,
                site_id=allocation.site_id,
                allocated=allocation.amount,
                utilized=report.total_utilized,
                remaining=report.remaining_balance,
                allocation_date=allocation.allocation_date,
            ))

        total_onward = sum((a.amount for a in outgoing), ZERO)
        unattributed_onward = sum((a.amount for a in outgoing if not a.parent_allocation_id), ZERO)

        pending_to_receive = sum(
            (a.amount for a in incoming if a.status.value in INCOMING_PENDING_STATUSES),
            ZERO,
        )

        remaining = total_received - total_spent - unattributed_onward
        if remaining < 0:
            logger.warning(f"Wallet of user {user_id} is overdrawn by {-remaining}")

        return WalletSummary(
            user_id=user_id,
            total_received=quantize(total_received),
            total_disbursed_onward=quantize(total_onward),
            total_spent=quantize(total_spent),
            remaining_balance=quantize(remaining),
            pending_to_receive=quantize(pending_to_receive),
            allocations=breakdown,
        )
