"""
Allocation Ledger Module

Owns the fund-allocation lifecycle: creation by a funder, approval by the
funder's superior, disbursement confirmed by the recipient, and the limited
edits allowed before an allocation becomes financially final.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from ..exceptions import (
    AuthorizationError,
    ConflictError,
    ImmutableStateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..hierarchy import OrgHierarchy
from ..kinds import ALLOCATIONS, BILLS, CONTRACTS, EXPENSES, LEDGER_ENTRIES
from ..money import iso_or_none, parse_date, parse_datetime, to_decimal
from ..permissions import Actor, PermissionTable
from ..repository import Page, Repository, paginate

logger = logging.getLogger(__name__)


class AllocationStatus(str, Enum):
    """Allocation lifecycle status."""
    PENDING = "pending"
    APPROVED = "approved"
    DISBURSED = "disbursed"
    REJECTED = "rejected"


PURPOSES = ("site_expense", "labor_expense", "material", "equipment", "other")

TRANSITIONS: dict[AllocationStatus, set[AllocationStatus]] = {
    AllocationStatus.PENDING: {AllocationStatus.APPROVED, AllocationStatus.REJECTED},
    AllocationStatus.APPROVED: {AllocationStatus.DISBURSED},
}

UPDATABLE_FIELDS = {"to_user", "amount", "purpose", "site_id", "description", "reference_number"}

# Fields that may still change in each status; disbursed/rejected allow none
EDITABLE_FIELDS: dict[AllocationStatus, set[str]] = {
    AllocationStatus.PENDING: UPDATABLE_FIELDS,
    AllocationStatus.APPROVED: {"site_id", "description", "reference_number"},
}


@dataclass
class FundAllocation:
    """A transfer of spending authority from one user to another."""

    id: str
    from_user: str
    to_user: str
    amount: Decimal
    purpose: str = "site_expense"
    status: AllocationStatus = AllocationStatus.PENDING
    site_id: str | None = None
    description: str | None = None
    reference_number: str | None = None
    parent_allocation_id: str | None = None
    allocation_date: date = field(default_factory=date.today)
    disbursed_date: date | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_final(self) -> bool:
        return self.status in (AllocationStatus.DISBURSED, AllocationStatus.REJECTED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_user": self.from_user,
            "to_user": self.to_user,
            "amount": str(self.amount),
            "purpose": self.purpose,
            "status": self.status.value,
            "site_id": self.site_id,
            "description": self.description,
            "reference_number": self.reference_number,
            "parent_allocation_id": self.parent_allocation_id,
            "allocation_date": self.allocation_date.isoformat(),
            "disbursed_date": iso_or_none(self.disbursed_date),
            "approved_by": self.approved_by,
            "approved_at": iso_or_none(self.approved_at),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FundAllocation":
        return cls(
            id=data["id"],
            from_user=data["from_user"],
            to_user=data["to_user"],
            amount=Decimal(str(data["amount"])),
            purpose=data.get("purpose", "site_expense"),
            status=AllocationStatus(data.get("status", "pending")),
            site_id=data.get("site_id"),
            description=data.get("description"),
            reference_number=data.get("reference_number"),
            parent_allocation_id=data.get("parent_allocation_id"),
            allocation_date=parse_date(data.get("allocation_date")) or date.today(),
            disbursed_date=parse_date(data.get("disbursed_date")),
            approved_by=data.get("approved_by"),
            approved_at=parse_datetime(data.get("approved_at")),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )


class AllocationLedger:
    """Creates allocations and drives their status transitions."""

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        permissions: PermissionTable,
    ):
        self.repository = repository
        self.hierarchy = hierarchy
        self.permissions = permissions

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, allocation_id: str) -> FundAllocation:
        data = self.repository.get(ALLOCATIONS, allocation_id)
        if data is None:
            raise NotFoundError("Allocation", allocation_id)
        return FundAllocation.from_dict(data)

    def view(self, actor: Actor, allocation_id: str) -> FundAllocation:
        """Get an allocation the actor sent, received, or oversees."""
        self.permissions.require(actor, "allocation.view")
        allocation = self.get(allocation_id)
        if (
            self._sees_all(actor)
            or actor.user_id in (allocation.from_user, allocation.to_user)
            or self.hierarchy.is_descendant(allocation.to_user, actor.user_id)
        ):
            return allocation
        raise AuthorizationError(f"Access denied to allocation {allocation_id}")

    def list_allocations(
        self,
        actor: Actor,
        status: str | None = None,
        site_id: str | None = None,
        user_id: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """List allocations visible to the actor.

        Args:
            actor: Requesting user
            status: Filter by status
            site_id: Filter by site
            user_id: Filter to allocations sent by or to this user
            page: Page number
            page_size: Items per page

        Returns:
            Page of FundAllocation, newest allocation date first
        """
        self.permissions.require(actor, "allocation.view")

        filters: dict[str, Any] = {}
        if status:
            filters["status"] = status
        if site_id:
            filters["site_id"] = site_id

        allocations = [FundAllocation.from_dict(d) for d in self.repository.find(ALLOCATIONS, **filters)]

        if not self._sees_all(actor):
            allocations = [
                a for a in allocations
                if actor.user_id in (a.from_user, a.to_user)
            ]

        if user_id:
            allocations = [a for a in allocations if user_id in (a.from_user, a.to_user)]

        allocations.sort(key=lambda a: (a.allocation_date, a.created_at), reverse=True)
        return paginate(allocations, page, page_size)

    def children(self, allocation_id: str) -> list[FundAllocation]:
        """Sub-allocations funded from this allocation."""
        return [
            FundAllocation.from_dict(d)
            for d in self.repository.find(ALLOCATIONS, parent_allocation_id=allocation_id)
        ]

    def references(self, allocation_id: str) -> dict[str, int]:
        """Count the records that draw on an allocation.

        Returns:
            Non-zero counts keyed by record kind
        """
        counts = {
            kind: len(self.repository.find(kind, fund_allocation_id=allocation_id))
            for kind in (EXPENSES, BILLS, LEDGER_ENTRIES, CONTRACTS)
        }
        counts[ALLOCATIONS] = len(self.repository.find(ALLOCATIONS, parent_allocation_id=allocation_id))
        return {kind: count for kind, count in counts.items() if count}

    def funding_source(self, allocation_id: str) -> FundAllocation:
        """The allocation a payment draws on; it must be disbursed.

        Raises:
            NotFoundError: Unknown allocation
            ValidationError: Allocation not disbursed yet (or rejected)
        """
        allocation = self.get(allocation_id)
        if allocation.status != AllocationStatus.DISBURSED:
            raise ValidationError(
                f"Fund allocation must be disbursed before use (current status: {allocation.status.value})",
                {"fund_allocation_id": allocation_id, "status": allocation.status.value},
            )
        return allocation

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        actor: Actor,
        to_user: str,
        amount: Any,
        purpose: str = "site_expense",
        site_id: str | None = None,
        description: str | None = None,
        reference_number: str | None = None,
        parent_allocation_id: str | None = None,
        allocation_date: date | None = None,
    ) -> FundAllocation:
        """Create a pending allocation from the actor to a recipient.

        Args:
            actor: Funder
            to_user: Recipient user ID
            amount: Allocated amount (must be positive)
            purpose: One of PURPOSES
            site_id: Optional site scope
            description: Free text
            reference_number: External reference
            parent_allocation_id: Allocation the funder received and is
                passing part of downwards
            allocation_date: Defaults to today

        Returns:
            The created allocation in pending status
        """
        self.permissions.require(actor, "allocation.create")

        amount = to_decimal(amount)
        self._validate_amount(amount)
        if to_user == actor.user_id:
            raise ValidationError("Cannot allocate funds to yourself", {"to_user": to_user})
        self._validate_purpose(purpose)
        self._validate_recipient(actor, to_user)

        if parent_allocation_id:
            parent = self.get(parent_allocation_id)
            if parent.status != AllocationStatus.DISBURSED or parent.to_user != actor.user_id:
                raise ValidationError(
                    "Sub-allocations must draw on a disbursed allocation you received",
                    {"parent_allocation_id": parent_allocation_id, "parent_status": parent.status.value},
                )

        allocation = FundAllocation(
            id=uuid.uuid4().hex,
            from_user=actor.user_id,
            to_user=to_user,
            amount=amount,
            purpose=purpose,
            site_id=site_id,
            description=description,
            reference_number=reference_number,
            parent_allocation_id=parent_allocation_id,
            allocation_date=allocation_date or date.today(),
        )

        self.repository.insert(ALLOCATIONS, allocation.id, allocation.to_dict())
        logger.info(
            f"Allocation {allocation.id} created: {allocation.amount} "
            f"from {allocation.from_user} to {allocation.to_user}"
        )
        return allocation

    def can_approve(self, actor: Actor, allocation: FundAllocation) -> bool:
        """Approver is the funder's superior, or the funder when they have none."""
        if self.permissions.has_permission(actor, "allocation.approve_any"):
            return True

        superior = self.hierarchy.superior(allocation.from_user)
        if superior is None:
            return actor.user_id == allocation.from_user
        return actor.user_id == superior

    def transition(self, actor: Actor, allocation_id: str, new_status: str) -> FundAllocation:
        """Move an allocation to a new status.

        Allowed: pending -> approved | rejected, approved -> disbursed.

        Raises:
            ValidationError: Unknown status value
            InvalidStateError: Transition not allowed from current status
            AuthorizationError: Actor is not the approver / recipient
        """
        try:
            target = AllocationStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status: {new_status}", {"status": new_status})

        allocation = self.get(allocation_id)
        if target not in TRANSITIONS.get(allocation.status, set()):
            raise InvalidStateError(
                f"Cannot move allocation from {allocation.status.value} to {target.value}",
                current=allocation.status.value,
                requested=target.value,
            )

        if target == AllocationStatus.DISBURSED:
            if actor.user_id != allocation.to_user:
                raise AuthorizationError("Only the recipient can mark an allocation as disbursed")
            allocation.disbursed_date = date.today()
        else:
            if not self.can_approve(actor, allocation):
                raise AuthorizationError("Only the funder's superior can approve or reject this allocation")
            allocation.approved_by = actor.user_id
            allocation.approved_at = datetime.now()

        previous = allocation.status
        allocation.status = target
        self.repository.update(ALLOCATIONS, allocation.id, allocation.to_dict())

        logger.info(f"Allocation {allocation.id}: {previous.value} -> {target.value} by {actor.user_id}")
        return allocation

    def approve(self, actor: Actor, allocation_id: str) -> FundAllocation:
        return self.transition(actor, allocation_id, AllocationStatus.APPROVED.value)

    def reject(self, actor: Actor, allocation_id: str) -> FundAllocation:
        return self.transition(actor, allocation_id, AllocationStatus.REJECTED.value)

    def disburse(self, actor: Actor, allocation_id: str) -> FundAllocation:
        return self.transition(actor, allocation_id, AllocationStatus.DISBURSED.value)

    def update(self, actor: Actor, allocation_id: str, patch: dict[str, Any]) -> FundAllocation:
        """Edit allocation fields allowed in its current status.

        pending: all fields; approved: site, description, reference number;
        disbursed / rejected: nothing.
        """
        allocation = self.get(allocation_id)
        self._require_owner(actor, allocation)

        unknown = sorted(set(patch) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown allocation fields: {', '.join(unknown)}", {"fields": unknown})

        editable = EDITABLE_FIELDS.get(allocation.status, set())
        blocked = sorted(set(patch) - editable)
        if blocked:
            raise ImmutableStateError(
                f"Cannot change {', '.join(blocked)} on a {allocation.status.value} allocation",
                status=allocation.status.value,
                fields=blocked,
            )

        if "amount" in patch:
            amount = to_decimal(patch["amount"])
            self._validate_amount(amount)
            allocation.amount = amount
        if "to_user" in patch:
            if patch["to_user"] == allocation.from_user:
                raise ValidationError("Cannot allocate funds to yourself", {"to_user": patch["to_user"]})
            self._validate_recipient(actor, patch["to_user"])
            allocation.to_user = patch["to_user"]
        if "purpose" in patch:
            self._validate_purpose(patch["purpose"])
            allocation.purpose = patch["purpose"]
        for name in ("site_id", "description", "reference_number"):
            if name in patch:
                setattr(allocation, name, patch[name])

        self.repository.update(ALLOCATIONS, allocation.id, allocation.to_dict())
        logger.info(f"Allocation {allocation.id} updated: {sorted(patch)}")
        return allocation

    def delete(self, actor: Actor, allocation_id: str) -> None:
        """Delete a pending allocation that nothing draws on.

        Raises:
            InvalidStateError: Allocation is no longer pending
            ConflictError: Expenses, bills, ledger entries, contracts or
                sub-allocations reference it
        """
        allocation = self.get(allocation_id)
        self._require_owner(actor, allocation)

        if allocation.status != AllocationStatus.PENDING:
            raise InvalidStateError(
                "Only pending allocations can be deleted",
                current=allocation.status.value,
            )

        with self.repository.transaction():
            references = self.references(allocation_id)
            if references:
                raise ConflictError(
                    "Allocation is already in use and cannot be deleted",
                    {"references": references},
                )
            self.repository.delete(ALLOCATIONS, allocation_id)

        logger.info(f"Allocation {allocation_id} deleted by {actor.user_id}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sees_all(self, actor: Actor) -> bool:
        return (
            self.permissions.is_top_role(actor.role)
            or self.permissions.has_permission(actor, "allocation.approve_any")
        )

    def _require_owner(self, actor: Actor, allocation: FundAllocation) -> None:
        if actor.user_id != allocation.from_user and not self._sees_all(actor):
            raise AuthorizationError("Only the funder can change this allocation")

    def _validate_amount(self, amount: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Allocation amount must be greater than zero", {"amount": str(amount)})

    def _validate_purpose(self, purpose: str) -> None:
        if purpose not in PURPOSES:
            raise ValidationError(f"Invalid purpose: {purpose}", {"allowed": list(PURPOSES)})

    def _validate_recipient(self, actor: Actor, to_user: str) -> None:
        self.hierarchy.get_user(to_user)

        # Below the top authority, funds only flow down one's own team
        if self._sees_all(actor):
            return
        if not self.hierarchy.is_descendant(to_user, actor.user_id):
            raise AuthorizationError(
                "Can only allocate funds to your team members",
                {"to_user": to_user},
            )
