"""
Contract Installment Tracker Module

Labor contracts split into installments, partial payments against those
installments, and the contract status lifecycle. Paid totals are always
recomputed from the full installment list.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from ..config import load_config
from ..exceptions import (
    AuthorizationError,
    ConflictError,
    ImmutableStateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..hierarchy import OrgHierarchy
from ..kinds import CONTRACTS
from ..money import ZERO, iso_or_none, parse_date, parse_datetime, percent, str_or_none, to_decimal
from ..permissions import Actor, PermissionTable
from ..repository import Page, Repository, paginate
from ..worker_ledger.account import LedgerEntry, WorkerLedgerAccount
from ..worker_ledger.attendance import AttendanceRegister, EarningsSummary

logger = logging.getLogger(__name__)


class ContractStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


CONTRACT_TYPES = ("fixed", "milestone", "daily")

# action -> (allowed source statuses, target status)
STATUS_ACTIONS: dict[str, tuple[set[ContractStatus], ContractStatus]] = {
    "activate": ({ContractStatus.DRAFT}, ContractStatus.ACTIVE),
    "hold": ({ContractStatus.ACTIVE}, ContractStatus.ON_HOLD),
    "resume": ({ContractStatus.ON_HOLD}, ContractStatus.ACTIVE),
    "terminate": (
        {ContractStatus.DRAFT, ContractStatus.ACTIVE, ContractStatus.ON_HOLD},
        ContractStatus.TERMINATED,
    ),
}

PAYABLE_STATUSES = (ContractStatus.ACTIVE, ContractStatus.ON_HOLD, ContractStatus.TERMINATED)

UPDATABLE_FIELDS = {
    "title",
    "description",
    "site_id",
    "fund_allocation_id",
    "daily_rate",
    "start_date",
    "end_date",
    "total_amount",
    "number_of_installments",
}
# Changing these rebuilds the installment schedule
SCHEDULE_FIELDS = {"total_amount", "number_of_installments", "start_date", "end_date"}


@dataclass
class Installment:
    """One scheduled payment of a contract."""

    installment_number: int
    amount: Decimal
    paid_amount: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING
    due_date: date | None = None
    paid_date: date | None = None
    ledger_entry_id: str | None = None
    notes: str | None = None

    @property
    def outstanding(self) -> Decimal:
        return max(self.amount - self.paid_amount, ZERO)

    def to_dict(self) -> dict:
        return {
            "installment_number": self.installment_number,
            "amount": str(self.amount),
            "paid_amount": str(self.paid_amount),
            "status": self.status.value,
            "due_date": iso_or_none(self.due_date),
            "paid_date": iso_or_none(self.paid_date),
            "ledger_entry_id": self.ledger_entry_id,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Installment":
        return cls(
            installment_number=int(data["installment_number"]),
            amount=Decimal(str(data["amount"])),
            paid_amount=Decimal(str(data.get("paid_amount") or 0)),
            status=InstallmentStatus(data.get("status", "pending")),
            due_date=parse_date(data.get("due_date")),
            paid_date=parse_date(data.get("paid_date")),
            ledger_entry_id=data.get("ledger_entry_id"),
            notes=data.get("notes"),
        )


@dataclass
class Contract:
    """Labor contract with a worker."""

    id: str
    contract_number: str
    worker_id: str
    site_id: str
    created_by: str
    title: str
    total_amount: Decimal
    number_of_installments: int = 1
    contract_type: str = "fixed"
    installments: list[Installment] = field(default_factory=list)
    total_paid: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    start_date: date = field(default_factory=date.today)
    end_date: date | None = None
    daily_rate: Decimal | None = None
    fund_allocation_id: str | None = None
    description: str | None = None
    status: ContractStatus = ContractStatus.DRAFT
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def progress_percent(self) -> int:
        return percent(self.total_paid, self.total_amount)

    @property
    def paid_installments_count(self) -> int:
        return sum(1 for i in self.installments if i.status == InstallmentStatus.PAID)

    def installment(self, installment_number: int) -> Installment:
        for installment in self.installments:
            if installment.installment_number == installment_number:
                return installment
        raise NotFoundError("Installment", f"{self.id}#{installment_number}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contract_number": self.contract_number,
            "worker_id": self.worker_id,
            "site_id": self.site_id,
            "created_by": self.created_by,
            "title": self.title,
            "total_amount": str(self.total_amount),
            "number_of_installments": self.number_of_installments,
            "contract_type": self.contract_type,
            "installments": [i.to_dict() for i in self.installments],
            "total_paid": str(self.total_paid),
            "remaining_amount": str(self.remaining_amount),
            "start_date": self.start_date.isoformat(),
            "end_date": iso_or_none(self.end_date),
            "daily_rate": str_or_none(self.daily_rate),
            "fund_allocation_id": self.fund_allocation_id,
            "description": self.description,
            "status": self.status.value,
            "progress_percent": self.progress_percent,
            "paid_installments_count": self.paid_installments_count,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Contract":
        daily_rate = data.get("daily_rate")
        return cls(
            id=data["id"],
            contract_number=data["contract_number"],
            worker_id=data["worker_id"],
            site_id=data["site_id"],
            created_by=data["created_by"],
            title=data["title"],
            total_amount=Decimal(str(data["total_amount"])),
            number_of_installments=int(data.get("number_of_installments", 1)),
            contract_type=data.get("contract_type", "fixed"),
            installments=[Installment.from_dict(i) for i in data.get("installments", [])],
            total_paid=Decimal(str(data.get("total_paid") or 0)),
            remaining_amount=Decimal(str(data.get("remaining_amount") or 0)),
            start_date=parse_date(data.get("start_date")) or date.today(),
            end_date=parse_date(data.get("end_date")),
            daily_rate=Decimal(str(daily_rate)) if daily_rate is not None else None,
            fund_allocation_id=data.get("fund_allocation_id"),
            description=data.get("description"),
            status=ContractStatus(data.get("status", "draft")),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class ContractPayment:
    """Result of paying an installment."""

    contract: Contract
    ledger_entry: LedgerEntry

    def to_dict(self) -> dict:
        return {
            "contract": self.contract.to_dict(),
            "ledger_entry": self.ledger_entry.to_dict(),
        }


# ----------------------------------------------------------------------
# Record operations
# ----------------------------------------------------------------------

def generate_installments(contract: Contract) -> list[Installment]:
    """Split the contract total into equal installments.

    Each installment gets the floor of total / count; the last one also
    takes the remainder so the amounts sum exactly to the total. Due dates
    are spread evenly over start..end when both are set.
    """
    count = contract.number_of_installments
    if count < 1:
        raise ValidationError("Number of installments must be at least 1", {"number_of_installments": count})

    base = (contract.total_amount / count).to_integral_value(rounding=ROUND_FLOOR)
    remainder = contract.total_amount - base * count

    span = None
    if contract.start_date and contract.end_date:
        span = contract.end_date - contract.start_date

    installments = []
    for number in range(1, count + 1):
        installments.append(Installment(
            installment_number=number,
            amount=base + remainder if number == count else base,
            due_date=contract.start_date + span * number / count if span is not None else None,
        ))

    contract.installments = installments
    recompute_totals(contract)
    return installments


def recompute_totals(contract: Contract) -> None:
    """Derive total_paid and remaining_amount from the installments."""
    contract.total_paid = sum((i.paid_amount for i in contract.installments), ZERO)
    contract.remaining_amount = contract.total_amount - contract.total_paid


def record_payment(
    contract: Contract,
    installment_number: int,
    amount: Any,
    ledger_entry_id: str | None = None,
) -> Installment:
    """Apply a payment to one installment of a contract.

    Args:
        contract: Contract to update in place
        installment_number: Installment being paid
        amount: Payment amount (must be positive)
        ledger_entry_id: Ledger entry recording the payment

    Returns:
        The updated installment

    Raises:
        NotFoundError: No installment with that number
    """
    installment = contract.installment(installment_number)

    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", {"amount": str(amount)})

    installment.paid_amount += amount
    installment.paid_date = date.today()
    if ledger_entry_id:
        installment.ledger_entry_id = ledger_entry_id

    if installment.paid_amount >= installment.amount:
        installment.status = InstallmentStatus.PAID
    elif installment.paid_amount > 0:
        installment.status = InstallmentStatus.PARTIAL

    recompute_totals(contract)

    # Terminated contracts stay terminated even when fully paid
    if contract.total_paid >= contract.total_amount and contract.status != ContractStatus.TERMINATED:
        contract.status = ContractStatus.COMPLETED

    return installment


def change_status(contract: Contract, action: str) -> Contract:
    """Apply a status action (activate, hold, resume, terminate)."""
    if action not in STATUS_ACTIONS:
        raise ValidationError(f"Invalid contract action: {action}", {"allowed": sorted(STATUS_ACTIONS)})

    sources, target = STATUS_ACTIONS[action]
    if contract.status not in sources:
        raise InvalidStateError(
            f"Cannot {action} a {contract.status.value} contract",
            current=contract.status.value,
            requested=target.value,
        )

    contract.status = target
    return contract


def activate(contract: Contract) -> Contract:
    return change_status(contract, "activate")


# ----------------------------------------------------------------------
# Service
# ----------------------------------------------------------------------

class ContractInstallmentTracker:
    """Creates contracts, records installment payments and tracks status."""

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        permissions: PermissionTable,
        ledger: WorkerLedgerAccount,
        attendance: AttendanceRegister,
        config: dict | None = None,
        config_dir: Path | str | None = None,
    ):
        """Initialize the tracker.

        Args:
            repository: Record store
            hierarchy: Organization hierarchy
            permissions: Capability table
            ledger: Worker ledger receiving payment debits
            attendance: Attendance register (daily-rate salary)
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.repository = repository
        self.hierarchy = hierarchy
        self.permissions = permissions
        self.ledger = ledger
        self.attendance = attendance
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        pagination = self.config.get("pagination", {})
        self.default_page_size = pagination.get("default_page_size", 20)
        self.max_page_size = pagination.get("max_page_size", 100)

    # Pure record operations, exposed on the service for callers
    generate_installments = staticmethod(generate_installments)
    record_payment = staticmethod(record_payment)
    activate = staticmethod(activate)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, contract_id: str) -> Contract:
        data = self.repository.get(CONTRACTS, contract_id)
        if data is None:
            raise NotFoundError("Contract", contract_id)
        return Contract.from_dict(data)

    def _visible_workers(self, actor: Actor) -> set[str] | None:
        if self.permissions.is_top_role(actor.role):
            return None
        return {actor.user_id, *self.hierarchy.descendants(actor.user_id)}

    def view(self, actor: Actor, contract_id: str) -> Contract:
        contract = self.get(contract_id)
        visible = self._visible_workers(actor)
        if visible is not None and contract.worker_id not in visible and contract.created_by != actor.user_id:
            raise AuthorizationError(f"Access denied to contract {contract_id}")
        return contract

    def visible_contracts(self, actor: Actor, **filters: Any) -> list[Contract]:
        """Contracts of the actor's team (or all for the top role), newest first."""
        contracts = [Contract.from_dict(d) for d in self.repository.find(CONTRACTS, **filters)]

        visible = self._visible_workers(actor)
        if visible is not None:
            contracts = [c for c in contracts if c.worker_id in visible or c.created_by == actor.user_id]

        contracts.sort(key=lambda c: c.created_at, reverse=True)
        return contracts

    def list_contracts(
        self,
        actor: Actor,
        status: str | None = None,
        worker_id: str | None = None,
        site_id: str | None = None,
        contract_type: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page:
        """Paginated contracts visible to the actor."""
        filters: dict[str, Any] = {}
        if status:
            filters["status"] = status
        if worker_id:
            filters["worker_id"] = worker_id
        if site_id:
            filters["site_id"] = site_id
        if contract_type:
            filters["contract_type"] = contract_type

        contracts = self.visible_contracts(actor, **filters)
        return paginate(contracts, page, min(page_size or self.default_page_size, self.max_page_size))

    def summary(self, actor: Actor) -> dict:
        """Totals of visible contracts, overall and by status and type."""

        overall = {"count": 0, "total_amount": ZERO, "total_paid": ZERO, "remaining_amount": ZERO}
        by_status: dict[str, dict[str, Any]] = {}
        by_type: dict[str, dict[str, Any]] = {}

        for contract in self.visible_contracts(actor):
            for bucket in (
                overall,
                by_status.setdefault(contract.status.value, {"count": 0, "total_amount": ZERO, "total_paid": ZERO}),
                by_type.setdefault(contract.contract_type, {"count": 0, "total_amount": ZERO, "total_paid": ZERO}),
            ):
                bucket["count"] += 1
                bucket["total_amount"] += contract.total_amount
                bucket["total_paid"] += contract.total_paid
            overall["remaining_amount"] += contract.remaining_amount

        def render(bucket: dict) -> dict:
            return {k: v if isinstance(v, int) else str(v) for k, v in bucket.items()}

        return {
            "overall": render(overall),
            "by_status": {k: render(v) for k, v in by_status.items()},
            "by_type": {k: render(v) for k, v in by_type.items()},
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        actor: Actor,
        worker_id: str,
        site_id: str,
        title: str,
        total_amount: Any,
        number_of_installments: int = 1,
        contract_type: str = "fixed",
        start_date: date | None = None,
        end_date: date | None = None,
        daily_rate: Any = None,
        fund_allocation_id: str | None = None,
        description: str | None = None,
    ) -> Contract:
        """Create a draft contract with its installment schedule.

        Args:
            actor: Creator (needs contract.manage)
            worker_id: Contracted worker
            site_id: Site
            title: Contract title
            total_amount: Contract value (must be positive)
            number_of_installments: At least 1
            contract_type: fixed, milestone or daily
            start_date: Defaults to today
            end_date: Optional; due dates are spread over start..end
            daily_rate: Rate for daily contracts
            fund_allocation_id: Allocation that funds payments
            description: Free text

        Returns:
            Draft contract
        """
        self.permissions.require(actor, "contract.manage")
        self.hierarchy.get_user(worker_id)
        self._require_manages(actor, worker_id)

        if not title:
            raise ValidationError("Title is required", {"title": title})
        if not site_id:
            raise ValidationError("Site is required", {"site_id": site_id})
        if contract_type not in CONTRACT_TYPES:
            raise ValidationError(f"Invalid contract type: {contract_type}", {"allowed": list(CONTRACT_TYPES)})

        contract = Contract(
            id=uuid.uuid4().hex,
            contract_number="",
            worker_id=worker_id,
            site_id=site_id,
            created_by=actor.user_id,
            title=title,
            total_amount=self._validate_total(total_amount),
            number_of_installments=self._validate_count(number_of_installments),
            contract_type=contract_type,
            start_date=parse_date(start_date) or date.today(),
            end_date=parse_date(end_date),
            daily_rate=self._validate_rate(daily_rate),
            fund_allocation_id=fund_allocation_id,
            description=description,
        )
        self._validate_dates(contract)
        if fund_allocation_id:
            self._require_allocation(fund_allocation_id)

        generate_installments(contract)

        with self.repository.transaction():
            contract.contract_number = self._next_contract_number(contract.created_at)
            self.repository.insert(CONTRACTS, contract.id, contract.to_dict())

        logger.info(
            f"Contract {contract.contract_number} created for worker {worker_id}: "
            f"{contract.total_amount} in {contract.number_of_installments} installments"
        )
        return contract

    def _next_contract_number(self, created: datetime) -> str:
        prefix = f"CON-{created.year}{created.month:02d}-"
        existing = [
            c["contract_number"] for c in self.repository.find(CONTRACTS)
            if c.get("contract_number", "").startswith(prefix)
        ]
        sequence = max((int(n[len(prefix):]) for n in existing), default=0) + 1
        return f"{prefix}{sequence:04d}"

    def update(self, actor: Actor, contract_id: str, patch: dict[str, Any]) -> Contract:
        """Edit a contract.

        Schedule fields rebuild the installments, which is only allowed
        while nothing has been paid.
        """
        self.permissions.require(actor, "contract.manage")
        contract = self.get(contract_id)
        self._require_manages(actor, contract.worker_id)

        unknown = sorted(set(patch) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown contract fields: {', '.join(unknown)}", {"fields": unknown})

        if contract.status in (ContractStatus.COMPLETED, ContractStatus.TERMINATED):
            raise ImmutableStateError(
                f"Cannot edit a {contract.status.value} contract",
                status=contract.status.value,
                fields=sorted(patch),
            )

        schedule_changes = sorted(set(patch) & SCHEDULE_FIELDS)
        if schedule_changes and contract.total_paid > 0:
            raise ImmutableStateError(
                "Cannot change the payment schedule after payments were recorded",
                status=contract.status.value,
                fields=schedule_changes,
            )

        if "total_amount" in patch:
            contract.total_amount = self._validate_total(patch["total_amount"])
        if "number_of_installments" in patch:
            contract.number_of_installments = self._validate_count(patch["number_of_installments"])
        if "start_date" in patch:
            contract.start_date = parse_date(patch["start_date"]) or contract.start_date
        if "end_date" in patch:
            contract.end_date = parse_date(patch["end_date"])
        if "daily_rate" in patch:
            contract.daily_rate = self._validate_rate(patch["daily_rate"])
        if patch.get("fund_allocation_id"):
            self._require_allocation(patch["fund_allocation_id"])
        for name in ("title", "description", "site_id", "fund_allocation_id"):
            if name in patch:
                setattr(contract, name, patch[name])

        self._validate_dates(contract)
        if schedule_changes:
            generate_installments(contract)
        recompute_totals(contract)

        self.repository.update(CONTRACTS, contract.id, contract.to_dict())
        logger.info(f"Contract {contract.contract_number} updated: {sorted(patch)}")
        return contract

    def transition(self, actor: Actor, contract_id: str, action: str) -> Contract:
        """Apply activate, hold, resume or terminate."""
        self.permissions.require(actor, "contract.manage")
        contract = self.get(contract_id)
        self._require_manages(actor, contract.worker_id)
        previous = contract.status

        change_status(contract, action)
        self.repository.update(CONTRACTS, contract.id, contract.to_dict())

        logger.info(f"Contract {contract.contract_number}: {previous.value} -> {contract.status.value}")
        return contract

    def pay_installment(
        self,
        actor: Actor,
        contract_id: str,
        installment_number: int,
        amount: Any,
        payment_mode: str = "cash",
        reference_number: str | None = None,
        notes: str | None = None,
        fund_allocation_id: str | None = None,
    ) -> ContractPayment:
        """Pay an installment and debit the worker's ledger.

        The ledger entry and the contract are written in one transaction.

        Args:
            actor: Payer (needs contract.pay)
            contract_id: Contract
            installment_number: Installment being paid
            amount: Payment amount
            payment_mode: Ledger payment mode
            reference_number: External reference
            notes: Stored on the installment
            fund_allocation_id: Allocation the payment draws on; defaults to
                the contract's allocation

        Returns:
            ContractPayment with the updated contract and the ledger entry
        """
        self.permissions.require(actor, "contract.pay")

        with self.repository.transaction():
            contract = self.get(contract_id)
            self._require_manages(actor, contract.worker_id)
            if contract.status not in PAYABLE_STATUSES:
                raise InvalidStateError(
                    f"Cannot record payments on a {contract.status.value} contract",
                    current=contract.status.value,
                )

            installment = contract.installment(installment_number)

            entry = self.ledger.build_entry(
                worker_id=contract.worker_id,
                entry_type="debit",
                amount=amount,
                category="contract_payment",
                payment_mode=payment_mode,
                site_id=contract.site_id,
                fund_allocation_id=fund_allocation_id or contract.fund_allocation_id,
                contract_id=contract.id,
                description=f"Contract payment - {contract.title} - Installment {installment_number}",
                reference_number=reference_number,
                created_by=actor.user_id,
            )
            self.ledger.append(entry)

            record_payment(contract, installment_number, entry.amount, entry.id)
            if notes is not None:
                installment.notes = notes

            self.repository.update(CONTRACTS, contract.id, contract.to_dict())

        logger.info(
            f"Contract {contract.contract_number} installment {installment_number} paid {entry.amount}; "
            f"total paid {contract.total_paid} of {contract.total_amount}"
        )
        return ContractPayment(contract=contract, ledger_entry=entry)

    def delete(self, actor: Actor, contract_id: str) -> None:
        """Delete a contract that has no recorded payments."""
        self.permissions.require(actor, "contract.delete")

        with self.repository.transaction():
            contract = self.get(contract_id)
            self._require_manages(actor, contract.worker_id)
            if contract.total_paid > 0:
                raise ConflictError(
                    "Cannot delete a contract with recorded payments",
                    {"total_paid": str(contract.total_paid)},
                )
            self.repository.delete(CONTRACTS, contract_id)

        logger.info(f"Contract {contract.contract_number} deleted by {actor.user_id}")

    def attendance_salary(
        self,
        contract_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> EarningsSummary:
        """Salary earned under a daily-rate contract from attendance.

        Defaults to the contract period (up to today when open-ended).
        """
        contract = self.get(contract_id)
        if contract.contract_type != "daily":
            raise ValidationError(
                "Attendance salary only applies to daily rate contracts",
                {"contract_type": contract.contract_type},
            )

        start = parse_date(start) or contract.start_date
        end = parse_date(end) or contract.end_date or date.today()

        rate = contract.daily_rate
        if rate is None:
            rate = self.hierarchy.get_user(contract.worker_id).daily_rate or ZERO

        return self.attendance.summary(contract.worker_id, start, end, contract.site_id, rate)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_total(self, value: Any) -> Decimal:
        total = to_decimal(value, "total_amount")
        if total <= 0:
            raise ValidationError("Total amount must be greater than zero", {"total_amount": str(total)})
        return total

    def _validate_count(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("Number of installments must be an integer", {"number_of_installments": value})
        count = value
        if count < 1:
            raise ValidationError("Number of installments must be at least 1", {"number_of_installments": value})
        return count

    def _validate_rate(self, value: Any) -> Decimal | None:
        if value is None:
            return None
        rate = to_decimal(value, "daily_rate")
        if rate < 0:
            raise ValidationError("Daily rate cannot be negative", {"daily_rate": str(rate)})
        return rate

    def _validate_dates(self, contract: Contract) -> None:
        if contract.end_date and contract.end_date < contract.start_date:
            raise ValidationError(
                "End date cannot be before start date",
                {"start_date": contract.start_date.isoformat(), "end_date": contract.end_date.isoformat()},
            )

    def _require_allocation(self, allocation_id: str) -> None:
        self.ledger.allocations.funding_source(allocation_id)

    def _require_manages(self, actor: Actor, worker_id: str) -> None:
        if not self.permissions.is_top_role(actor.role):
            self.hierarchy.require_team_member(
                actor.user_id, worker_id, "Can only manage contracts for your team members"
            )
