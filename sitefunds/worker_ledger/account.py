"""
Worker Ledger Module

Append-only credit/debit postings against a worker's running balance.
Credits record money earned (salary, attendance, bonus); debits record
money paid out (salary, advances, contract payments).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from ..allocations.ledger import AllocationLedger
from ..config import load_config
from ..exceptions import AuthorizationError, NotFoundError, ValidationError
from ..hierarchy import OrgHierarchy
from ..kinds import LEDGER_ENTRIES
from ..money import ZERO, parse_date, parse_datetime, quantize, to_decimal
from ..permissions import Actor, PermissionTable
from ..repository import Page, Repository, paginate
from .attendance import Attendance, daily_earning

logger = logging.getLogger(__name__)

ENTRY_TYPES = ("credit", "debit")
CATEGORIES = (
    "salary",
    "advance",
    "bonus",
    "deduction",
    "reimbursement",
    "contract_payment",
    "attendance",
    "other",
)
PAYMENT_MODES = ("cash", "bank_transfer", "cheque", "upi", "other")

# Debits that settle attendance earnings
SALARY_PAYMENT_CATEGORIES = ("salary", "advance")

ATTENDANCE_SOURCE_PREFIX = "attendance:"


def attendance_source_key(attendance_id: str) -> str:
    return f"{ATTENDANCE_SOURCE_PREFIX}{attendance_id}"


@dataclass
class LedgerEntry:
    """A single posting against a worker's balance."""

    id: str
    worker_id: str
    entry_type: str
    amount: Decimal
    category: str = "other"
    site_id: str | None = None
    fund_allocation_id: str | None = None
    contract_id: str | None = None
    description: str | None = None
    transaction_date: date = field(default_factory=date.today)
    reference_number: str | None = None
    payment_mode: str = "cash"
    source_key: str | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.entry_type == "credit" else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "entry_type": self.entry_type,
            "amount": str(self.amount),
            "category": self.category,
            "site_id": self.site_id,
            "fund_allocation_id": self.fund_allocation_id,
            "contract_id": self.contract_id,
            "description": self.description,
            "transaction_date": self.transaction_date.isoformat(),
            "reference_number": self.reference_number,
            "payment_mode": self.payment_mode,
            "source_key": self.source_key,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LedgerEntry":
        return cls(
            id=data["id"],
            worker_id=data["worker_id"],
            entry_type=data["entry_type"],
            amount=Decimal(str(data["amount"])),
            category=data.get("category", "other"),
            site_id=data.get("site_id"),
            fund_allocation_id=data.get("fund_allocation_id"),
            contract_id=data.get("contract_id"),
            description=data.get("description"),
            transaction_date=parse_date(data.get("transaction_date")) or date.today(),
            reference_number=data.get("reference_number"),
            payment_mode=data.get("payment_mode", "cash"),
            source_key=data.get("source_key"),
            created_by=data.get("created_by"),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class LedgerBalance:
    """Running balance of a worker."""

    worker_id: str
    total_credits: Decimal = ZERO
    total_debits: Decimal = ZERO
    by_category: dict[str, dict[str, Decimal]] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.total_credits - self.total_debits

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "total_credits": str(self.total_credits),
            "total_debits": str(self.total_debits),
            "balance": str(self.balance),
            "by_category": {
                category: {k: str(v) for k, v in totals.items()}
                for category, totals in self.by_category.items()
            },
        }


@dataclass
class PendingSalary:
    """Attendance earnings not yet settled by salary or advance payments."""

    worker_id: str
    earned: Decimal = ZERO
    paid: Decimal = ZERO
    unposted_earnings: Decimal = ZERO

    @property
    def pending(self) -> Decimal:
        return self.earned - self.paid

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "earned": str(self.earned),
            "paid": str(self.paid),
            "pending": str(self.pending),
            "unposted_earnings": str(self.unposted_earnings),
        }


class WorkerLedgerAccount:
    """Records ledger entries and derives balances from them."""

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        permissions: PermissionTable,
        allocations: AllocationLedger,
        config: dict | None = None,
        config_dir: Path | str | None = None,
    ):
        """Initialize the ledger account service.

        Args:
            repository: Record store
            hierarchy: Organization hierarchy
            permissions: Capability table
            allocations: Allocation ledger (funding sources)
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.repository = repository
        self.hierarchy = hierarchy
        self.permissions = permissions
        self.allocations = allocations
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        self.standard_hours = Decimal(str(self.config.get("attendance", {}).get("standard_hours", 8)))
        pagination = self.config.get("pagination", {})
        self.default_page_size = pagination.get("default_page_size", 20)
        self.max_page_size = pagination.get("max_page_size", 100)

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def record_entry(
        self,
        actor: Actor,
        worker_id: str,
        entry_type: str,
        amount: Any,
        category: str = "other",
        site_id: str | None = None,
        fund_allocation_id: str | None = None,
        contract_id: str | None = None,
        description: str | None = None,
        transaction_date: date | None = None,
        reference_number: str | None = None,
        payment_mode: str = "cash",
    ) -> LedgerEntry:
        """Append an entry to a worker's ledger.

        Args:
            actor: User recording the entry
            worker_id: Worker
            entry_type: 'credit' or 'debit'
            amount: Positive amount
            category: One of CATEGORIES
            site_id: Optional site
            fund_allocation_id: Allocation the payment is drawn from
            contract_id: Related contract
            description: Free text
            transaction_date: Defaults to today
            reference_number: External reference
            payment_mode: One of PAYMENT_MODES

        Returns:
            The stored entry
        """
        self.permissions.require(actor, "ledger.record")
        self.hierarchy.get_user(worker_id)
        self.require_manages(actor, worker_id)

        entry = self.build_entry(
            worker_id=worker_id,
            entry_type=entry_type,
            amount=amount,
            category=category,
            site_id=site_id,
            fund_allocation_id=fund_allocation_id,
            contract_id=contract_id,
            description=description,
            transaction_date=transaction_date,
            reference_number=reference_number,
            payment_mode=payment_mode,
            created_by=actor.user_id,
        )
        return self.append(entry)

    def build_entry(
        self,
        worker_id: str,
        entry_type: str,
        amount: Any,
        category: str = "other",
        payment_mode: str = "cash",
        transaction_date: date | None = None,
        **fields: Any,
    ) -> LedgerEntry:
        """Validate and build an entry without storing it."""
        if entry_type not in ENTRY_TYPES:
            raise ValidationError(f"Invalid entry type: {entry_type}", {"allowed": list(ENTRY_TYPES)})
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid category: {category}", {"allowed": list(CATEGORIES)})
        if payment_mode not in PAYMENT_MODES:
            raise ValidationError(f"Invalid payment mode: {payment_mode}", {"allowed": list(PAYMENT_MODES)})

        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", {"amount": str(amount)})

        if fields.get("fund_allocation_id"):
            self.allocations.funding_source(fields["fund_allocation_id"])

        return LedgerEntry(
            id=uuid.uuid4().hex,
            worker_id=worker_id,
            entry_type=entry_type,
            amount=quantize(amount),
            category=category,
            payment_mode=payment_mode,
            transaction_date=parse_date(transaction_date) or date.today(),
            **fields,
        )

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        self.repository.insert(LEDGER_ENTRIES, entry.id, entry.to_dict())
        logger.info(
            f"Ledger {entry.entry_type} {entry.amount} ({entry.category}) for worker {entry.worker_id}"
        )
        return entry

    def post_attendance_earnings(
        self,
        actor: Actor,
        worker_id: str,
        attendance_records: Iterable[Attendance],
        daily_rate: Any = None,
    ) -> list[LedgerEntry]:
        """Credit attendance-derived earnings to the ledger.

        Each attendance record posts under its own source key, so running
        this again only posts the difference between the current earning
        and what was posted before: a credit when it grew, an attendance
        debit when it shrank, nothing when unchanged.

        Args:
            actor: User posting the earnings
            worker_id: Worker
            attendance_records: Attendance records of that worker
            daily_rate: Rate to apply; the worker's profile rate if None

        Returns:
            Entries posted by this call
        """
        self.permissions.require(actor, "ledger.record")
        worker = self.hierarchy.get_user(worker_id)
        self.require_manages(actor, worker_id)

        rate = daily_rate if daily_rate is not None else worker.daily_rate
        if rate is None:
            raise ValidationError(f"Worker {worker_id} has no daily rate", {"worker_id": worker_id})

        posted: list[LedgerEntry] = []
        with self.repository.transaction():
            existing = self._posted_by_source(worker_id)

            for record in attendance_records:
                if record.worker_id != worker_id:
                    raise ValidationError(
                        "Attendance record belongs to another worker",
                        {"attendance_id": record.id, "worker_id": record.worker_id},
                    )

                key = attendance_source_key(record.id)
                earned = daily_earning(record.status, record.overtime, rate, self.standard_hours)
                delta = earned - existing.get(key, ZERO)
                if delta == 0:
                    continue

                entry = self.build_entry(
                    worker_id=worker_id,
                    entry_type="credit" if delta > 0 else "debit",
                    amount=abs(delta),
                    category="attendance",
                    transaction_date=record.date,
                    site_id=record.site_id,
                    description=f"Attendance earnings {record.date.isoformat()} ({record.status.value})",
                    source_key=key,
                    created_by=actor.user_id,
                )
                posted.append(self.append(entry))

        if posted:
            logger.info(f"Posted {len(posted)} attendance adjustments for worker {worker_id}")
        return posted

    def _posted_by_source(self, worker_id: str) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for entry in self.entries(worker_id, category="attendance"):
            if entry.source_key:
                totals[entry.source_key] = totals.get(entry.source_key, ZERO) + entry.signed_amount
        return totals

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> LedgerEntry:
        data = self.repository.get(LEDGER_ENTRIES, entry_id)
        if data is None:
            raise NotFoundError("Ledger entry", entry_id)
        return LedgerEntry.from_dict(data)

    def entries(
        self,
        worker_id: str,
        entry_type: str | None = None,
        category: str | None = None,
        site_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerEntry]:
        """A worker's entries, newest transaction first."""
        filters: dict[str, Any] = {"worker_id": worker_id}
        if entry_type:
            filters["entry_type"] = entry_type
        if category:
            filters["category"] = category
        if site_id:
            filters["site_id"] = site_id

        start = parse_date(start)
        end = parse_date(end)

        entries = [LedgerEntry.from_dict(d) for d in self.repository.find(LEDGER_ENTRIES, **filters)]
        entries = [
            e for e in entries
            if (start is None or e.transaction_date >= start) and (end is None or e.transaction_date <= end)
        ]
        entries.sort(key=lambda e: (e.transaction_date, e.created_at), reverse=True)
        return entries

    def can_view(self, actor: Actor, worker_id: str) -> bool:
        if actor.user_id == worker_id or self.permissions.is_top_role(actor.role):
            return True
        if self.permissions.has_permission(actor, "ledger.view_team"):
            return self.hierarchy.is_descendant(worker_id, actor.user_id)
        return False

    def require_view(self, actor: Actor, worker_id: str) -> None:
        if not self.can_view(actor, worker_id):
            raise AuthorizationError(f"Access denied to ledger of worker {worker_id}")

    def require_manages(self, actor: Actor, worker_id: str) -> None:
        """Below the top role, postings are limited to the actor's own team."""
        if not self.permissions.is_top_role(actor.role):
            self.hierarchy.require_team_member(
                actor.user_id, worker_id, "Can only manage ledger for your team members"
            )

    def list_entries(
        self,
        actor: Actor,
        worker_id: str,
        entry_type: str | None = None,
        category: str | None = None,
        site_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page:
        """Paginated entries for a worker the actor may see."""
        self.require_view(actor, worker_id)
        entries = self.entries(worker_id, entry_type, category, site_id, start, end)
        return paginate(entries, page, min(page_size or self.default_page_size, self.max_page_size))

    def balance(self, worker_id: str) -> LedgerBalance:
        """Sum credits and debits for a worker.

        Returns:
            LedgerBalance with per-category totals
        """
        result = LedgerBalance(worker_id=worker_id)

        for entry in self.entries(worker_id):
            totals = result.by_category.setdefault(entry.category, {"credits": ZERO, "debits": ZERO})
            if entry.entry_type == "credit":
                result.total_credits += entry.amount
                totals["credits"] += entry.amount
            else:
                result.total_debits += entry.amount
                totals["debits"] += entry.amount

        return result

    def pending_salary(
        self,
        worker_id: str,
        attendance_records: Iterable[Attendance] | None = None,
        daily_rate: Any = None,
    ) -> PendingSalary:
        """Attendance earnings posted to the ledger minus salary and advances paid.

        When attendance records are supplied, unposted_earnings reports how
        much of their computed earning has not been posted yet.
        """
        entries = self.entries(worker_id)

        earned = sum((e.signed_amount for e in entries if e.category == "attendance"), ZERO)
        paid = sum(
            (e.amount for e in entries if e.entry_type == "debit" and e.category in SALARY_PAYMENT_CATEGORIES),
            ZERO,
        )
        result = PendingSalary(worker_id=worker_id, earned=earned, paid=paid)

        if attendance_records is not None:
            rate = daily_rate if daily_rate is not None else self.hierarchy.get_user(worker_id).daily_rate
            if rate is None:
                raise ValidationError(f"Worker {worker_id} has no daily rate", {"worker_id": worker_id})

            posted = self._posted_by_source(worker_id)
            unposted = ZERO
            for record in attendance_records:
                computed = daily_earning(record.status, record.overtime, rate, self.standard_hours)
                unposted += computed - posted.get(attendance_source_key(record.id), ZERO)
            result.unposted_earnings = quantize(unposted)

        return result
