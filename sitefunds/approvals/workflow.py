"""
Approval Workflow Module

Request -> approve/reject -> pay state machine shared by expenses and bills.
The approver may approve a different figure from the one requested; the
approved amount is what counts against the funding allocation.
"""

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..allocations.ledger import AllocationLedger, FundAllocation
from ..config import load_config
from ..exceptions import (
    AuthorizationError,
    ImmutableStateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..hierarchy import OrgHierarchy
from ..kinds import BILLS, EXPENSES
from ..money import ZERO, parse_date, to_decimal
from ..permissions import Actor, PermissionTable
from ..repository import Page, Repository, paginate
from ..utilization.aggregator import UtilizationAggregator
from .gst import GSTCalculator
from .records import BILL_TYPES, ApprovalStatus, Bill, Expense

logger = logging.getLogger(__name__)

S = ApprovalStatus


def _render(bucket: dict) -> dict:
    return {k: v if isinstance(v, int) else str(v) for k, v in bucket.items()}


@dataclass
class Submission:
    """A newly created record plus advisory warnings."""

    record: Any
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "warnings": self.warnings,
        }


class ApprovalWorkflow:
    """Base workflow, parametrised by record class and transition table.

    Subclasses set:
        kind: Repository record kind
        label: Name used in messages
        record_cls: Record dataclass
        decide_capability / create_capability: Permission names
        transitions: action -> (allowed source statuses, target status)
        amount_input_fields: Patchable fields that change money figures
    """

    kind: str = ""
    label: str = ""
    record_cls: Any = None
    decide_capability: str = ""
    create_capability: str = ""
    transitions: dict[str, tuple[set[ApprovalStatus], ApprovalStatus]] = {}
    amount_input_fields: tuple[str, ...] = ()
    funding_required: bool = True

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        permissions: PermissionTable,
        allocations: AllocationLedger,
        aggregator: UtilizationAggregator,
        config: dict | None = None,
        config_dir: Path | str | None = None,
    ):
        """Initialize the workflow.

        Args:
            repository: Record store
            hierarchy: Organization hierarchy
            permissions: Capability table
            allocations: Allocation ledger (funding sources)
            aggregator: Utilization aggregator (availability checks)
            config: Already loaded configuration (takes precedence)
            config_dir: Path to configuration directory
        """
        self.repository = repository
        self.hierarchy = hierarchy
        self.permissions = permissions
        self.allocations = allocations
        self.aggregator = aggregator
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        self.auto_approve_privileged = self.config.get("approvals", {}).get("auto_approve_privileged", True)
        pagination = self.config.get("pagination", {})
        self.default_page_size = pagination.get("default_page_size", 20)
        self.max_page_size = pagination.get("max_page_size", 100)

    # ------------------------------------------------------------------
    # Reads and visibility
    # ------------------------------------------------------------------

    def get(self, record_id: str):
        data = self.repository.get(self.kind, record_id)
        if data is None:
            raise NotFoundError(self.label, record_id)
        return self.record_cls.from_dict(data)

    def is_privileged(self, actor: Actor) -> bool:
        return self.permissions.has_permission(actor, self.decide_capability)

    def visible_submitters(self, actor: Actor) -> set[str] | None:
        """User IDs whose records the actor may read (None = everyone)."""
        if self.is_privileged(actor):
            return None
        return {actor.user_id, *self.hierarchy.descendants(actor.user_id)}

    def apply_visibility(self, record, viewer: Actor):
        """Mark a subordinate's record as amount-hidden for a mid-level viewer."""
        if self.is_privileged(viewer) or record.submitted_by == viewer.user_id:
            return record
        if self.hierarchy.is_descendant(record.submitted_by, viewer.user_id):
            return dataclasses.replace(record, amount_hidden=True)
        return record

    def can_view_amounts(self, record, viewer: Actor) -> bool:
        return (
            record.submitted_by == viewer.user_id
            or self.is_privileged(viewer)
            or self.permissions.has_permission(viewer, "amounts.view_hidden")
        )

    def serialize(self, record, viewer: Actor) -> dict:
        """Render a record for a viewer, suppressing hidden amounts."""
        data = record.to_dict()
        if record.amount_hidden and not self.can_view_amounts(record, viewer):
            for name in record.amount_fields:
                data[name] = None
        return data

    def view(self, actor: Actor, record_id: str) -> dict:
        """Get a single record as the actor may see it."""
        record = self.get(record_id)
        visible = self.visible_submitters(actor)
        if visible is not None and record.submitted_by not in visible:
            raise AuthorizationError(f"Access denied to {self.label.lower()} {record_id}")
        return self.serialize(self.apply_visibility(record, actor), actor)

    def list_records(
        self,
        actor: Actor,
        status: str | None = None,
        site_id: str | None = None,
        fund_allocation_id: str | None = None,
        submitted_by: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page:
        """List records visible to the actor, newest first.

        Returns:
            Page of serialized record dicts
        """
        filters: dict[str, Any] = {}
        if status:
            filters["status"] = status
        if site_id:
            filters["site_id"] = site_id
        if fund_allocation_id:
            filters["fund_allocation_id"] = fund_allocation_id
        if submitted_by:
            filters["submitted_by"] = submitted_by

        records = self.visible_records(actor, **filters)

        page_size = min(page_size or self.default_page_size, self.max_page_size)
        result = paginate(records, page, page_size)
        result.items = [self.serialize(self.apply_visibility(r, actor), actor) for r in result.items]
        return result

    def visible_records(self, actor: Actor, **filters: Any) -> list:
        """Records the actor may read, newest first."""
        records = [self.record_cls.from_dict(d) for d in self.repository.find(self.kind, **filters)]

        visible = self.visible_submitters(actor)
        if visible is not None:
            records = [r for r in records if r.submitted_by in visible]

        records.sort(key=self._sort_key, reverse=True)
        return records

    def _summable(self, actor: Actor, **filters: Any) -> tuple[list, int]:
        """Visible records whose amounts the actor may see, plus a count of the rest."""
        shown, hidden = [], 0
        for record in self.visible_records(actor, **filters):
            record = self.apply_visibility(record, actor)
            if record.amount_hidden and not self.can_view_amounts(record, actor):
                hidden += 1
            else:
                shown.append(record)
        return shown, hidden

    def _sort_key(self, record):
        return record.created_at

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _funding_source(self, fund_allocation_id: str | None) -> FundAllocation | None:
        if not fund_allocation_id:
            if self.funding_required:
                raise ValidationError("A fund allocation is required", {"fund_allocation_id": None})
            return None

        return self.allocations.funding_source(fund_allocation_id)

    def _submit(self, actor: Actor, record) -> Submission:
        """Validate funding, apply the balance policy and store the record."""
        warnings: list[str] = []

        with self.repository.transaction():
            if record.fund_allocation_id:
                availability = self.aggregator.check_availability(
                    record.fund_allocation_id, record.requested_figure
                )
                warnings = self.aggregator.apply_policy(availability)

            if self.auto_approve_privileged and self.is_privileged(actor):
                record.status = S.APPROVED
                record.approved_amount = record.requested_figure
                record.approved_by = actor.user_id
                record.approval_date = datetime.now()

            self.repository.insert(self.kind, record.id, record.to_dict())

        logger.info(
            f"{self.label} {record.id} submitted by {actor.user_id}: "
            f"{record.requested_figure} ({record.status.value})"
        )
        return Submission(record=record, warnings=warnings)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        actor: Actor,
        record_id: str,
        action: str,
        approved_amount: Any = None,
        notes: str | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ):
        """Apply an approver decision.

        Args:
            actor: Approver (must hold the decide capability)
            record_id: Record ID
            action: One of the workflow's transition actions
            approved_amount: Required for approve (>= 0)
            notes: Required for reject
            payment_method: Required for pay
            payment_reference: Optional payment reference

        Returns:
            The updated record

        Raises:
            AuthorizationError: Actor may not decide
            ValidationError: Unknown action or missing/invalid input
            InvalidStateError: Action not allowed from the current status
        """
        self.permissions.require(actor, self.decide_capability)

        if action not in self.transitions:
            raise ValidationError(
                f"Invalid action for {self.label.lower()}: {action}",
                {"allowed": sorted(self.transitions)},
            )

        sources, target = self.transitions[action]

        with self.repository.transaction():
            record = self.get(record_id)
            if record.status not in sources:
                raise InvalidStateError(
                    f"Cannot {action} a {record.status.value} {self.label.lower()}",
                    current=record.status.value,
                    requested=target.value,
                )

            previous = record.status
            if action == "approve":
                self._approve(actor, record, approved_amount, notes)
            elif action == "reject":
                if not notes or not notes.strip():
                    raise ValidationError("A reason is required to reject", {"notes": notes})
                record.approval_notes = notes
            elif action == "credit":
                record.credited_date = date.today()
                if notes:
                    record.approval_notes = notes
            elif action == "pay":
                if not payment_method:
                    raise ValidationError("Payment method is required", {"payment_method": payment_method})
                record.paid_date = date.today()
                record.payment_method = payment_method
                record.payment_reference = payment_reference
                if notes:
                    record.approval_notes = notes

            record.status = target
            self.repository.update(self.kind, record.id, record.to_dict())

        logger.info(
            f"{self.label} {record.id}: {previous.value} -> {target.value} by {actor.user_id}"
        )
        return record

    def _approve(self, actor: Actor, record, approved_amount: Any, notes: str | None) -> None:
        if approved_amount is None:
            raise ValidationError("Approved amount is required", {"approved_amount": None})

        amount = to_decimal(approved_amount, "approved_amount")
        if amount < 0:
            raise ValidationError("Approved amount cannot be negative", {"approved_amount": str(amount)})

        if record.fund_allocation_id:
            availability = self.aggregator.check_availability(record.fund_allocation_id, amount)
            self.aggregator.apply_policy(availability)

        record.approved_amount = amount
        record.approved_by = actor.user_id
        record.approval_date = datetime.now()
        if notes is not None:
            record.approval_notes = notes

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update(self, actor: Actor, record_id: str, patch: dict[str, Any]):
        """Edit a record.

        The submitter may edit while pending. The privileged approver may
        edit descriptive fields at any time, but money fields only while
        pending.
        """
        record = self.get(record_id)
        privileged = self.is_privileged(actor)

        if record.submitted_by != actor.user_id and not privileged:
            raise AuthorizationError(f"Can only edit your own {self.label.lower()}s")

        allowed = set(record.descriptive_fields) | set(self.amount_input_fields)
        unknown = sorted(set(patch) - allowed)
        if unknown:
            raise ValidationError(
                f"Unknown {self.label.lower()} fields: {', '.join(unknown)}",
                {"fields": unknown},
            )

        if record.status != S.PENDING:
            blocked = sorted(patch) if not privileged else sorted(set(patch) & set(self.amount_input_fields))
            if blocked:
                raise ImmutableStateError(
                    f"Cannot change {', '.join(blocked)} on a {record.status.value} {self.label.lower()}",
                    status=record.status.value,
                    fields=blocked,
                )

        self._apply_patch(record, patch)
        self.repository.update(self.kind, record.id, record.to_dict())

        logger.info(f"{self.label} {record.id} updated by {actor.user_id}: {sorted(patch)}")
        return record

    def _apply_patch(self, record, patch: dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, actor: Actor, record_id: str) -> None:
        """Delete a record.

        Submitter: only while pending. Privileged approver: any time
        before it is paid.
        """
        record = self.get(record_id)

        if self.is_privileged(actor):
            if record.status == S.PAID:
                raise InvalidStateError(
                    f"Paid {self.label.lower()}s cannot be deleted",
                    current=record.status.value,
                )
        elif record.submitted_by != actor.user_id:
            raise AuthorizationError(f"Can only delete your own {self.label.lower()}s")
        elif record.status != S.PENDING:
            raise InvalidStateError(
                f"Can only delete pending {self.label.lower()}s",
                current=record.status.value,
            )

        self.repository.delete(self.kind, record_id)
        logger.info(f"{self.label} {record_id} deleted by {actor.user_id}")


class ExpenseWorkflow(ApprovalWorkflow):
    """Site expenses: pending -> approved/rejected, approved -> paid."""

    kind = EXPENSES
    label = "Expense"
    record_cls = Expense
    decide_capability = "expense.decide"
    create_capability = "expense.create"
    transitions = {
        "approve": ({S.PENDING}, S.APPROVED),
        "reject": ({S.PENDING}, S.REJECTED),
        "pay": ({S.APPROVED}, S.PAID),
    }
    amount_input_fields = ("requested_amount",)
    funding_required = True

    def create(
        self,
        actor: Actor,
        site_id: str,
        category_id: str,
        fund_allocation_id: str,
        amount: Any,
        description: str | None = None,
        vendor_name: str | None = None,
        expense_date: date | None = None,
    ) -> Submission:
        """Submit an expense against a disbursed allocation.

        Args:
            actor: Submitter
            site_id: Site the expense belongs to
            category_id: Expense category
            fund_allocation_id: Disbursed allocation funding the expense
            amount: Requested amount (must be positive)
            description: Free text
            vendor_name: Vendor
            expense_date: Defaults to today

        Returns:
            Submission with the expense and any balance warnings
        """
        self.permissions.require(actor, self.create_capability)

        if not site_id:
            raise ValidationError("Site is required", {"site_id": site_id})
        if not category_id:
            raise ValidationError("Category is required", {"category_id": category_id})

        requested = to_decimal(amount)
        if requested <= 0:
            raise ValidationError("Amount must be greater than zero", {"amount": str(requested)})

        self._funding_source(fund_allocation_id)

        expense = Expense(
            id=uuid.uuid4().hex,
            site_id=site_id,
            category_id=category_id,
            submitted_by=actor.user_id,
            fund_allocation_id=fund_allocation_id,
            requested_amount=requested,
            description=description,
            vendor_name=vendor_name,
            expense_date=parse_date(expense_date) or date.today(),
        )
        return self._submit(actor, expense)

    def summary(self, actor: Actor, site_id: str | None = None, months: int = 12) -> dict:
        """Category totals and a monthly breakdown of visible expenses.

        Expenses whose amounts are hidden from the actor are counted in
        hidden_entries and left out of the totals.

        Args:
            actor: Viewer
            site_id: Restrict to one site
            months: Number of most recent months in the breakdown

        Returns:
            Dict with overall totals, by_category and monthly (newest first)
        """
        filters = {"site_id": site_id} if site_id else {}
        expenses, hidden = self._summable(actor, **filters)

        def bucket() -> dict:
            return {"count": 0, "requested_amount": ZERO, "approved_amount": ZERO}

        overall = bucket()
        by_category: dict[str, dict[str, Any]] = {}
        by_month: dict[tuple[int, int], dict[str, Any]] = {}

        for expense in expenses:
            month = (expense.expense_date.year, expense.expense_date.month)
            for totals in (
                overall,
                by_category.setdefault(expense.category_id, bucket()),
                by_month.setdefault(month, bucket()),
            ):
                totals["count"] += 1
                totals["requested_amount"] += expense.requested_amount
                totals["approved_amount"] += expense.approved_amount or ZERO

        return {
            "site_id": site_id,
            "overall": _render(overall),
            "hidden_entries": hidden,
            "by_category": {k: _render(v) for k, v in by_category.items()},
            "monthly": [
                {"year": year, "month": month, **_render(totals)}
                for (year, month), totals in sorted(by_month.items(), reverse=True)[:months]
            ],
        }

    def _sort_key(self, record: Expense):
        return (record.expense_date, record.created_at)

    def _apply_patch(self, record: Expense, patch: dict[str, Any]) -> None:
        if "requested_amount" in patch:
            requested = to_decimal(patch["requested_amount"], "requested_amount")
            if requested <= 0:
                raise ValidationError("Amount must be greater than zero", {"amount": str(requested)})
            record.requested_amount = requested
        if "expense_date" in patch:
            record.expense_date = parse_date(patch["expense_date"]) or record.expense_date
        for name in ("description", "vendor_name", "category_id"):
            if name in patch:
                setattr(record, name, patch[name])


class BillWorkflow(ApprovalWorkflow):
    """Vendor bills: pending -> approved/rejected, approved -> credited/paid, credited -> paid."""

    kind = BILLS
    label = "Bill"
    record_cls = Bill
    decide_capability = "bill.decide"
    create_capability = "bill.create"
    transitions = {
        "approve": ({S.PENDING}, S.APPROVED),
        "reject": ({S.PENDING}, S.REJECTED),
        "credit": ({S.APPROVED}, S.CREDITED),
        "pay": ({S.APPROVED, S.CREDITED}, S.PAID),
    }
    amount_input_fields = ("base_amount", "gst_rate")
    funding_required = False

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gst = GSTCalculator(config=self.config)

    def create(
        self,
        actor: Actor,
        vendor_name: str,
        base_amount: Any,
        gst_rate: Any = None,
        site_id: str | None = None,
        fund_allocation_id: str | None = None,
        bill_type: str = "material",
        vendor_gst_number: str | None = None,
        invoice_number: str | None = None,
        bill_date: date | None = None,
        description: str | None = None,
    ) -> Submission:
        """Submit a vendor bill.

        GST and total are derived from the base amount and rate.

        Args:
            actor: Submitter
            vendor_name: Vendor
            base_amount: Amount before GST (must be positive)
            gst_rate: Rate from the configured table (default rate if None)
            site_id: Optional site
            fund_allocation_id: Optional disbursed allocation paying the bill
            bill_type: One of BILL_TYPES
            vendor_gst_number: Vendor tax registration
            invoice_number: Vendor invoice number
            bill_date: Defaults to today
            description: Free text

        Returns:
            Submission with the bill and any balance warnings
        """
        self.permissions.require(actor, self.create_capability)

        if not vendor_name:
            raise ValidationError("Vendor name is required", {"vendor_name": vendor_name})
        self._validate_bill_type(bill_type)

        gst = self.gst.compute(base_amount, gst_rate)
        self._funding_source(fund_allocation_id)

        bill = Bill(
            id=uuid.uuid4().hex,
            submitted_by=actor.user_id,
            vendor_name=vendor_name,
            base_amount=gst.base_amount,
            gst_rate=gst.gst_rate,
            gst_amount=gst.gst_amount,
            total_amount=gst.total_amount,
            site_id=site_id,
            fund_allocation_id=fund_allocation_id,
            vendor_gst_number=vendor_gst_number,
            invoice_number=invoice_number,
            bill_date=parse_date(bill_date) or date.today(),
            bill_type=bill_type,
            description=description,
        )
        return self._submit(actor, bill)

    def _validate_bill_type(self, bill_type: str) -> None:
        if bill_type not in BILL_TYPES:
            raise ValidationError(f"Invalid bill type: {bill_type}", {"allowed": list(BILL_TYPES)})

    def summary(self, actor: Actor, site_id: str | None = None) -> dict:
        """Bill totals by status and by bill type, with GST broken out.

        Bills whose amounts are hidden from the actor are counted in
        hidden_entries and left out of the totals.
        """
        filters = {"site_id": site_id} if site_id else {}
        bills, hidden = self._summable(actor, **filters)

        def bucket() -> dict:
            return {"count": 0, "base_amount": ZERO, "gst_amount": ZERO, "total_amount": ZERO}

        totals = bucket()
        by_status: dict[str, dict[str, Any]] = {}
        by_type: dict[str, dict[str, Any]] = {}

        for bill in bills:
            for entry in (
                totals,
                by_status.setdefault(bill.status.value, bucket()),
                by_type.setdefault(bill.bill_type, bucket()),
            ):
                entry["count"] += 1
                entry["base_amount"] += bill.base_amount
                entry["gst_amount"] += bill.gst_amount
                entry["total_amount"] += bill.total_amount

        return {
            "site_id": site_id,
            "totals": _render(totals),
            "hidden_entries": hidden,
            "by_status": {k: _render(v) for k, v in by_status.items()},
            "by_type": {k: _render(v) for k, v in by_type.items()},
        }

    def _sort_key(self, record: Bill):
        return (record.bill_date, record.created_at)

    def _apply_patch(self, record: Bill, patch: dict[str, Any]) -> None:
        if "base_amount" in patch or "gst_rate" in patch:
            gst = self.gst.compute(
                patch.get("base_amount", record.base_amount),
                patch.get("gst_rate", record.gst_rate),
            )
            record.base_amount = gst.base_amount
            record.gst_rate = gst.gst_rate
            record.gst_amount = gst.gst_amount
            record.total_amount = gst.total_amount
        if "bill_type" in patch:
            self._validate_bill_type(patch["bill_type"])
            record.bill_type = patch["bill_type"]
        if "bill_date" in patch:
            record.bill_date = parse_date(patch["bill_date"]) or record.bill_date
        for name in ("description", "vendor_name", "vendor_gst_number", "invoice_number"):
            if name in patch:
                setattr(record, name, patch[name])
