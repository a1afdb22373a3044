"""
Approval Records Module

Expense and Bill records that pass through the approval workflow.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar

from ..money import decimal_or_none, iso_or_none, parse_date, parse_datetime, str_or_none


class ApprovalStatus(str, Enum):
    """Approval lifecycle status shared by expenses and bills."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CREDITED = "credited"
    PAID = "paid"


BILL_TYPES = ("material", "service", "labor", "equipment", "utility", "other")


@dataclass
class Expense:
    """Site expense submitted against a disbursed allocation."""

    # Suppressed for readers who may not see hidden amounts
    amount_fields: ClassVar[tuple[str, ...]] = ("requested_amount", "approved_amount")
    # Editable by the submitter while pending
    descriptive_fields: ClassVar[tuple[str, ...]] = ("description", "vendor_name", "expense_date", "category_id")

    id: str
    site_id: str
    category_id: str
    submitted_by: str
    fund_allocation_id: str
    requested_amount: Decimal
    approved_amount: Decimal | None = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    description: str | None = None
    vendor_name: str | None = None
    expense_date: date = field(default_factory=date.today)
    amount_hidden: bool = False
    approved_by: str | None = None
    approval_date: datetime | None = None
    approval_notes: str | None = None
    paid_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def requested_figure(self) -> Decimal:
        return self.requested_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "category_id": self.category_id,
            "submitted_by": self.submitted_by,
            "fund_allocation_id": self.fund_allocation_id,
            "requested_amount": str(self.requested_amount),
            "approved_amount": str_or_none(self.approved_amount),
            "status": self.status.value,
            "description": self.description,
            "vendor_name": self.vendor_name,
            "expense_date": self.expense_date.isoformat(),
            "amount_hidden": self.amount_hidden,
            "approved_by": self.approved_by,
            "approval_date": iso_or_none(self.approval_date),
            "approval_notes": self.approval_notes,
            "paid_date": iso_or_none(self.paid_date),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Expense":
        return cls(
            id=data["id"],
            site_id=data["site_id"],
            category_id=data["category_id"],
            submitted_by=data["submitted_by"],
            fund_allocation_id=data["fund_allocation_id"],
            requested_amount=Decimal(str(data["requested_amount"])),
            approved_amount=decimal_or_none(data.get("approved_amount")),
            status=ApprovalStatus(data.get("status", "pending")),
            description=data.get("description"),
            vendor_name=data.get("vendor_name"),
            expense_date=parse_date(data.get("expense_date")) or date.today(),
            amount_hidden=data.get("amount_hidden", False),
            approved_by=data.get("approved_by"),
            approval_date=parse_datetime(data.get("approval_date")),
            approval_notes=data.get("approval_notes"),
            paid_date=parse_date(data.get("paid_date")),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class Bill:
    """Vendor bill with GST, optionally drawn on an allocation."""

    amount_fields: ClassVar[tuple[str, ...]] = ("base_amount", "gst_amount", "total_amount", "approved_amount")
    descriptive_fields: ClassVar[tuple[str, ...]] = (
        "description", "vendor_name", "vendor_gst_number", "invoice_number", "bill_date", "bill_type",
    )

    id: str
    submitted_by: str
    vendor_name: str
    base_amount: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    site_id: str | None = None
    fund_allocation_id: str | None = None
    vendor_gst_number: str | None = None
    invoice_number: str | None = None
    bill_date: date = field(default_factory=date.today)
    bill_type: str = "material"
    approved_amount: Decimal | None = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    description: str | None = None
    amount_hidden: bool = False
    approved_by: str | None = None
    approval_date: datetime | None = None
    approval_notes: str | None = None
    credited_date: date | None = None
    paid_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def requested_figure(self) -> Decimal:
        return self.total_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "submitted_by": self.submitted_by,
            "fund_allocation_id": self.fund_allocation_id,
            "vendor_name": self.vendor_name,
            "vendor_gst_number": self.vendor_gst_number,
            "invoice_number": self.invoice_number,
            "bill_date": self.bill_date.isoformat(),
            "bill_type": self.bill_type,
            "base_amount": str(self.base_amount),
            "gst_rate": str(self.gst_rate),
            "gst_amount": str(self.gst_amount),
            "total_amount": str(self.total_amount),
            "approved_amount": str_or_none(self.approved_amount),
            "status": self.status.value,
            "description": self.description,
            "amount_hidden": self.amount_hidden,
            "approved_by": self.approved_by,
            "approval_date": iso_or_none(self.approval_date),
            "approval_notes": self.approval_notes,
            "credited_date": iso_or_none(self.credited_date),
            "paid_date": iso_or_none(self.paid_date),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bill":
        return cls(
            id=data["id"],
            submitted_by=data["submitted_by"],
            vendor_name=data["vendor_name"],
            base_amount=Decimal(str(data["base_amount"])),
            gst_rate=Decimal(str(data["gst_rate"])),
            gst_amount=Decimal(str(data["gst_amount"])),
            total_amount=Decimal(str(data["total_amount"])),
            site_id=data.get("site_id"),
            fund_allocation_id=data.get("fund_allocation_id"),
            vendor_gst_number=data.get("vendor_gst_number"),
            invoice_number=data.get("invoice_number"),
            bill_date=parse_date(data.get("bill_date")) or date.today(),
            bill_type=data.get("bill_type", "material"),
            approved_amount=decimal_or_none(data.get("approved_amount")),
            status=ApprovalStatus(data.get("status", "pending")),
            description=data.get("description"),
            amount_hidden=data.get("amount_hidden", False),
            approved_by=data.get("approved_by"),
            approval_date=parse_datetime(data.get("approval_date")),
            approval_notes=data.get("approval_notes"),
            credited_date=parse_date(data.get("credited_date")),
            paid_date=parse_date(data.get("paid_date")),
            payment_method=data.get("payment_method"),
            payment_reference=data.get("payment_reference"),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )
