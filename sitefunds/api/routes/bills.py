"""
Bills API Routes

Provides endpoints for vendor bills, GST preview and bill decisions.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from ...permissions import Actor
from ...services import Services
from ..auth import get_actor
from ..deps import get_services
from .expenses import DecisionInput

router = APIRouter(prefix="/bills", tags=["bills"])


class BillCreateInput(BaseModel):
    """Input model for submitting a bill."""

    vendor_name: str
    base_amount: Decimal
    gst_rate: Decimal | None = None
    site_id: str | None = None
    fund_allocation_id: str | None = None
    bill_type: str = "material"
    vendor_gst_number: str | None = None
    invoice_number: str | None = None
    bill_date: date | None = None
    description: str | None = None


class BillUpdateInput(BaseModel):
    """Input model for editing a bill."""

    base_amount: Decimal | None = None
    gst_rate: Decimal | None = None
    vendor_name: str | None = None
    vendor_gst_number: str | None = None
    invoice_number: str | None = None
    bill_date: date | None = None
    bill_type: str | None = None
    description: str | None = None


@router.get("")
async def list_bills(
    status: str | None = Query(None),
    site_id: str | None = Query(None),
    fund_allocation_id: str | None = Query(None),
    submitted_by: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List bills visible to the user."""
    result = services.bills.list_records(
        actor,
        status=status,
        site_id=site_id,
        fund_allocation_id=fund_allocation_id,
        submitted_by=submitted_by,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@router.get("/gst")
async def preview_gst(
    base_amount: Decimal = Query(..., gt=0),
    gst_rate: Decimal | None = Query(None),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Compute GST for a base amount without storing anything."""
    return services.bills.gst.compute(base_amount, gst_rate).to_dict()


@router.get("/summary")
async def bill_summary(
    site_id: str | None = Query(None),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Bill totals by status and type with GST."""
    return services.bills.summary(actor, site_id=site_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_bill(
    body: BillCreateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Submit a vendor bill; GST and total are derived."""
    submission = services.bills.create(actor, **body.model_dump())
    return submission.to_dict()


@router.get("/{bill_id}")
async def get_bill(
    bill_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get a single bill."""
    return services.bills.view(actor, bill_id)


@router.put("/{bill_id}/decision")
async def decide_bill(
    bill_id: str,
    body: DecisionInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Approve, reject, credit or pay a bill."""
    bill = services.bills.decide(actor, bill_id, **body.model_dump())
    return services.bills.serialize(bill, actor)


@router.patch("/{bill_id}")
async def update_bill(
    bill_id: str,
    body: BillUpdateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Edit a bill; amount changes re-derive GST."""
    bill = services.bills.update(actor, bill_id, body.model_dump(exclude_unset=True))
    return services.bills.serialize(bill, actor)


@router.delete("/{bill_id}")
async def delete_bill(
    bill_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Delete a bill."""
    services.bills.delete(actor, bill_id)
    return {"message": "Bill deleted successfully"}
