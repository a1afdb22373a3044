"""
Worker Ledger API Routes

Provides endpoints for ledger entries, balances and pending salary.
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

router = APIRouter(prefix="/ledger", tags=["ledger"])


class LedgerEntryInput(BaseModel):
    """Input model for recording a ledger entry."""

    worker_id: str
    entry_type: str
    amount: Decimal
    category: str = "other"
    site_id: str | None = None
    fund_allocation_id: str | None = None
    contract_id: str | None = None
    description: str | None = None
    transaction_date: date | None = None
    reference_number: str | None = None
    payment_mode: str = "cash"


class PostEarningsInput(BaseModel):
    """Input model for posting attendance earnings."""

    start_date: date | None = None
    end_date: date | None = None
    site_id: str | None = None
    daily_rate: Decimal | None = None


@router.get("/{worker_id}/entries")
async def list_entries(
    worker_id: str,
    entry_type: str | None = Query(None),
    category: str | None = Query(None),
    site_id: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List a worker's ledger entries, newest first."""
    result = services.ledger.list_entries(
        actor,
        worker_id,
        entry_type=entry_type,
        category=category,
        site_id=site_id,
        start=start_date,
        end=end_date,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_entry(
    body: LedgerEntryInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Append a credit or debit to a worker's ledger."""
    return services.ledger.record_entry(actor, **body.model_dump()).to_dict()


@router.get("/{worker_id}/balance")
async def get_balance(
    worker_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get a worker's running balance."""
    services.ledger.require_view(actor, worker_id)
    return services.ledger.balance(worker_id).to_dict()


@router.get("/{worker_id}/pending-salary")
async def get_pending_salary(
    worker_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Posted attendance earnings not yet settled, plus unposted earnings."""
    services.ledger.require_view(actor, worker_id)
    records = services.attendance.records(worker_id)
    profile = services.hierarchy.get_user(worker_id)

    if profile.daily_rate is None:
        return services.ledger.pending_salary(worker_id).to_dict()
    return services.ledger.pending_salary(worker_id, records, profile.daily_rate).to_dict()


@router.post("/{worker_id}/attendance-earnings")
async def post_attendance_earnings(
    worker_id: str,
    body: PostEarningsInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Post attendance earnings to the ledger (safe to repeat)."""
    records = services.attendance.records(worker_id, body.start_date, body.end_date, body.site_id)
    posted = services.ledger.post_attendance_earnings(actor, worker_id, records, body.daily_rate)
    return {
        "posted": [e.to_dict() for e in posted],
        "balance": services.ledger.balance(worker_id).to_dict(),
    }
