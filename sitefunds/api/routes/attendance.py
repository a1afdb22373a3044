"""
Attendance API Routes

Provides endpoints for marking attendance and attendance earnings.
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

router = APIRouter(prefix="/attendance", tags=["attendance"])


class AttendanceInput(BaseModel):
    """Input model for marking attendance."""

    worker_id: str
    site_id: str
    day: date
    status: str = "present"
    hours_worked: Decimal = Decimal("8")
    overtime: Decimal = Decimal("0")
    notes: str | None = None


class BulkAttendanceInput(BaseModel):
    """Input model for marking several workers at once."""

    records: list[AttendanceInput]


@router.post("", status_code=status.HTTP_201_CREATED)
async def mark_attendance(
    body: AttendanceInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Mark attendance (replaces an earlier mark for the same day)."""
    return services.attendance.mark(actor, **body.model_dump()).to_dict()


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def mark_bulk(
    body: BulkAttendanceInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Mark attendance for several workers in one request."""
    with services.repository.transaction():
        marked = [services.attendance.mark(actor, **r.model_dump()) for r in body.records]
    return {"items": [r.to_dict() for r in marked], "total": len(marked)}


@router.get("/{worker_id}")
async def list_attendance(
    worker_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    site_id: str | None = Query(None),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List a worker's attendance, oldest first."""
    services.ledger.require_view(actor, worker_id)
    records = services.attendance.records(worker_id, start_date, end_date, site_id)
    return {"items": [r.to_dict() for r in records], "total": len(records)}


@router.get("/{worker_id}/summary")
async def attendance_summary(
    worker_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    site_id: str | None = Query(None),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Attendance totals and earnings for a worker."""
    services.ledger.require_view(actor, worker_id)
    return services.attendance.summary(worker_id, start_date, end_date, site_id).to_dict()
