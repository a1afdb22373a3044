"""
Allocations API Routes

Provides endpoints for the fund allocation lifecycle and allocation
utilization.
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

router = APIRouter(prefix="/allocations", tags=["allocations"])


class AllocationCreateInput(BaseModel):
    """Input model for creating an allocation."""

    to_user: str
    amount: Decimal
    purpose: str = "site_expense"
    site_id: str | None = None
    description: str | None = None
    reference_number: str | None = None
    parent_allocation_id: str | None = None
    allocation_date: date | None = None


class AllocationUpdateInput(BaseModel):
    """Input model for editing an allocation."""

    to_user: str | None = None
    amount: Decimal | None = None
    purpose: str | None = None
    site_id: str | None = None
    description: str | None = None
    reference_number: str | None = None


class StatusInput(BaseModel):
    """Input model for a status transition."""

    status: str


@router.get("")
async def list_allocations(
    status: str | None = Query(None),
    site_id: str | None = Query(None),
    user_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List allocations visible to the user."""
    result = services.allocations.list_allocations(
        actor,
        status=status,
        site_id=site_id,
        user_id=user_id,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_allocation(
    body: AllocationCreateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Create a pending allocation from the user to a team member."""
    allocation = services.allocations.create(actor, **body.model_dump())
    return allocation.to_dict()


@router.get("/{allocation_id}")
async def get_allocation(
    allocation_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get an allocation with its sub-allocations."""
    allocation = services.allocations.view(actor, allocation_id)
    data = allocation.to_dict()
    data["children"] = [c.to_dict() for c in services.allocations.children(allocation_id)]
    return data


@router.get("/{allocation_id}/utilization")
async def get_utilization(
    allocation_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get utilization of an allocation."""
    allocation = services.allocations.view(actor, allocation_id)
    return services.utilization.utilization_for(allocation).to_dict()


@router.get("/{allocation_id}/availability")
async def check_availability(
    allocation_id: str,
    amount: Decimal = Query(..., gt=0),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Check whether an allocation can cover an amount (advisory)."""
    services.allocations.view(actor, allocation_id)
    return services.utilization.check_availability(allocation_id, amount).to_dict()


@router.put("/{allocation_id}/status")
async def update_status(
    allocation_id: str,
    body: StatusInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Approve, reject or confirm disbursement of an allocation."""
    return services.allocations.transition(actor, allocation_id, body.status).to_dict()


@router.patch("/{allocation_id}")
async def update_allocation(
    allocation_id: str,
    body: AllocationUpdateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Edit fields allowed in the allocation's current status."""
    patch = body.model_dump(exclude_unset=True)
    return services.allocations.update(actor, allocation_id, patch).to_dict()


@router.delete("/{allocation_id}")
async def delete_allocation(
    allocation_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Delete a pending, unused allocation."""
    services.allocations.delete(actor, allocation_id)
    return {"message": "Allocation deleted successfully"}
