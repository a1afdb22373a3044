"""
Expenses API Routes

Provides endpoints for submitting expenses and deciding on them.
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

router = APIRouter(prefix="/expenses", tags=["expenses"])


class ExpenseCreateInput(BaseModel):
    """Input model for submitting an expense."""

    site_id: str
    category_id: str
    fund_allocation_id: str
    amount: Decimal
    description: str | None = None
    vendor_name: str | None = None
    expense_date: date | None = None


class ExpenseUpdateInput(BaseModel):
    """Input model for editing an expense."""

    requested_amount: Decimal | None = None
    category_id: str | None = None
    description: str | None = None
    vendor_name: str | None = None
    expense_date: date | None = None


class DecisionInput(BaseModel):
    """Input model for an approver decision."""

    action: str  # 'approve', 'reject', 'pay' ('credit' for bills)
    approved_amount: Decimal | None = None
    notes: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None


@router.get("")
async def list_expenses(
    status: str | None = Query(None),
    site_id: str | None = Query(None),
    fund_allocation_id: str | None = Query(None),
    submitted_by: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List expenses visible to the user, with hidden amounts suppressed."""
    result = services.expenses.list_records(
        actor,
        status=status,
        site_id=site_id,
        fund_allocation_id=fund_allocation_id,
        submitted_by=submitted_by,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@router.get("/summary")
async def expense_summary(
    site_id: str | None = Query(None),
    months: int = Query(12, ge=1, le=60),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Expense totals by category and by month."""
    return services.expenses.summary(actor, site_id=site_id, months=months)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_expense(
    body: ExpenseCreateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Submit an expense against a disbursed allocation.

    Returns the expense and any advisory balance warnings.
    """
    submission = services.expenses.create(actor, **body.model_dump())
    return submission.to_dict()


@router.get("/{expense_id}")
async def get_expense(
    expense_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get a single expense."""
    return services.expenses.view(actor, expense_id)


@router.put("/{expense_id}/decision")
async def decide_expense(
    expense_id: str,
    body: DecisionInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Approve, reject or pay an expense."""
    expense = services.expenses.decide(actor, expense_id, **body.model_dump())
    return services.expenses.serialize(expense, actor)


@router.patch("/{expense_id}")
async def update_expense(
    expense_id: str,
    body: ExpenseUpdateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Edit an expense."""
    expense = services.expenses.update(actor, expense_id, body.model_dump(exclude_unset=True))
    return services.expenses.serialize(expense, actor)


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Delete an expense."""
    services.expenses.delete(actor, expense_id)
    return {"message": "Expense deleted successfully"}
