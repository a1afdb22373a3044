"""
Contracts API Routes

Provides endpoints for labor contracts and installment payments.
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

router = APIRouter(prefix="/contracts", tags=["contracts"])


class ContractCreateInput(BaseModel):
    """Input model for creating a contract."""

    worker_id: str
    site_id: str
    title: str
    total_amount: Decimal
    number_of_installments: int = 1
    contract_type: str = "fixed"
    start_date: date | None = None
    end_date: date | None = None
    daily_rate: Decimal | None = None
    fund_allocation_id: str | None = None
    description: str | None = None


class ContractUpdateInput(BaseModel):
    """Input model for editing a contract."""

    title: str | None = None
    description: str | None = None
    site_id: str | None = None
    fund_allocation_id: str | None = None
    daily_rate: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    total_amount: Decimal | None = None
    number_of_installments: int | None = None


class PaymentInput(BaseModel):
    """Input model for an installment payment."""

    installment_number: int
    amount: Decimal
    payment_mode: str = "cash"
    reference_number: str | None = None
    notes: str | None = None
    fund_allocation_id: str | None = None


class ContractActionInput(BaseModel):
    """Input model for a status action."""

    action: str  # 'activate', 'hold', 'resume', 'terminate'


@router.get("")
async def list_contracts(
    status: str | None = Query(None),
    worker_id: str | None = Query(None),
    site_id: str | None = Query(None),
    contract_type: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """List contracts of the user's team."""
    result = services.contracts.list_contracts(
        actor,
        status=status,
        worker_id=worker_id,
        site_id=site_id,
        contract_type=contract_type,
        page=page,
        page_size=page_size,
    )
    return result.to_dict()


@router.get("/summary")
async def contract_summary(
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Contract totals overall, by status and by type."""
    return services.contracts.summary(actor)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contract(
    body: ContractCreateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Create a draft contract with its installment schedule."""
    return services.contracts.create(actor, **body.model_dump()).to_dict()


@router.get("/{contract_id}")
async def get_contract(
    contract_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Get a single contract."""
    return services.contracts.view(actor, contract_id).to_dict()


@router.patch("/{contract_id}")
async def update_contract(
    contract_id: str,
    body: ContractUpdateInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Edit a contract."""
    patch = body.model_dump(exclude_unset=True)
    return services.contracts.update(actor, contract_id, patch).to_dict()


@router.put("/{contract_id}/status")
async def change_contract_status(
    contract_id: str,
    body: ContractActionInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Activate, hold, resume or terminate a contract."""
    return services.contracts.transition(actor, contract_id, body.action).to_dict()


@router.post("/{contract_id}/payment")
async def pay_installment(
    contract_id: str,
    body: PaymentInput,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Pay an installment; the worker's ledger is debited."""
    payment = services.contracts.pay_installment(actor, contract_id, **body.model_dump())
    return payment.to_dict()


@router.get("/{contract_id}/attendance-salary")
async def attendance_salary(
    contract_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Salary earned under a daily-rate contract from attendance."""
    services.contracts.view(actor, contract_id)
    return services.contracts.attendance_salary(contract_id, start_date, end_date).to_dict()


@router.delete("/{contract_id}")
async def delete_contract(
    contract_id: str,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Delete a contract without payments."""
    services.contracts.delete(actor, contract_id)
    return {"message": "Contract deleted successfully"}
