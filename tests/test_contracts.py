"""
Tests for Contract Installment Tracker Module

Tests installment generation, payments, status transitions and contract
administration.
"""

import re
from datetime import date, timedelta
from decimal import Decimal

import pytest

from sitefunds.contracts import (
    Contract,
    ContractStatus,
    InstallmentStatus,
    generate_installments,
    record_payment,
)
from sitefunds.exceptions import (
    AuthorizationError,
    ConflictError,
    ImmutableStateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from sitefunds.permissions import Actor
from sitefunds.services import Services


@pytest.fixture
def contract(services: Services, supervisor: Actor) -> Contract:
    """A draft contract of 100000 in 6 installments over 180 days."""
    return services.contracts.create(
        supervisor,
        worker_id="worker",
        site_id="site-1",
        title="Plastering Block A",
        total_amount="100000",
        number_of_installments=6,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 6, 30),
    )


@pytest.fixture
def active_contract(services: Services, supervisor: Actor, contract: Contract) -> Contract:
    return services.contracts.transition(supervisor, contract.id, "activate")


def make_contract(total: str, count: int, status: ContractStatus = ContractStatus.ACTIVE) -> Contract:
    contract = Contract(
        id="c-1",
        contract_number="CON-202601-0001",
        worker_id="worker",
        site_id="site-1",
        created_by="supervisor",
        title="Test",
        total_amount=Decimal(total),
        number_of_installments=count,
        status=status,
    )
    generate_installments(contract)
    return contract


# =============================================================================
# Installment Generation Tests
# =============================================================================

class TestGenerateInstallments:
    """Tests for generate_installments."""

    def test_last_installment_absorbs_remainder(self, contract: Contract):
        amounts = [i.amount for i in contract.installments]

        assert amounts == [Decimal("16666")] * 5 + [Decimal("16670")]
        assert sum(amounts) == Decimal("100000")
        assert [i.installment_number for i in contract.installments] == [1, 2, 3, 4, 5, 6]

    def test_due_dates_spread_over_period(self, contract: Contract):
        due_dates = [i.due_date for i in contract.installments]

        assert due_dates[0] == date(2026, 1, 31)
        assert due_dates[-1] == date(2026, 6, 30)
        assert due_dates == sorted(due_dates)

    def test_no_due_dates_without_end(self, services: Services, supervisor: Actor):
        contract = services.contracts.create(
            supervisor, worker_id="worker", site_id="site-1", title="Open", total_amount="900",
            number_of_installments=3,
        )
        assert all(i.due_date is None for i in contract.installments)

    def test_single_installment(self):
        contract = make_contract("1234.56", 1)

        assert len(contract.installments) == 1
        assert contract.installments[0].amount == Decimal("1234.56")

    def test_totals_start_at_zero(self, contract: Contract):
        assert contract.total_paid == Decimal("0")
        assert contract.remaining_amount == Decimal("100000")
        assert contract.status == ContractStatus.DRAFT


# =============================================================================
# Record Payment Tests
# =============================================================================

class TestRecordPayment:
    """Tests for the pure record_payment operation."""

    def test_partial_then_paid(self):
        contract = make_contract("3000", 3)

        installment = record_payment(contract, 1, "400")
        assert installment.status == InstallmentStatus.PARTIAL

        installment = record_payment(contract, 1, "600")
        assert installment.status == InstallmentStatus.PAID
        assert contract.total_paid == Decimal("1000")
        assert contract.remaining_amount == Decimal("2000")
        assert contract.paid_installments_count == 1
        assert contract.progress_percent == 33

    def test_completes_when_fully_paid(self):
        contract = make_contract("2000", 2)
        record_payment(contract, 1, "1000")
        record_payment(contract, 2, "1000")

        assert contract.status == ContractStatus.COMPLETED

    def test_terminated_stays_terminated(self):
        contract = make_contract("2000", 2, status=ContractStatus.TERMINATED)
        record_payment(contract, 1, "1000")
        record_payment(contract, 2, "1000")

        assert contract.status == ContractStatus.TERMINATED
        assert contract.remaining_amount == Decimal("0")

    def test_unknown_installment(self):
        with pytest.raises(NotFoundError):
            record_payment(make_contract("2000", 2), 3, "10")

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            record_payment(make_contract("2000", 2), 1, "0")


# =============================================================================
# Tracker Tests
# =============================================================================

class TestContractCreate:
    """Tests for ContractInstallmentTracker.create."""

    def test_contract_number_format(self, services: Services, supervisor: Actor, contract: Contract):
        assert re.fullmatch(r"CON-\d{6}-0001", contract.contract_number)

        second = services.contracts.create(
            supervisor, worker_id="worker", site_id="site-1", title="Tiling", total_amount="5000"
        )
        assert second.contract_number.endswith("-0002")
        assert second.contract_number[:11] == contract.contract_number[:11]

    @pytest.mark.parametrize("count", [0, -1, "3", True, 2.5])
    def test_invalid_installment_count(self, services: Services, supervisor: Actor, count):
        with pytest.raises(ValidationError):
            services.contracts.create(
                supervisor, worker_id="worker", site_id="site-1", title="X",
                total_amount="1000", number_of_installments=count,
            )

    @pytest.mark.parametrize("overrides", [
        {"total_amount": "0"},
        {"contract_type": "hourly"},
        {"title": ""},
        {"start_date": date(2026, 2, 1), "end_date": date(2026, 1, 1)},
        {"daily_rate": "-5"},
        {"start_date": "not-a-date"},
    ])
    def test_invalid_fields(self, services: Services, supervisor: Actor, overrides):
        fields = {"worker_id": "worker", "site_id": "site-1", "title": "X", "total_amount": "1000"}
        fields.update(overrides)

        with pytest.raises(ValidationError):
            services.contracts.create(supervisor, **fields)

    def test_unknown_worker_or_allocation(self, services: Services, supervisor: Actor):
        with pytest.raises(NotFoundError):
            services.contracts.create(
                supervisor, worker_id="ghost", site_id="site-1", title="X", total_amount="1000"
            )
        with pytest.raises(NotFoundError):
            services.contracts.create(
                supervisor, worker_id="worker", site_id="site-1", title="X", total_amount="1000",
                fund_allocation_id="missing",
            )

    def test_worker_cannot_create(self, services: Services, worker: Actor):
        with pytest.raises(AuthorizationError):
            services.contracts.create(worker, worker_id="worker", site_id="site-1", title="X", total_amount="1")

    def test_only_own_team(self, services: Services, supervisor2: Actor, manager: Actor):
        """Below the top role, contracts are only made for one's own team."""
        with pytest.raises(AuthorizationError):
            services.contracts.create(
                supervisor2, worker_id="worker", site_id="site-1", title="X", total_amount="1000"
            )

        contract = services.contracts.create(
            manager, worker_id="worker", site_id="site-1", title="X", total_amount="1000"
        )
        assert contract.created_by == "manager"

    def test_allocation_must_be_disbursed(self, services: Services, supervisor: Actor, manager: Actor):
        allocation = services.allocations.create(manager, to_user="supervisor", amount="1000")

        with pytest.raises(ValidationError):
            services.contracts.create(
                supervisor, worker_id="worker", site_id="site-1", title="X", total_amount="1000",
                fund_allocation_id=allocation.id,
            )


class TestContractTransitions:
    """Tests for contract status actions."""

    def test_lifecycle(self, services: Services, supervisor: Actor, contract: Contract):
        assert services.contracts.transition(supervisor, contract.id, "activate").status == ContractStatus.ACTIVE
        assert services.contracts.transition(supervisor, contract.id, "hold").status == ContractStatus.ON_HOLD
        assert services.contracts.transition(supervisor, contract.id, "resume").status == ContractStatus.ACTIVE
        assert (
            services.contracts.transition(supervisor, contract.id, "terminate").status
            == ContractStatus.TERMINATED
        )

    def test_hold_draft_rejected(self, services: Services, supervisor: Actor, contract: Contract):
        with pytest.raises(InvalidStateError):
            services.contracts.transition(supervisor, contract.id, "hold")

    def test_unknown_action(self, services: Services, supervisor: Actor, contract: Contract):
        with pytest.raises(ValidationError):
            services.contracts.transition(supervisor, contract.id, "complete")

    def test_only_own_team(self, services: Services, supervisor2: Actor, contract: Contract):
        with pytest.raises(AuthorizationError):
            services.contracts.transition(supervisor2, contract.id, "activate")
        assert services.contracts.get(contract.id).status == ContractStatus.DRAFT


class TestPayInstallment:
    """Tests for ContractInstallmentTracker.pay_installment."""

    def test_draft_not_payable(self, services: Services, supervisor: Actor, contract: Contract):
        with pytest.raises(InvalidStateError):
            services.contracts.pay_installment(supervisor, contract.id, 1, "100")

        assert services.ledger.entries("worker") == []

    def test_payment_debits_ledger(self, services: Services, supervisor: Actor, active_contract: Contract):
        payment = services.contracts.pay_installment(
            supervisor, active_contract.id, 1, "10000", payment_mode="upi", notes="first part"
        )

        entry = payment.ledger_entry
        assert entry.entry_type == "debit"
        assert entry.category == "contract_payment"
        assert entry.contract_id == active_contract.id
        assert entry.amount == Decimal("10000.00")

        installment = payment.contract.installment(1)
        assert installment.status == InstallmentStatus.PARTIAL
        assert installment.ledger_entry_id == entry.id
        assert installment.notes == "first part"

        stored = services.contracts.get(active_contract.id)
        assert stored.total_paid == Decimal("10000.00")
        assert stored.remaining_amount == Decimal("90000.00")
        assert services.ledger.balance("worker").total_debits == Decimal("10000.00")

    def test_full_payment_completes(self, services: Services, supervisor: Actor):
        contract = services.contracts.create(
            supervisor, worker_id="worker", site_id="site-1", title="Gate", total_amount="3000",
            number_of_installments=2,
        )
        services.contracts.transition(supervisor, contract.id, "activate")

        services.contracts.pay_installment(supervisor, contract.id, 1, "1500")
        payment = services.contracts.pay_installment(supervisor, contract.id, 2, "1500")

        assert payment.contract.status == ContractStatus.COMPLETED
        assert payment.contract.progress_percent == 100
        assert payment.contract.paid_installments_count == 2

    def test_terminated_payable_but_not_completed(
        self, services: Services, supervisor: Actor, active_contract: Contract
    ):
        services.contracts.transition(supervisor, active_contract.id, "terminate")

        for installment in active_contract.installments:
            services.contracts.pay_installment(
                supervisor, active_contract.id, installment.installment_number, installment.amount
            )

        stored = services.contracts.get(active_contract.id)
        assert stored.remaining_amount == Decimal("0")
        assert stored.status == ContractStatus.TERMINATED

    def test_failed_payment_writes_nothing(
        self, services: Services, supervisor: Actor, active_contract: Contract
    ):
        with pytest.raises(NotFoundError):
            services.contracts.pay_installment(supervisor, active_contract.id, 9, "100")

        assert services.ledger.entries("worker") == []
        assert services.contracts.get(active_contract.id).total_paid == Decimal("0")

    def test_payment_counts_against_allocation(
        self, services: Services, supervisor: Actor, active_contract: Contract, funded_supervisor
    ):
        services.contracts.pay_installment(
            supervisor, active_contract.id, 1, "16666", fund_allocation_id=funded_supervisor.id
        )

        report = services.utilization.utilization(funded_supervisor.id)
        assert report.ledger_debit_net == Decimal("16666.00")
        assert report.remaining_balance == Decimal("33334.00")

    def test_outside_team_cannot_pay(
        self, services: Services, supervisor2: Actor, active_contract: Contract
    ):
        with pytest.raises(AuthorizationError):
            services.contracts.pay_installment(supervisor2, active_contract.id, 1, "16666")

        assert services.ledger.entries("worker") == []
        assert services.contracts.get(active_contract.id).total_paid == Decimal("0")

    def test_rejected_allocation_not_usable(
        self, services: Services, manager: Actor, director: Actor, supervisor: Actor, active_contract: Contract
    ):
        allocation = services.allocations.create(manager, to_user="supervisor", amount="1000")
        services.allocations.reject(director, allocation.id)

        with pytest.raises(ValidationError):
            services.contracts.pay_installment(
                supervisor, active_contract.id, 1, "700", fund_allocation_id=allocation.id
            )

        assert services.ledger.entries("worker") == []
        assert services.utilization.utilization(allocation.id).total_utilized == Decimal("0")


class TestContractAdministration:
    """Tests for contract edits, deletion, visibility and summary."""

    def test_reschedule_before_payment(self, services: Services, supervisor: Actor, contract: Contract):
        updated = services.contracts.update(supervisor, contract.id, {"number_of_installments": 4})

        assert [i.amount for i in updated.installments] == [Decimal("25000")] * 4

    def test_schedule_locked_after_payment(
        self, services: Services, supervisor: Actor, active_contract: Contract
    ):
        services.contracts.pay_installment(supervisor, active_contract.id, 1, "100")

        with pytest.raises(ImmutableStateError):
            services.contracts.update(supervisor, active_contract.id, {"total_amount": "200000"})

        updated = services.contracts.update(supervisor, active_contract.id, {"title": "Plastering A+B"})
        assert updated.title == "Plastering A+B"
        assert updated.total_paid == Decimal("100.00")

    def test_terminated_is_immutable(self, services: Services, supervisor: Actor, contract: Contract):
        services.contracts.transition(supervisor, contract.id, "terminate")

        with pytest.raises(ImmutableStateError):
            services.contracts.update(supervisor, contract.id, {"description": "late"})

    def test_delete(self, services: Services, director: Actor, supervisor: Actor, contract: Contract):
        with pytest.raises(AuthorizationError):
            services.contracts.delete(supervisor, contract.id)

        services.contracts.delete(director, contract.id)
        with pytest.raises(NotFoundError):
            services.contracts.get(contract.id)

    def test_delete_with_payments_conflicts(
        self, services: Services, director: Actor, supervisor: Actor, active_contract: Contract
    ):
        services.contracts.pay_installment(supervisor, active_contract.id, 1, "100")

        with pytest.raises(ConflictError):
            services.contracts.delete(director, active_contract.id)

    def test_visibility(
        self, services: Services, supervisor: Actor, supervisor2: Actor, manager: Actor, contract: Contract
    ):
        assert services.contracts.view(manager, contract.id).id == contract.id
        with pytest.raises(AuthorizationError):
            services.contracts.view(supervisor2, contract.id)

        assert services.contracts.list_contracts(supervisor).total == 1
        assert services.contracts.list_contracts(supervisor2).total == 0

    def test_summary(self, services: Services, supervisor: Actor, director: Actor, active_contract: Contract):
        services.contracts.create(
            supervisor, worker_id="worker", site_id="site-1", title="Daily work",
            total_amount="5000", contract_type="daily",
        )
        services.contracts.pay_installment(supervisor, active_contract.id, 1, "1000")

        summary = services.contracts.summary(director)
        assert summary["overall"]["count"] == 2
        assert summary["overall"]["total_amount"] == "105000"
        assert summary["overall"]["total_paid"] == "1000.00"
        assert summary["by_status"]["active"]["count"] == 1
        assert summary["by_type"]["daily"]["count"] == 1


class TestAttendanceSalary:
    """Tests for attendance-derived salary of daily contracts."""

    def test_daily_contract_salary(self, services: Services, supervisor: Actor):
        start = date(2026, 3, 2)
        contract = services.contracts.create(
            supervisor, worker_id="worker", site_id="site-1", title="Masonry (daily)",
            total_amount="20000", contract_type="daily", start_date=start, end_date=date(2026, 3, 31),
        )

        for offset in range(6):
            services.attendance.mark(
                supervisor, "worker", "site-1", start + timedelta(days=offset),
                overtime=8 if offset == 0 else 0,
            )
        services.attendance.mark(supervisor, "worker", "site-1", start + timedelta(days=6), status="half_day")
        services.attendance.mark(supervisor, "worker", "site-2", start + timedelta(days=7))

        summary = services.contracts.attendance_salary(contract.id)
        assert summary.present_days == 6
        assert summary.half_days == 1
        assert summary.total_earned == Decimal("2662.50")

    def test_fixed_contract_rejected(self, services: Services, contract: Contract):
        with pytest.raises(ValidationError):
            services.contracts.attendance_salary(contract.id)
