"""
Contracts Module

Labor contracts, installment schedules and installment payments.
"""

from .tracker import (
    Contract,
    ContractInstallmentTracker,
    ContractPayment,
    ContractStatus,
    Installment,
    InstallmentStatus,
    generate_installments,
    record_payment,
)

__all__ = [
    "Contract",
    "ContractInstallmentTracker",
    "ContractPayment",
    "ContractStatus",
    "Installment",
    "InstallmentStatus",
    "generate_installments",
    "record_payment",
]
