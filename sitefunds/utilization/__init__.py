"""
Utilization Module

Allocation utilization and per-user wallet balances, recomputed from
source records on every read.
"""

from .aggregator import (
    FundAvailability,
    UtilizationAggregator,
    UtilizationReport,
)
from .wallet import (
    AllocationBalance,
    WalletBalanceCalculator,
    WalletSummary,
)

__all__ = [
    # Aggregator
    "UtilizationAggregator",
    "UtilizationReport",
    "FundAvailability",
    # Wallet
    "WalletBalanceCalculator",
    "WalletSummary",
    "AllocationBalance",
]
