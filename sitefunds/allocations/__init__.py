"""
Allocations Module

Fund allocation lifecycle between users of the site hierarchy.
"""

from .ledger import (
    AllocationLedger,
    AllocationStatus,
    FundAllocation,
    PURPOSES,
)

__all__ = [
    "AllocationLedger",
    "AllocationStatus",
    "FundAllocation",
    "PURPOSES",
]
