"""
API Routes Package

Contains all route modules for the fund flow API.
"""

from .allocations import router as allocations_router
from .attendance import router as attendance_router
from .bills import router as bills_router
from .contracts import router as contracts_router
from .expenses import router as expenses_router
from .ledger import router as ledger_router
from .wallet import router as wallet_router

__all__ = [
    "allocations_router",
    "attendance_router",
    "bills_router",
    "contracts_router",
    "expenses_router",
    "ledger_router",
    "wallet_router",
]
