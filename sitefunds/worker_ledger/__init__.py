"""
Worker Ledger Module

Worker credit/debit ledger and attendance-derived earnings.
"""

from .account import (
    LedgerBalance,
    LedgerEntry,
    PendingSalary,
    WorkerLedgerAccount,
)
from .attendance import (
    Attendance,
    AttendanceRegister,
    AttendanceStatus,
    EarningsSummary,
    daily_earning,
    summarize,
)

__all__ = [
    # Ledger
    "WorkerLedgerAccount",
    "LedgerEntry",
    "LedgerBalance",
    "PendingSalary",
    # Attendance
    "AttendanceRegister",
    "Attendance",
    "AttendanceStatus",
    "EarningsSummary",
    "daily_earning",
    "summarize",
]
