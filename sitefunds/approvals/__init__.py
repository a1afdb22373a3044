"""
Approvals Module

Expense and bill approval workflows with GST computation.
"""

from .gst import GSTCalculator, GSTComputation, compute_gst
from .records import ApprovalStatus, Bill, BILL_TYPES, Expense
from .workflow import ApprovalWorkflow, BillWorkflow, ExpenseWorkflow, Submission

__all__ = [
    # Records
    "ApprovalStatus",
    "Expense",
    "Bill",
    "BILL_TYPES",
    # Workflow
    "ApprovalWorkflow",
    "ExpenseWorkflow",
    "BillWorkflow",
    "Submission",
    # GST
    "GSTCalculator",
    "GSTComputation",
    "compute_gst",
]
