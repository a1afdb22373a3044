"""
Fund Flow Exceptions

Typed errors raised by the fund flow core. Each carries a machine-readable
code and the HTTP status the API layer answers with.

    FundFlowError
    +-- ValidationError        (400) malformed or out-of-range input
    +-- InvalidStateError      (409) transition not allowed from current status
    +-- ImmutableStateError    (409) edit not allowed in current status
    +-- ConflictError          (409) action conflicts with existing records
    |   +-- InsufficientFundsError
    +-- NotFoundError          (404) unknown identifier
    +-- AuthorizationError     (403) role lacks the capability
"""

from typing import Any


class FundFlowError(Exception):
    """Base class for all fund flow errors."""

    code: str = "FUND_FLOW_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FundFlowError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidStateError(FundFlowError):
    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, current: str | None = None, requested: str | None = None):
        details = {}
        if current is not None:
            details["current_status"] = current
        if requested is not None:
            details["requested"] = requested
        super().__init__(message, details)
        self.current = current
        self.requested = requested


class ImmutableStateError(FundFlowError):
    code = "IMMUTABLE_STATE"
    status_code = 409

    def __init__(self, message: str, status: str | None = None, fields: list[str] | None = None):
        super().__init__(message, {"status": status, "fields": fields or []})
        self.status = status
        self.fields = fields or []


class ConflictError(FundFlowError):
    code = "CONFLICT"
    status_code = 409


class InsufficientFundsError(ConflictError):
    """Requested amount exceeds the allocation's remaining balance."""

    code = "INSUFFICIENT_FUNDS"


class NotFoundError(FundFlowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, record_id: Any):
        super().__init__(f"{kind} not found: {record_id}", {"kind": kind, "id": record_id})
        self.kind = kind
        self.record_id = record_id


class AuthorizationError(FundFlowError):
    code = "FORBIDDEN"
    status_code = 403
