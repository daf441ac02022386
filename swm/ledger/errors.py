"""Ledger error taxonomy.

Three families are distinguished:

``ValidationError``
    Malformed or out-of-range input, raised before storage is touched.
``DomainError``
    A business rule said no (unknown account, not enough points, penalty
    already paid). Expected and recoverable.
``InfrastructureError``
    The store could not complete the operation (unreachable, optimistic
    lock retries exhausted, deadline passed). The account is unchanged.

Every error exposes ``code``, ``status`` and ``details()`` so callers can
rebuild the decision without parsing the message.
"""

from __future__ import annotations

from typing import Any, Dict


class LedgerError(Exception):
    code = "ledger_error"
    status = 500

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "code": self.code, **self.details()}


# --- validation ---
class ValidationError(LedgerError, ValueError):
    code = "validation_error"
    status = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def details(self) -> Dict[str, Any]:
        return {"field": self.field} if self.field else {}


class InvalidGrade(ValidationError):
    code = "invalid_grade"

    def __init__(self, grade: Any, allowed):
        super().__init__(
            f"Invalid quality grade {grade!r}; expected one of {', '.join(allowed)}",
            field="qualityGrade",
        )
        self.grade = grade
        self.allowed = list(allowed)

    def details(self) -> Dict[str, Any]:
        return {"field": self.field, "grade": self.grade, "allowed": self.allowed}


# --- domain ---
class DomainError(LedgerError):
    code = "domain_error"
    status = 400


class AccountNotFound(DomainError):
    code = "account_not_found"
    status = 404

    def __init__(self, account_id: str):
        super().__init__(f"Account not found: {account_id}")
        self.account_id = account_id

    def details(self) -> Dict[str, Any]:
        return {"accountId": self.account_id}


class PenaltyNotFound(DomainError):
    code = "penalty_not_found"
    status = 404

    def __init__(self, penalty_id: str):
        super().__init__(f"Penalty not found: {penalty_id}")
        self.penalty_id = penalty_id

    def details(self) -> Dict[str, Any]:
        return {"penaltyId": self.penalty_id}


class InsufficientPoints(DomainError):
    code = "insufficient_points"

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Insufficient points. Available: {available}, Required: {requested}"
        )
        self.available = available
        self.requested = requested

    def details(self) -> Dict[str, Any]:
        return {"available": self.available, "required": self.requested}


class AlreadyPaid(DomainError):
    code = "already_paid"

    def __init__(self, penalty_id: str):
        super().__init__(f"Penalty already paid: {penalty_id}")
        self.penalty_id = penalty_id

    def details(self) -> Dict[str, Any]:
        return {"penaltyId": self.penalty_id}


class InsufficientPayment(DomainError):
    code = "insufficient_payment"

    def __init__(self, required, paid):
        super().__init__(f"Insufficient payment. Required: {required}, Paid: {paid}")
        self.required = required
        self.paid = paid

    def details(self) -> Dict[str, Any]:
        return {"required": str(self.required), "paid": str(self.paid)}


class InvalidTransition(DomainError):
    code = "invalid_transition"

    def __init__(self, penalty_id: str, current: str, target: str):
        super().__init__(f"Penalty {penalty_id} cannot move from {current} to {target}")
        self.penalty_id = penalty_id
        self.current = current
        self.target = target

    def details(self) -> Dict[str, Any]:
        return {"penaltyId": self.penalty_id, "current": self.current, "target": self.target}


# --- infrastructure ---
class InfrastructureError(LedgerError):
    code = "infrastructure_error"
    status = 503


class ConcurrentUpdateError(InfrastructureError):
    code = "concurrent_update"

    def __init__(self, account_id: str, attempts: int):
        super().__init__(
            f"Account {account_id} kept changing underneath; gave up after {attempts} attempts"
        )
        self.account_id = account_id
        self.attempts = attempts

    def details(self) -> Dict[str, Any]:
        return {"accountId": self.account_id, "attempts": self.attempts}


class StoreUnavailable(InfrastructureError):
    code = "store_unavailable"


class LedgerTimeout(InfrastructureError):
    code = "timeout"
    status = 504

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} did not finish within {timeout}s")
        self.operation = operation
        self.timeout = timeout

    def details(self) -> Dict[str, Any]:
        return {"operation": self.operation, "timeout": self.timeout}
