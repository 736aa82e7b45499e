"""
Ledger errors: typed failures reported synchronously to the caller.

Every precondition is checked before any state is touched, so raising one of
these leaves the ledger exactly as it was before the call.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every failure the ledger reports."""

    status_code = 400

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "detail": str(self)}


class Unauthorized(LedgerError):
    """Raised when the caller lacks the role an operation requires."""

    status_code = 403

    def __init__(self, principal: str, role: Any = None, reason: str = "") -> None:
        self.principal = principal
        self.role = role
        if not reason:
            role_name = getattr(role, "value", role)
            reason = f"{principal} is missing role {role_name}"
        super().__init__(reason)


class InvalidArgument(LedgerError):
    """Raised for non-integer or non-positive ids, negative amounts and empty required text."""

    status_code = 422


class AlreadyExists(LedgerError):
    """Raised when a project id is already taken."""

    status_code = 409

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(f"project {project_id} already exists")


class NotFound(LedgerError):
    """Raised when a project id has no registered project."""

    status_code = 404

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(f"project {project_id} not found")


class InsufficientBalance(LedgerError):
    """Raised when a retirement exceeds the holder's balance of a batch."""

    status_code = 409

    def __init__(self, owner: str, batch_id: int, balance: int, requested: int) -> None:
        self.owner = owner
        self.batch_id = batch_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"{owner} holds {balance} of batch {batch_id}, cannot remove {requested}"
        )


class ReentrantCall(LedgerError):
    """Raised when a delegated hook tries to mutate the ledger mid-call."""

    status_code = 409

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"{operation} called while another ledger mutation is in progress"
        )


def check_integer(value: Any, name: str) -> None:
    """Raise `InvalidArgument` unless `value` is a plain int (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer")
