"""Exception taxonomy shared by services and the HTTP layer."""

from __future__ import annotations


class SubfyError(Exception):
    """Base class for errors surfaced to API callers."""

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SubfyError):
    """Raised when a project, deployment or release does not exist."""

    status = 404


class UnauthorizedError(SubfyError):
    """Raised on ownership mismatch or missing/invalid credentials."""

    status = 401


class BadRequestError(SubfyError):
    """Raised on invalid input or a contract-rejected action."""

    status = 400


class LedgerError(SubfyError):
    """Raised when the ledger RPC rejects a simulation or submission.

    The message carries the raw RPC error text so contract error codes
    (``Error(Contract, #N)``) can be parsed out of it.
    """

    status = 502


class LedgerTimeoutError(LedgerError):
    """Raised when transaction polling gives up before a terminal status."""

    status = 504


class TaskDispatchError(SubfyError):
    """Raised when it is unknown whether a queue task was created."""

    status = 502
