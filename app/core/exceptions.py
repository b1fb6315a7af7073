"""
Audit domain exceptions.

Services raise these; the handlers registered in app.main turn them into
``{"error": ..., "details": ...}`` JSON responses with ``status_code``.
"""
from typing import Optional


class AuditError(Exception):
    """Base exception for audit operations."""
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AuditError):
    """Missing or malformed input."""
    status_code = 400


class NotFoundError(AuditError):
    """A referenced warehouse, audit, item or user does not exist."""
    status_code = 404


class InvalidStateError(AuditError):
    """Operation not allowed in the audit's current status."""
    status_code = 400


class AuthenticationError(AuditError):
    """The caller's identity does not resolve to a user."""
    status_code = 401


class TransactionError(AuditError):
    """The audit creation transaction failed or timed out and was rolled back."""
    status_code = 500
