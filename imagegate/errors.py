"""Gateway error taxonomy.

Every error the HTTP layer renders derives from GatewayError and carries the
status code it maps to. Attempt-level upstream errors are swallowed by the
failover runner; only AggregateFailoverError reaches callers.
"""

from __future__ import annotations

from dataclasses import dataclass


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(GatewayError):
    status_code = 400


class AuthError(GatewayError):
    status_code = 401


class NotFoundError(GatewayError):
    status_code = 404


class TaskStateError(GatewayError):
    status_code = 409


class PayloadTooLargeError(GatewayError):
    status_code = 413


class ConfigurationError(GatewayError):
    status_code = 500


class UpstreamAttemptError(GatewayError):
    """One platform call failed."""

    status_code = 502


class UpstreamTimeoutError(UpstreamAttemptError):
    pass


def error_message(error: BaseException) -> str:
    if isinstance(error, GatewayError):
        return error.message
    text = str(error)
    return text or error.__class__.__name__


@dataclass
class AttemptFailure:
    platform_id: str
    error: BaseException

    def describe(self) -> str:
        return f"[{self.platform_id}] {error_message(self.error)}"


class AggregateFailoverError(GatewayError):
    """Every platform failed for one operation."""

    status_code = 502

    def __init__(self, operation: str, failures: list[AttemptFailure]):
        self.operation = operation
        self.failures = list(failures)
        details = " | ".join(f.describe() for f in self.failures)
        super().__init__(f"{operation} failed on all platforms: {details}")
