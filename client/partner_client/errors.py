"""Errors raised by the partner sync library."""

from typing import Any, Optional


class PartnerClientError(Exception):
    """Base class for partner client failures."""


class OfflineError(PartnerClientError):
    """An operation that needs the network was attempted while offline."""

    def __init__(self, operation: str = "request"):
        self.operation = operation
        super().__init__(f"Cannot {operation} while offline")


class TransientSyncError(PartnerClientError):
    """The server could not be reached or asked us to come back later."""

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        self.detail = detail
        self.status_code = status_code
        self.code = code
        super().__init__(detail)


class TerminalRejection(PartnerClientError):
    """The server refused the request and a retry would be refused again."""

    def __init__(
        self,
        detail: str,
        status_code: int,
        code: Optional[str] = None,
        problem: Optional[dict[str, Any]] = None,
    ):
        self.detail = detail
        self.status_code = status_code
        self.code = code
        self.problem = problem or {}
        super().__init__(detail)

    @property
    def current_status(self) -> Optional[str]:
        """Booking status the server reported, when the rejection carries it."""
        return self.problem.get("current_status")
