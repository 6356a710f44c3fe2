"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import utcnow

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            extensions={"code": "UNAUTHENTICATED", "retryable": False},
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "code": "NOT_FOUND",
            "retryable": False,
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
        title: str = "Resource Conflict",
        type_uri: str = "https://example.com/problems/resource-conflict",
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=type_uri,
            instance=instance,
            extensions=extensions,
        )


# Booking lifecycle exceptions

class InvalidTransitionError(ConflictError):
    """A status change outside the allowed transition table was attempted."""

    def __init__(self, current: str, target: str, detail: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(
            detail=detail or f"Cannot move a booking from {current} to {target}",
            title="Invalid Status Transition",
            type_uri="https://example.com/problems/invalid-transition",
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "current_status": current,
            "target_status": target,
        })


class NotCancellableError(ConflictError):
    """Cancellation was requested for a booking that can no longer be cancelled."""

    def __init__(self, booking_id: str, status: Optional[str] = None, detail: Optional[str] = None):
        self.booking_id = booking_id
        self.status = status
        if not detail:
            detail = f"Booking {booking_id} cannot be cancelled"
            if status:
                detail += f" while it is {status}"
        super().__init__(
            detail=detail,
            title="Booking Not Cancellable",
            type_uri="https://example.com/problems/not-cancellable",
        )
        self.problem_details.update({
            "code": "NOT_CANCELLABLE",
            "retryable": False,
            "booking_id": booking_id,
        })
        if status:
            self.problem_details["current_status"] = status


class InvariantViolationError(ProblemDetailsException):
    """A state that should never exist was observed; the operation is aborted."""

    def __init__(self, detail: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(
            status_code=500,
            title="Invariant Violation",
            detail=detail,
            type_uri="https://example.com/problems/invariant-violation",
            extensions={
                "code": "INVARIANT_VIOLATION",
                "retryable": False,
                "error_id": str(uuid.uuid4()),
            },
        )
        logger.critical(
            "Booking invariant violated",
            extra={"detail": detail, **self.context}
        )


class TransientIOError(ProblemDetailsException):
    """Storage or network failure that a later retry may not hit."""

    def __init__(
        self,
        detail: str = "A temporary storage failure occurred, please retry",
        retry_after: Optional[int] = None,
    ):
        headers = {}
        extensions: Dict[str, Any] = {"code": "TRANSIENT_IO", "retryable": True}
        if retry_after:
            headers["Retry-After"] = str(retry_after)
            extensions["retry_after_seconds"] = retry_after

        super().__init__(
            status_code=503,
            title="Service Temporarily Unavailable",
            detail=detail,
            type_uri="https://example.com/problems/transient-io",
            extensions=extensions,
            headers=headers or None,
        )


class UnauthorizedActorError(ProblemDetailsException):
    """The acting user may not change this booking."""

    def __init__(
        self,
        detail: str = "You are not allowed to modify this booking",
        booking_id: Optional[str] = None,
        required_roles: Optional[list] = None,
    ):
        extensions: Dict[str, Any] = {"code": "UNAUTHORIZED", "retryable": False}
        if booking_id:
            extensions["booking_id"] = booking_id
        if required_roles:
            extensions["required_roles"] = required_roles

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri="https://example.com/problems/access-forbidden",
            extensions=extensions,
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as a 422 problem listing each bad field."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": request.url.path,
            "code": "VALIDATION_FAILED",
            "retryable": False,
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path}
    )

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
