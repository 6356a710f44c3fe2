"""HTTP client for the booking API as used by the partner dashboard."""

import logging
from datetime import date
from typing import Any, Optional

import httpx

from .errors import TerminalRejection, TransientSyncError
from .store import ActionKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Status codes that mean "try again later" rather than "never"
TRANSIENT_STATUS_CODES = {401, 408, 425, 429}

ACTION_PATHS = {
    ActionKind.CHECK_IN: "check-in",
    ActionKind.CHECK_OUT: "check-out",
}


def _problem(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"detail": response.text}
    return body if isinstance(body, dict) else {"detail": body}


def raise_for_problem(response: httpx.Response) -> None:
    """
    Translate an error response into the client error taxonomy.

    Server errors and the statuses in TRANSIENT_STATUS_CODES are transient.
    Any other 4xx, and any problem body flagged retryable=false, is terminal.
    """
    if response.status_code < 400:
        return

    problem = _problem(response)
    detail = problem.get("detail") or problem.get("title") or response.reason_phrase
    code = problem.get("code")

    if response.status_code >= 500 or response.status_code in TRANSIENT_STATUS_CODES or problem.get("retryable"):
        raise TransientSyncError(str(detail), status_code=response.status_code, code=code)

    raise TerminalRejection(str(detail), status_code=response.status_code, code=code, problem=problem)


class BookingApiClient:
    """
    Thin async wrapper over the booking endpoints the dashboard needs.

    Every call carries a finite timeout; timeouts and transport failures are
    raised as TransientSyncError so callers only deal with two outcomes.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BookingApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("Booking API call timed out", extra={"method": method, "path": path})
            raise TransientSyncError(f"Timeout calling {path}") from e
        except httpx.TransportError as e:
            logger.warning(
                "Booking API unreachable",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise TransientSyncError(f"Could not reach the booking API: {e}") from e

        raise_for_problem(response)
        if not response.content:
            return {}
        return response.json()

    async def ping(self) -> bool:
        """Whether the API answers its health probe."""
        try:
            await self._request("GET", "/v1/health/ping")
        except TransientSyncError:
            return False
        return True

    async def list_bookings(self, hotel_id: str, on_date: Optional[date] = None) -> list[dict[str, Any]]:
        """Bookings of a hotel, optionally only those arriving or leaving on a date."""
        params: dict[str, Any] = {"hotel_id": str(hotel_id)}
        if on_date is not None:
            params["date"] = on_date.isoformat()
        body = await self._request("GET", "/bookings", params=params)
        return list(body.get("items", []))

    async def check_in(self, booking_id: str, idempotency_key: Optional[str] = None) -> dict[str, Any]:
        return await self.submit(ActionKind.CHECK_IN, booking_id, idempotency_key)

    async def check_out(self, booking_id: str, idempotency_key: Optional[str] = None) -> dict[str, Any]:
        return await self.submit(ActionKind.CHECK_OUT, booking_id, idempotency_key)

    async def submit(
        self,
        action: ActionKind,
        booking_id: str,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Apply a queued action on the server.

        Args:
            action: Check-in or check-out
            booking_id: Target booking
            idempotency_key: Key that lets the server replay an earlier acknowledgement

        Returns:
            The booking as the server now has it
        """
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        path = f"/bookings/{booking_id}/{ACTION_PATHS[ActionKind(action)]}"
        return await self._request("POST", path, headers=headers)
