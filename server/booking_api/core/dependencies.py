"""FastAPI dependencies for authentication, the cron secret and idempotency keys."""

import hmac
from dataclasses import dataclass, field
from typing import Iterable, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, UnauthorizedActorError


@dataclass(frozen=True)
class Actor:
    """Authenticated caller of a booking operation."""

    user_id: UUID
    roles: frozenset[str] = field(default_factory=frozenset)
    username: Optional[str] = None

    def has_any_role(self, roles: Iterable[str]) -> bool:
        """Return True if the actor holds at least one of roles."""
        return not self.roles.isdisjoint(roles)

    @property
    def is_staff(self) -> bool:
        """Partner and hotel staff may operate on any booking of their property."""
        return self.has_any_role(settings.staff_roles)

    @property
    def can_override(self) -> bool:
        """Override roles may cancel bookings they do not own."""
        return self.has_any_role(settings.override_roles)

    @property
    def can_confirm_payments(self) -> bool:
        """Only the payment gateway reports captured money."""
        return self.has_any_role(settings.payment_roles)

    def owns(self, booking) -> bool:
        """Return True if the booking belongs to this actor."""
        return booking.user_id is not None and booking.user_id == self.user_id


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Authorization header missing")
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format") from None
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")
    return token


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Actor:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        Actor: Caller identity from the validated token

    Raises:
        AuthenticationError: If the token is missing, malformed or expired
    """
    token = _bearer_token(authorization)

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}") from e

    subject = payload.get("sub")
    if subject is None:
        raise AuthenticationError("Invalid token payload")
    try:
        user_id = UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Token subject is not a user id") from None

    return Actor(
        user_id=user_id,
        roles=frozenset(payload.get("roles", [])),
        username=payload.get("username"),
    )


async def require_payment_gateway(actor: Actor = Depends(get_current_user)) -> Actor:
    """
    Guard for the payment callback.

    Guests and staff cannot report money as captured.

    Raises:
        UnauthorizedActorError: If the caller lacks a payment role
    """
    if not actor.can_confirm_payments:
        raise UnauthorizedActorError(
            "Only the payment gateway may confirm payments",
            required_roles=list(settings.payment_roles),
        )
    return actor


async def verify_cron_secret(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> None:
    """
    Guard for endpoints invoked by the external scheduler.

    Raises:
        AuthenticationError: If the shared cron secret is missing or wrong
    """
    token = _bearer_token(authorization)
    if not hmac.compare_digest(token.encode(), settings.cron_secret.encode()):
        raise AuthenticationError("Invalid cron secret")


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate idempotency key from request headers.

    Args:
        idempotency_key: Idempotency key from header

    Returns:
        str: Validated idempotency key or None if not provided

    Raises:
        HTTPException: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Idempotency key must be between 1 and 255 characters"
        )

    return idempotency_key


RequiredAuth = Depends(get_current_user)
PaymentGatewayAuth = Depends(require_payment_gateway)
CronAuth = Depends(verify_cron_secret)
IdempotencyKey = Depends(get_idempotency_key)
