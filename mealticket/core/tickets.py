"""Meal ticket tokens: compact, signed, time-bounded proofs of a confirmed reservation."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from jose import jwt, JWTError
from pydantic import ValidationError

from mealticket.core.config import settings
from mealticket.domain.errors import InvalidTokenError
from mealticket.schemas.ticket import TicketClaims
from mealticket.utils.timeslots import as_utc, utc_now

ALGORITHM = "HS256"

Clock = Callable[[], datetime]


class TicketCodec:
    """Signs and verifies ticket tokens under a server-held secret.

    Expiry is checked against the injected clock rather than the wall clock
    inside the JWT library, so the codec stays a pure function of
    (secret, payload, clock).
    """

    def __init__(
        self,
        secret: str,
        issuer: str = "isetcom-restaurant",
        audience: str = "restaurant-entry",
        ttl: timedelta = timedelta(hours=2),
        clock: Clock = utc_now,
    ) -> None:
        if not secret:
            raise ValueError("Ticket secret must not be empty")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.ttl = ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, clock: Clock = utc_now) -> "TicketCodec":
        return cls(
            secret=settings.TICKET_SECRET_KEY,
            issuer=settings.TICKET_ISSUER,
            audience=settings.TICKET_AUDIENCE,
            ttl=timedelta(minutes=settings.TICKET_TTL_MINUTES),
            clock=clock,
        )

    def issue(self, reservation_id, user_id: str, slot_start: datetime, capacity: int) -> str:
        now = int(self._clock().timestamp())
        claims = {
            "iss": self.issuer,
            "sub": str(reservation_id),
            "aud": self.audience,
            "exp": now + int(self.ttl.total_seconds()),
            "iat": now,
            "user_id": str(user_id),
            "slot_start": as_utc(slot_start).isoformat(),
            "capacity": int(capacity),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> TicketClaims:
        if not token or not isinstance(token, str):
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                # exp and iat presence is enforced by TicketClaims; expiry is read off the injected clock below
                options={"verify_exp": False},
            )
            claims = TicketClaims.model_validate(payload)
        except (JWTError, ValidationError):
            raise InvalidTokenError() from None

        if claims.exp <= int(self._clock().timestamp()):
            raise InvalidTokenError("QR token has expired")
        return claims
