from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from mealticket.core.config import settings
from mealticket.core.permissions import Principal
from mealticket.core.security import decode_access_token
from mealticket.core.tickets import TicketCodec
from mealticket.db.session import SessionLocal, get_db
from mealticket.services.audit import AuditEmitter, DatabaseAuditSink
from mealticket.services.reservations import ReservationService
from mealticket.utils.timeslots import utc_now

# Tokens come from the identity provider; there is no login route here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token", auto_error=False)


def get_current_principal(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Principal]:
    """
    Resolve the bearer token, or None when it is missing or invalid.
    Service calls reject and audit anonymous callers themselves.
    """
    payload = decode_access_token(token) if token else None
    if payload is None:
        return None
    # A missing or unknown role is kept as None; the guard rejects it per operation
    return Principal.from_claims(payload["sub"], payload.get("role"))


def require_principal(principal: Optional[Principal] = Depends(get_current_principal)) -> Principal:
    """For routes that call no audited service."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User must be authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def get_clock():
    return utc_now


def get_ticket_codec(clock=Depends(get_clock)) -> TicketCodec:
    return TicketCodec.from_settings(clock=clock)


def get_audit_emitter(clock=Depends(get_clock)) -> AuditEmitter:
    return AuditEmitter(DatabaseAuditSink(SessionLocal), clock=clock)


def get_reservation_service(
    db: Session = Depends(get_db),
    codec: TicketCodec = Depends(get_ticket_codec),
    audit: AuditEmitter = Depends(get_audit_emitter),
    clock=Depends(get_clock),
) -> ReservationService:
    return ReservationService(db, codec, audit, clock=clock)
