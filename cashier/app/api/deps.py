from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from cashier.app.core.config import settings
from cashier.app.services.checkout import CashierSession
from cashier.app.services.clients import (
    AuthClient,
    PinVerificationError,
    SalesClient,
    ServiceApiError,
)
from cashier.app.services.refunds import RefundService

logger = logging.getLogger(__name__)

# Tokens are issued by the Auth service and only forwarded from here.
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.AUTH_API_URL}/auth/token", auto_error=False
)


def get_token(token: str | None = Depends(oauth2_scheme)) -> str | None:
    return token


class SessionRegistry:
    """In-memory cashier sessions keyed by id.

    Sessions untouched for longer than the idle timeout are dropped on the
    next create or lookup.
    """

    def __init__(
        self,
        factory: Callable[[str | None], CashierSession] | None = None,
        idle_minutes: int | None = None,
    ) -> None:
        self.factory = factory or (lambda token: CashierSession(token=token))
        self.idle_timeout = timedelta(
            minutes=idle_minutes if idle_minutes is not None else settings.SESSION_IDLE_MINUTES
        )
        self.sessions: dict[str, CashierSession] = {}

    def sweep(self, now: datetime | None = None) -> list[str]:
        now = now or datetime.now(timezone.utc)
        expired = [
            sid for sid, session in self.sessions.items()
            if now - session.last_seen > self.idle_timeout
        ]
        for sid in expired:
            del self.sessions[sid]
            logger.info("Expired idle cashier session %s", sid)
        return expired

    def create(self, token: str | None) -> CashierSession:
        self.sweep()
        session = self.factory(token)
        self.sessions[session.id] = session
        logger.info("Opened cashier session %s", session.id)
        return session

    def get(self, session_id: str) -> CashierSession:
        self.sweep()
        session = self.sessions.get(session_id)
        if session is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Session {session_id} not found",
            )
        session.last_seen = datetime.now(timezone.utc)
        return session

    def close(self, session_id: str) -> None:
        self.get(session_id)
        del self.sessions[session_id]
        logger.info("Closed cashier session %s", session_id)


registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    return registry


def get_session(
    session_id: str,
    sessions: SessionRegistry = Depends(get_registry),
) -> CashierSession:
    return sessions.get(session_id)


def get_refund_service(token: str | None = Depends(get_token)) -> RefundService:
    return RefundService(SalesClient(token), AuthClient(token))


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map service exceptions onto HTTP status codes."""
    try:
        yield
    except PinVerificationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ServiceApiError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
