from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cashier.app.api.deps import (
    SessionRegistry,
    get_registry,
    get_session,
    get_token,
    translate_errors,
)
from cashier.app.schemas.cart import OrderOptionsRequest
from cashier.app.schemas.session import SessionStateOut
from cashier.app.services.checkout import CashierSession

router = APIRouter()


@router.post("", response_model=SessionStateOut, status_code=status.HTTP_201_CREATED)
async def open_session(
    token: str | None = Depends(get_token),
    sessions: SessionRegistry = Depends(get_registry),
) -> SessionStateOut:
    session = sessions.create(token)
    await session.load_catalogs()
    return session.state()


@router.get("/{session_id}", response_model=SessionStateOut)
def read_session(session: CashierSession = Depends(get_session)) -> SessionStateOut:
    return session.state()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_session(
    session_id: str,
    sessions: SessionRegistry = Depends(get_registry),
) -> None:
    sessions.close(session_id)


@router.post("/{session_id}/catalogs/reload", response_model=SessionStateOut)
async def reload_catalogs(session: CashierSession = Depends(get_session)) -> SessionStateOut:
    await session.load_catalogs()
    return session.state()


@router.put("/{session_id}/order-options", response_model=SessionStateOut)
def set_order_options(
    payload: OrderOptionsRequest,
    session: CashierSession = Depends(get_session),
) -> SessionStateOut:
    with translate_errors():
        session.set_options(payload.order_type, payload.payment_method)
    return session.state()
