from __future__ import annotations

from fastapi import APIRouter, Depends

from cashier.app.api.deps import get_session, translate_errors
from cashier.app.schemas.pricing import (
    AppliedDiscount,
    ApplyDiscountRequest,
    DiscountSelectionRequest,
)
from cashier.app.schemas.session import DiscountOptionsOut, SessionStateOut
from cashier.app.services.checkout import CashierSession

router = APIRouter()


@router.get("", response_model=DiscountOptionsOut)
def list_discount_options(session: CashierSession = Depends(get_session)) -> DiscountOptionsOut:
    return DiscountOptionsOut(options=session.discount_options())


@router.post("/preview", response_model=AppliedDiscount)
def preview_discount(
    payload: DiscountSelectionRequest,
    session: CashierSession = Depends(get_session),
) -> AppliedDiscount:
    with translate_errors():
        return session.preview_discount(payload.discount_id, payload.items)


@router.post("", response_model=SessionStateOut)
async def apply_discount(
    payload: ApplyDiscountRequest,
    session: CashierSession = Depends(get_session),
) -> SessionStateOut:
    with translate_errors():
        await session.apply_discount(payload.discount_id, payload.items, payload.pin)
    return session.state()


@router.delete("/{position}", response_model=SessionStateOut)
def remove_discount(position: int, session: CashierSession = Depends(get_session)) -> SessionStateOut:
    with translate_errors():
        session.remove_discount(position)
    return session.state()


@router.delete("", response_model=SessionStateOut)
def remove_all_discounts(session: CashierSession = Depends(get_session)) -> SessionStateOut:
    session.remove_all_discounts()
    return session.state()
