from __future__ import annotations

from fastapi import APIRouter, Depends

from cashier.app.api.deps import get_session, translate_errors
from cashier.app.schemas.cart import AddItemRequest, AddonsRequest, QuantityChangeRequest
from cashier.app.schemas.session import AddItemOut, SessionStateOut
from cashier.app.services.checkout import CashierSession

router = APIRouter()


@router.post("/items", response_model=AddItemOut)
async def add_item(
    payload: AddItemRequest,
    session: CashierSession = Depends(get_session),
) -> AddItemOut:
    with translate_errors():
        index, progress = await session.add_item(payload.product)
    return AddItemOut(index=index, bogo=progress, state=session.state())


@router.patch("/items/{index}", response_model=SessionStateOut)
async def change_quantity(
    index: int,
    payload: QuantityChangeRequest,
    session: CashierSession = Depends(get_session),
) -> SessionStateOut:
    with translate_errors():
        await session.update_quantity(index, payload.delta)
    return session.state()


@router.delete("/items/{index}", response_model=SessionStateOut)
def remove_item(index: int, session: CashierSession = Depends(get_session)) -> SessionStateOut:
    with translate_errors():
        session.remove_item(index)
    return session.state()


@router.put("/items/{index}/addons", response_model=SessionStateOut)
def set_addons(
    index: int,
    payload: AddonsRequest,
    session: CashierSession = Depends(get_session),
) -> SessionStateOut:
    with translate_errors():
        session.set_addons(index, payload.addons)
    return session.state()
