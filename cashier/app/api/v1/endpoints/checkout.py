from __future__ import annotations

from fastapi import APIRouter, Depends

from cashier.app.api.deps import get_session, translate_errors
from cashier.app.schemas.session import CheckoutOut, CheckoutRequest
from cashier.app.services.checkout import CashierSession

router = APIRouter()


@router.post("", response_model=CheckoutOut)
async def checkout(
    payload: CheckoutRequest,
    session: CashierSession = Depends(get_session),
) -> CheckoutOut:
    total = session.cart.totals().total
    with translate_errors():
        response = await session.checkout(payload.gcash_reference)
    return CheckoutOut(total=total, response=response, state=session.state())
