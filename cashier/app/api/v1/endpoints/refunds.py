from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from cashier.app.api.deps import get_refund_service, translate_errors
from cashier.app.schemas.orders import (
    CompletedOrder,
    FullRefundRequest,
    PartialRefundRequest,
    RefundQuoteOut,
    RefundQuoteRequest,
    RefundRecord,
    RefundResultOut,
)
from cashier.app.services.catalog import order_from_payload, refund_records_from_payload
from cashier.app.services.refunds import RefundService, quote

router = APIRouter()


def _load_order(raw: dict[str, Any], order_id: str | None = None) -> CompletedOrder:
    try:
        order = order_from_payload(raw)
    except (TypeError, AttributeError) as e:
        raise ValueError(f"Malformed order: {e}") from e
    if order_id is not None and str(order.id) != order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order id in path and body do not match",
        )
    return order


def _load_records(raw_list: list[dict[str, Any]]) -> list[RefundRecord]:
    try:
        return refund_records_from_payload(raw_list)
    except (TypeError, AttributeError) as e:
        raise ValueError(f"Malformed refund history: {e}") from e


@router.post("/quote", response_model=RefundQuoteOut)
def quote_refund(payload: RefundQuoteRequest) -> RefundQuoteOut:
    with translate_errors():
        order = _load_order(payload.order)
        records = _load_records(payload.refunds)
        return quote(order, payload.selection, records)


@router.post("/{order_id}/full", response_model=RefundResultOut)
async def full_refund(
    order_id: str,
    payload: FullRefundRequest,
    refunds: RefundService = Depends(get_refund_service),
) -> RefundResultOut:
    with translate_errors():
        order = _load_order(payload.order, order_id)
        return await refunds.full_refund(
            order, payload.pin, payload.reason, same_day=payload.same_day
        )


@router.post("/{order_id}/partial", response_model=RefundResultOut)
async def partial_refund(
    order_id: str,
    payload: PartialRefundRequest,
    refunds: RefundService = Depends(get_refund_service),
) -> RefundResultOut:
    with translate_errors():
        order = _load_order(payload.order, order_id)
        return await refunds.partial_refund(
            order,
            payload.pin,
            payload.selection,
            payload.reason,
            same_day=payload.same_day,
        )
