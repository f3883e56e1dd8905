from fastapi import APIRouter

from cashier.app.api.v1.endpoints import cart, checkout, discounts, refunds, sessions

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(cart.router, prefix="/sessions/{session_id}/cart", tags=["cart"])
api_router.include_router(discounts.router, prefix="/sessions/{session_id}/discounts", tags=["discounts"])
api_router.include_router(checkout.router, prefix="/sessions/{session_id}/checkout", tags=["checkout"])
api_router.include_router(refunds.router, prefix="/refunds", tags=["refunds"])
