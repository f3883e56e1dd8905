from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cashier.app.api.v1.api import api_router
from cashier.app.core.config import settings
from cashier.app.core.logging_config import configure_logging
from cashier.app.middleware.request_id import RequestIDMiddleware

configure_logging()

app = FastAPI(title="Cashier Checkout Pricing Service")

# ─── CORS — restrict to configured origins ───────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)

# ─── Custom middleware ────────────────────────────────────────────────────────
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)
