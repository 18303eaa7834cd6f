from fastapi import FastAPI

from shared.config.database import Base, engine
from shared.errors import register_error_handlers
from shared.observability import setup_observability

from .models import Payment  # noqa: F401  (registers the payments table with Base)
from .router import customer_router, public_router, router

payment_app = FastAPI(title="Payment Service", version="2.0.0")

# Structured logs, OTLP traces and /metrics
setup_observability(payment_app, "payment_service")
register_error_handlers(payment_app)

payment_app.include_router(public_router)
payment_app.include_router(customer_router)
payment_app.include_router(router)


@payment_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
