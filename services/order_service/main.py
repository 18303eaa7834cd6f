from fastapi import FastAPI

from shared.config.database import Base, engine
from shared.errors import register_error_handlers
from shared.observability import setup_observability

from .models import Order  # noqa: F401  (registers the order tables with Base)
from .router import admin_router, customer_router, public_router

order_app = FastAPI(title="Order Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(order_app, "order_service")
register_error_handlers(order_app)

order_app.include_router(public_router)
order_app.include_router(customer_router)
order_app.include_router(admin_router)


@order_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
