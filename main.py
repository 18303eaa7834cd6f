from fastapi import FastAPI
from shared.config.database import engine, Base

# IMPORTANT: import models so they register with Base
from services.customer_service import models as customer_models
from services.product_service import models as product_models
from services.inventory_service import models as inventory_models
from services.cart_service import models as cart_models
from services.order_service import models as order_models
from services.payment_service import models as payment_models

from services.order_service.main import order_app
from services.payment_service.main import payment_app

app = FastAPI(title="Storefront Fulfillment")

@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

app.mount("/orders", order_app)
app.mount("/payments", payment_app)
