import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config import settings
from database.session import init_db
from routes import cart_routes, order_routes, subscription_routes, webhook_routes
from routes.dependencies import get_billing_service
from services.recurring_billing import BillingScheduler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Shop Billing API",
    description="Checkout, payment webhooks and recurring subscription billing",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart_routes.router)
app.include_router(order_routes.router)
app.include_router(subscription_routes.router)
app.include_router(webhook_routes.router)

scheduler = None


@app.get("/")
async def root():
    return {
        "message": "Shop Billing API is running",
        "version": "1.0.0",
        "endpoints": {
            "checkout": "/api/cart/{cart_id}/checkout",
            "webhooks": "/api/webhooks/payment",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    global scheduler
    init_db()
    if settings.BILLING_SCHEDULER_ENABLED:
        scheduler = BillingScheduler(get_billing_service())
        scheduler.start()
    logger.info("Shop Billing API started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    if scheduler is not None:
        await scheduler.stop()
    logger.info("Shop Billing API stopped")


if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=settings.PORT, reload=settings.DEBUG)
