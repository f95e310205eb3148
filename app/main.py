import logging

from fastapi import FastAPI
from app.database import create_db_and_tables
from app.config import settings
from app.routes import health, purchase
from app.services.delivery_service import DeliveryService
from app.services.email_service import send_email
from app.services.payment_gateway import RazorpayGateway
from app.services.purchase_service import PurchaseService
from app.utils.errors import register_exception_handlers

from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_purchase_service() -> PurchaseService:
    # raises GatewayConfigurationError when Razorpay keys are missing
    gateway = RazorpayGateway.from_settings(settings)
    delivery = DeliveryService(
        send=send_email,
        upload_root=settings.UPLOAD_ROOT,
        store_name=settings.STORE_NAME,
    )
    return PurchaseService(gateway, delivery, currency=settings.RAZORPAY_CURRENCY)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    if getattr(app.state, "purchase_service", None) is None:
        app.state.purchase_service = build_purchase_service()
    logger.info(f"{settings.STORE_NAME} purchase API started ({settings.ENV})")
    yield

app = FastAPI(title="BookNest Purchase API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(purchase.router, prefix="/purchase", tags=["Purchase"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "purchase_endpoints": [
            "/purchase/create-order", "/purchase/verify-payment",
            "/purchase/buy-with-wallet", "/purchase/resend-pdf/{purchase_id}",
            "/purchase/{purchase_id}/cancel", "/purchase/{purchase_id}",
        ],
        "health": ["/health/check"],
    }
