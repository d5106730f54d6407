"""
zonepay — mobile-money payment processing for the zone administration backend.

Creates MoMo collection requests for clients, tracks each one from pending
to provider-confirmed settlement, and reconciles local records with the
provider's status on demand.

Start the server:
    uvicorn zonepay.main:app --reload

Required environment: MOMO_BASE_URL, MOMO_API_USER, MOMO_API_KEY,
MOMO_PRIMARY_KEY, MOMO_TARGET_ENV. Set PROVIDER=mock to run without them.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from zonepay.api.health import router as health_router
from zonepay.api.payments import router as payments_router
from zonepay.config import Settings, load_momo_settings, settings
from zonepay.database import async_session, init_db
from zonepay.engine.errors import PaymentError
from zonepay.engine.orchestrator import PaymentOrchestrator
from zonepay.providers.mock_provider import MockPaymentProvider
from zonepay.providers.momo import MomoClient

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("zonepay.api")


def build_orchestrator(app_settings: Settings) -> PaymentOrchestrator:
    """
    Wire the provider and orchestrator from configuration.

    Raises:
        ConfigurationError: A required MOMO_* variable is missing.
    """
    if app_settings.provider == "mock":
        return PaymentOrchestrator(
            async_session,
            MockPaymentProvider(),
            unresolved_status=app_settings.unresolved_completion_status,
        )

    momo_settings = load_momo_settings()
    return PaymentOrchestrator(
        async_session,
        MomoClient(momo_settings),
        default_currency=momo_settings.default_currency,
        default_country_code=momo_settings.default_country_code,
        unresolved_status=app_settings.unresolved_completion_status,
        callback_url=momo_settings.callback_host,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and initialize the database on startup."""
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator(settings)
    await init_db()
    logger.info("Payments ready (provider=%s)", app.state.orchestrator.provider.name)
    yield
    await app.state.orchestrator.provider.aclose()


app = FastAPI(
    title="zonepay",
    description=(
        "Mobile-money payment processing: request-to-pay initiation, "
        "transaction lifecycle tracking and atomic completion with "
        "provider status reconciliation."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


app.include_router(health_router)
app.include_router(payments_router, prefix="/api")
