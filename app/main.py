"""DataVend mobile-data storefront - Main Application."""

import logging.config

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import data_plans, deliveries, payments, transactions, webhooks
from app.core.config import settings
from app.core.database import Base, engine
from app.core.exceptions import AppError
from app.core.logging import setup_logging
from app.core.logging_config import LOGGING_CONFIG

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Data Plans",
        "description": "Browse the data bundle catalogue per network (MTN, Airtel, Glo, 9mobile).",
    },
    {
        "name": "Transactions",
        "description": (
            "Create purchase transactions, poll their status, and trigger or "
            "retry data delivery."
        ),
    },
    {
        "name": "Payments",
        "description": "Start an ErcasPay hosted checkout and verify payments with the gateway.",
    },
    {
        "name": "Webhooks",
        "description": (
            "Signed payment callbacks from ErcasPay and delivery callbacks "
            "from GladTidings."
        ),
    },
    {
        "name": "Deliveries",
        "description": "Inspect background data delivery jobs scheduled after payment.",
    },
]


app = FastAPI(
    title="DataVend Mobile Data API",
    description=(
        "## Mobile data bundles for Nigerian networks\n\n"
        "Customers pick a network and plan, enter a phone number, pay through "
        "ErcasPay, and receive the bundle from the GladTidings aggregator.\n\n"
        "### Transaction lifecycle\n"
        "| Status | Meaning |\n"
        "|--------|---------|\n"
        "| `pending` | Created, waiting for payment |\n"
        "| `payment_completed` | Paid, delivery queued |\n"
        "| `payment_failed` | Gateway reported a failed payment |\n"
        "| `processing` | Delivery in progress at the aggregator |\n"
        "| `completed` | Bundle delivered |\n"
        "| `failed` | Delivery failed; can be retried |\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Pick a plan\n"
        "curl /api/v1/data-plans/mtn\n\n"
        "# 2. Create a transaction\n"
        'curl -X POST /api/v1/transactions -H "Content-Type: application/json" '
        '-d \'{"phone_number":"08031234567","network":"mtn","data_plan_id":"<id>","amount":"1498.00"}\'\n\n'
        "# 3. Start payment and send the customer to payment_url\n"
        'curl -X POST /api/v1/payments/initialize -H "Content-Type: application/json" '
        '-d \'{"transaction_id":"<id>","customer_email":"buyer@example.com"}\'\n\n'
        "# 4. Poll until completed\n"
        "curl /api/v1/transactions/<id>/status\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    license_info={
        "name": "MIT",
    },
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Request validation failed",
            "code": "validation_error",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


app.include_router(data_plans.router, prefix="/api/v1", tags=["Data Plans"])
app.include_router(transactions.router, prefix="/api/v1", tags=["Transactions"])
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(deliveries.router, prefix="/api/v1", tags=["Deliveries"])

logger.info("DataVend API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    """
    return {"status": "healthy", "service": "datavend"}
