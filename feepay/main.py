"""feepay — M-Pesa School Fee Payment Service - Main Application."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from feepay.api.routes import invoices, mpesa, mpesa_settings
from feepay.core.config import settings
from feepay.core.database import Base, engine
from feepay.core.exceptions import PaymentError
from feepay.core.logging import setup_logging

# Configure logging before anything else
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
        "name": "M-Pesa",
        "description": (
            "Initiate STK push payments, receive Daraja callbacks, and poll "
            "or query the status of a push."
        ),
    },
    {
        "name": "Settings",
        "description": "Manage the Daraja credentials used for STK push.",
    },
    {
        "name": "Invoices",
        "description": "Read back invoice balances and applied payments.",
    },
]


app = FastAPI(
    title="feepay M-Pesa Fee Payment Service",
    description=(
        "## School Fee Payments over M-Pesa\n\n"
        "This service sends STK push requests to a payer's phone, receives "
        "the asynchronous Daraja callback, and applies successful payments "
        "to the student's fee invoice.\n\n"
        "### Transaction lifecycle\n"
        "- `pending` - push accepted by the provider, waiting for the payer\n"
        "- `success` - payer confirmed; a payment and receipt were recorded\n"
        "- `cancelled` - payer dismissed the prompt (ResultCode 1032)\n"
        "- `failed` - any other non-zero ResultCode\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Save Daraja credentials\n"
        'curl -X PUT /api/v1/mpesa/settings -H "Content-Type: application/json" '
        "-d '{\"consumer_key\":\"...\",\"consumer_secret\":\"...\","
        '"business_short_code":"174379","passkey":"..."}\'\n\n'
        "# 2. Send a push\n"
        'curl -X POST /api/v1/mpesa/stk-push -H "Content-Type: application/json" '
        "-d '{\"phone_number\":\"0712345678\",\"amount\":1500}'\n\n"
        "# 3. Poll the outcome\n"
        "curl /api/v1/mpesa/transactions/ws_CO_191220191020363925\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    """Render domain errors as ``{"success": false, "error": ...}``."""
    logger.warning(
        "%s on %s: %s", type(exc).__name__, request.url.path, exc.message
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request data like any other ``ValidationError``."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{field}: {error['msg']}" if field else error["msg"])
    message = "; ".join(problems) or "Invalid request"
    logger.warning("Invalid request on %s: %s", request.url.path, message)
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message},
    )


app.include_router(mpesa.router, prefix="/api/v1/mpesa", tags=["M-Pesa"])
app.include_router(
    mpesa_settings.router, prefix="/api/v1/mpesa/settings", tags=["Settings"]
)
app.include_router(invoices.router, prefix="/api/v1/invoices", tags=["Invoices"])

logger.info("feepay API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    Useful for load balancers and monitoring systems.
    """
    return {"status": "healthy", "service": "feepay"}
