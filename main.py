from typing import Optional
from fastapi import FastAPI, HTTPException, Request, Depends, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import structlog
import sys
import time
from contextlib import asynccontextmanager

from config import Settings, get_settings
from gateway import ApiClient, ProviderError, get_demo_client, get_provider_client
from models import (
    CreateCustomerRequest,
    CreateVirtualAccountRequest,
    ErrorResponse,
    HealthResponse,
    InitializePaymentRequest,
    SuccessResponse,
    WebhookEvent,
)
from repositories import get_account_repository, get_customer_repository, get_transaction_repository
from services import PaymentService, get_payment_service
from webhooks import SIGNATURE_HEADER, WebhookReconciler, get_webhook_reconciler, verify_signature

settings = get_settings()

# Configure structured logging
logging.basicConfig(format="%(message)s", stream=sys.stdout, level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Rate limiting
limiter = Limiter(key_func=get_remote_address)
RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"

# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Payment Gateway API", data_dir=settings.data_dir)
    if not settings.paystack_secret_key:
        logger.warning("PAYSTACK_SECRET_KEY is not set; provider calls will be rejected")
    yield
    # Shutdown
    logger.info("Shutting down Payment Gateway API")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Payment provider integration: virtual accounts, customers, payments and webhooks",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response

# Dependency injection
def get_service(
    provider: ApiClient = Depends(get_provider_client),
    transaction_repo=Depends(get_transaction_repository),
    account_repo=Depends(get_account_repository),
    customer_repo=Depends(get_customer_repository)
) -> PaymentService:
    return get_payment_service(provider, transaction_repo, account_repo, customer_repo)


def get_reconciler(
    transaction_repo=Depends(get_transaction_repository),
    customer_repo=Depends(get_customer_repository)
) -> WebhookReconciler:
    return get_webhook_reconciler(transaction_repo, customer_repo)

# Provider-backed endpoints
@app.post(
    "/virtual-account",
    response_model=SuccessResponse,
    summary="Create Virtual Account",
    description="Create a dedicated virtual account for a customer",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Payment"]
)
@limiter.limit(RATE_LIMIT)
async def create_virtual_account(
    request: Request,
    payload: Optional[CreateVirtualAccountRequest] = None,
    service: PaymentService = Depends(get_service)
):
    data = await service.create_virtual_account(payload or CreateVirtualAccountRequest())
    return SuccessResponse(data=data)


@app.post(
    "/customer",
    response_model=SuccessResponse,
    summary="Create Customer",
    description="Create a customer on the payment provider",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Payment"]
)
@limiter.limit(RATE_LIMIT)
async def create_customer(
    request: Request,
    payload: Optional[CreateCustomerRequest] = None,
    service: PaymentService = Depends(get_service)
):
    data = await service.create_customer(payload or CreateCustomerRequest())
    return SuccessResponse(data=data)


@app.post(
    "/initialize-payment",
    response_model=SuccessResponse,
    summary="Initialize Payment",
    description="Returns a payment authorization URL and records a pending transaction",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Payment"]
)
@limiter.limit(RATE_LIMIT)
async def initialize_payment(
    request: Request,
    payload: Optional[InitializePaymentRequest] = None,
    service: PaymentService = Depends(get_service)
):
    payload = payload or InitializePaymentRequest()
    logger.info("Payment initialization requested", email=payload.email, amount=payload.amount)
    data = await service.initialize_payment(payload)
    return SuccessResponse(data=data)

# Webhook endpoint
@app.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Payment Webhook",
    description="Handles payment provider webhooks",
    responses={401: {"model": ErrorResponse}},
    tags=["Payment"]
)
async def webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
    app_settings: Settings = Depends(get_settings)
):
    body = await request.body()

    if app_settings.verify_webhook_signature:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not verify_signature(body, signature, app_settings.signing_secret):
            logger.warning(
                "Webhook signature rejected",
                client_ip=request.client.host if request.client else None,
                has_signature=signature is not None
            )
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = WebhookEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Malformed webhook payload", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    await reconciler.handle(event)
    return Response(status_code=status.HTTP_200_OK)

# Demo and utility endpoints
@app.get("/api", summary="Call a demo external API", tags=["Default"])
async def demo_api(client: ApiClient = Depends(get_demo_client)):
    try:
        status_code = await client.status()
    except ProviderError as e:
        logger.error("Error calling external API", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to call external API"})

    return {"message": "Demo API called", "data": status_code}


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get stored record counts",
    tags=["Default"]
)
async def health_check(
    transaction_repo=Depends(get_transaction_repository),
    account_repo=Depends(get_account_repository),
    customer_repo=Depends(get_customer_repository)
):
    return HealthResponse(
        status="healthy",
        transactions_count=await transaction_repo.count(),
        accounts_count=await account_repo.count(),
        customers_count=await customer_repo.count()
    )


@app.get("/", summary="API Health check", tags=["Default"])
async def root():
    return {"message": "API is Live!"}

# Global exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Router misses (unknown path or unsupported method) share one 404 body
    if (exc.status_code, exc.detail) in ((404, "Not Found"), (405, "Method Not Allowed")):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ErrorResponse(message="API route does not exist").model_dump(exclude_none=True)
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(message="Invalid request body", errors=errors).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    message = str(exc) if get_settings().expose_error_details else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"success": False, "status": 500, "message": message}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
