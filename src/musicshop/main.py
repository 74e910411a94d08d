import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from musicshop.api.v1 import orders, orders_admin, trade_in
from musicshop.core.config import settings
from musicshop.core.database import engine
from musicshop.core.exceptions import AppError, UnavailableError
from musicshop.core.redis import close_redis
from musicshop.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from musicshop.middleware.rate_limit import RateLimitMiddleware
from musicshop.schemas.common import ErrorResponse

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting order fulfillment service...")

    yield

    logger.info("Shutting down, closing connections")
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Music Shop Orders",
    version="1.0.0",
    description="Order fulfillment, assignment and trade-in pricing for the music shop",
    lifespan=lifespan,
)

if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(
        RateLimitMiddleware,
        user_limit=settings.RATE_LIMIT_USER,
        ip_limit=settings.RATE_LIMIT_IP,
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last so it wraps everything else, rate-limited requests included
app.add_middleware(PrometheusMiddleware)


# =============================================================================
# Failure envelope
# =============================================================================

def error_response(status_code: int, message: str, code: str, details: str | None = None, headers=None):
    body = ErrorResponse(message=message, code=code, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return error_response(exc.status_code, exc.message, exc.code, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    details = None
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        details = f"{location}: {first.get('msg')}"
    return error_response(400, "Invalid request", "INVALID_INPUT", details)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Unhandled storage error on {request.method} {request.url.path}", exc_info=exc)
    return error_response(UnavailableError.status_code, "Storage is temporarily unavailable", UnavailableError.code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    codes = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
    return error_response(
        exc.status_code,
        str(exc.detail),
        codes.get(exc.status_code, "HTTP_ERROR"),
        headers=getattr(exc, "headers", None),
    )


# Include API routers; admin first so "/admin" is not read as an order id
app.include_router(orders_admin.router, prefix="/api/orders/admin", tags=["orders-admin"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(trade_in.router, prefix="/api/trade-in", tags=["trade-in"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"success": True, "data": {"status": "healthy"}}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
