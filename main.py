import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import Settings, load_settings
from core.context import AppContext
from core.database import create_db_and_tables, create_db_engine
from core.errors import AppError
from core.rate_limit import FixedWindowRateLimiter
from core.responses import send_error, send_response
from core.security import TokenService
from routes.auth import router as auth_router
from routes.health import router as health_router
from routes.notes import router as notes_router
from routes.subscription import router as subscription_router
from services.razorpay_gateway import PaymentGateway, RazorpayGateway
from services.subscription_service import expire_subscriptions

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
}


# =========================================
# Subscription expiry sweep
# =========================================
def run_expiry_sweep(ctx: AppContext) -> int:
    with Session(ctx.engine) as session:
        expired = expire_subscriptions(session, ctx.settings.FREE_PLAN_NOTE_LIMIT)
    if expired:
        logger.info("Expired %s subscription(s)", expired)
    return expired


async def expiry_loop(ctx: AppContext) -> None:
    interval = ctx.settings.SUBSCRIPTION_EXPIRY_CHECK_SECONDS
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_expiry_sweep, ctx)
        except Exception:
            logger.exception("Subscription expiry sweep failed")


# =========================================
# Lifespan (DB initialization, background sweep)
# =========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx: AppContext = app.state.ctx
    create_db_and_tables(ctx.engine)

    sweeper = None
    if ctx.settings.SUBSCRIPTION_EXPIRY_CHECK_SECONDS > 0:
        sweeper = asyncio.create_task(expiry_loop(ctx))

    logger.info("Notes API started (%s)", ctx.settings.ENVIRONMENT)
    yield

    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    ctx.gateway.close()
    ctx.engine.dispose()
    logger.info("Application shutting down.")


# =========================================
# Exception handlers
# =========================================
def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) or "request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return send_error(exc.status_code, exc.message, exc.errors)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [{"field": _field_name(err["loc"]), "message": err["msg"]} for err in exc.errors()]
        return send_error(status.HTTP_400_BAD_REQUEST, "Validation error", errors)

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return send_error(status.HTTP_409_CONFLICT, "Duplicate value")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = f"Route {request.url.path} not found"
        return send_error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return send_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# =========================================
# FastAPI app factory
# =========================================
def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    ctx = AppContext(
        settings=settings,
        engine=engine or create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG),
        tokens=TokenService(
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        ),
        gateway=gateway or RazorpayGateway(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            base_url=settings.RAZORPAY_API_URL,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        ),
    )

    app = FastAPI(lifespan=lifespan, title="Multi-Tenant Notes API", version=settings.APP_VERSION)
    app.state.ctx = ctx
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
    )
    app.state.auth_rate_limiter = FixedWindowRateLimiter(
        settings.AUTH_RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
    )

    # =========================================
    # Middleware (last declared runs first)
    # =========================================
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        path = request.url.path
        if not settings.RATE_LIMIT_ENABLED or path.startswith("/health"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "anonymous"
        result = app.state.rate_limiter.hit(client_ip)
        message = "Too many requests from this IP, please try again later."
        if result.allowed and path.startswith("/auth"):
            result = app.state.auth_rate_limiter.hit(client_ip)
            message = "Too many authentication attempts, please try again later."

        if not result.allowed:
            logger.warning("Rate limit exceeded for %s on %s %s", client_ip, request.method, path)
            response = send_error(status.HTTP_429_TOO_MANY_REQUESTS, message)
            response.headers["Retry-After"] = str(result.reset)
        else:
            response = await call_next(request)
        response.headers.update(result.headers)
        return response

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        client_ip = request.client.host if request.client else "-"
        logger.info(
            "%s %s %s %.1fms %s",
            request.method, request.url.path, response.status_code, duration_ms, client_ip,
        )
        return response

    register_exception_handlers(app)

    # =========================================
    # Routers
    # =========================================
    app.include_router(auth_router, prefix="/auth")
    app.include_router(notes_router, prefix="/notes")
    app.include_router(subscription_router, prefix="/subscription")
    app.include_router(health_router, prefix="/health")

    @app.get("/")
    def read_root():
        return send_response(
            status.HTTP_200_OK,
            "Multi-Tenant Notes API",
            {
                "version": settings.APP_VERSION,
                "endpoints": {
                    "auth": "/auth",
                    "notes": "/notes",
                    "subscription": "/subscription",
                    "health": "/health",
                },
            },
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000)
