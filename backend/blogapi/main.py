import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .database import engine, async_session_factory
from .db_models import *  # noqa: F401,F403
from .config import settings
from .logs import ACCESS_LOGGER, configure_logging
from .cache import create_post_cache
from .events import EventBus
from .exceptions import register_exception_handlers
from .models import ApiResponse
from .users.models import User as UserModel
from .auth.dependencies import AdminUser
from .auth.router import router as auth_router
from .users.router import router as users_router
from .posts.router import router as posts_router
from .notifications.audit import PostAuditLog
from .notifications.listener import NewPostNotifier, register_post_listeners
from .notifications.mailer import SMTPMailer

configure_logging(settings.LOG_LEVEL, settings.EVENT_LOG_DIR)

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(ACCESS_LOGGER)
logger.info(f"Application starting with log level: {settings.LOG_LEVEL}")

API_VERSION = "1.0.0"

# StaticFiles checks the directory when mounted, before the lifespan runs
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for directory in (settings.EXPORT_DIR, settings.EVENT_LOG_DIR):
        Path(directory).mkdir(parents=True, exist_ok=True)

    app.state.cache = create_post_cache(
        settings.REDIS_URL,
        list_ttl=settings.POST_LIST_CACHE_TTL,
        detail_ttl=settings.POST_DETAIL_CACHE_TTL,
    )
    if app.state.cache.enabled and not await app.state.cache.ping():
        logger.warning("Redis is unreachable; continuing without a warm cache")

    app.state.mailer = SMTPMailer.from_settings()
    if app.state.mailer is None:
        logger.info("SMTP_HOST not set; new post emails are disabled")

    bus = EventBus()
    register_post_listeners(
        bus,
        audit_log=PostAuditLog(settings.EVENT_LOG_DIR),
        notifier=NewPostNotifier(
            async_session_factory,
            app.state.mailer,
            base_url=settings.BASE_URL,
            batch_size=settings.EMAIL_BATCH_SIZE,
            batch_delay=settings.EMAIL_BATCH_DELAY_SECONDS,
            contact_email=settings.FROM_EMAIL,
        ),
    )
    await bus.start()
    app.state.events = bus

    yield

    await bus.stop()
    await app.state.cache.close()
    await engine.dispose()


app = FastAPI(
    title="Post Management System API",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Cache"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    client_ip = request.client.host if request.client else "-"
    access_logger.info(f"{request.method} {request.url.path} - IP: {client_ip}")
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    access_logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
    return response


register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(posts_router)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/health", tags=["system"])
async def health(request: Request):
    cache = request.app.state.cache
    if not cache.enabled:
        cache_status = "disabled"
    else:
        cache_status = "connected" if await cache.ping() else "unreachable"
    return {
        "success": True,
        "message": "Server is running successfully",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
        "cache": cache_status,
    }


@app.get("/", tags=["system"])
async def welcome():
    return {
        "success": True,
        "message": "Welcome to Post Management System API",
        "version": API_VERSION,
        "documentation": f"{settings.BASE_URL.rstrip('/')}/docs",
        "endpoints": {
            "auth": {
                "register": "POST /api/register",
                "login": "POST /api/login",
            },
            "posts": {
                "getAll": "GET /api/posts",
                "getById": "GET /api/posts/:id",
                "create": "POST /api/posts",
                "update": "PUT /api/posts/:id",
                "delete": "DELETE /api/posts/:id",
                "export": "GET /api/posts/export",
            },
            "users": {
                "profile": "GET /api/users/profile",
                "updateProfile": "PUT /api/users/profile",
                "list": "GET /api/users",
                "stats": "GET /api/users/stats",
                "getById": "GET /api/users/:id",
                "updateStatus": "PUT /api/users/:id/status",
            },
        },
    }


@app.get("/test-email", tags=["system"], response_model=ApiResponse[dict])
async def test_email(request: Request, admin: UserModel = AdminUser):
    mailer = request.app.state.mailer
    config = {"host": settings.SMTP_HOST, "port": settings.SMTP_PORT, "from": settings.FROM_EMAIL}
    if mailer is None:
        return ApiResponse(success=False, message="Email is not configured (SMTP_HOST is empty)", data=config)

    is_valid = await mailer.verify()
    return ApiResponse(
        success=is_valid,
        message="Email configuration is valid" if is_valid else "Email configuration has issues",
        data=config,
    )
