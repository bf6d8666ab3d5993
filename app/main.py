"""
Main FastAPI application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db
from app.exceptions import (
    AuthorizationError,
    MessagingError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from app.logging_config import setup_logging
from app.middleware import TracingMiddleware
from app.routers import direct_messages, health, profiles, websocket
from app.services import get_broker

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
    init_db()

    broker = get_broker()
    await broker.connect()

    yield

    logger.info("Shutting down")
    await broker.disconnect()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Direct messaging with live delivery for CampusConnect",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TracingMiddleware)


ERROR_STATUS = {
    ValidationError: 422,
    AuthorizationError: 403,
    NotFoundError: 404,
    TransportError: 503,
}


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, exc: MessagingError):
    """Map messaging errors to JSON responses"""
    status_code = ERROR_STATUS.get(type(exc), 500)

    if isinstance(exc, AuthorizationError):
        # Never explain why an authorization check failed
        detail = "Operation not permitted"
    else:
        detail = exc.message

    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": detail}
    )


# Include routers
app.include_router(profiles.router)
app.include_router(direct_messages.router)
app.include_router(websocket.router)
app.include_router(health.router)


@app.get("/")
def read_root():
    """Root endpoint"""
    return {
        "message": f"{settings.APP_NAME} is running",
        "version": settings.APP_VERSION,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "conversations": "/dm/conversations",
            "live": "/ws/dm"
        }
    }
