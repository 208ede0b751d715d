from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from pymongo.errors import PyMongoError
from app.config import settings
from app.database import Database
from app.features.conversations.router import router as conversations_router
from app.features.messages.router import router as messages_router
from app.features.notifications.router import router as notifications_router
from app.features.realtime.router import router as presence_router
from app.features.realtime.broadcaster import broadcaster
from app.features.realtime.socket import sio, socket_app
from app.shared.exceptions import AppException, DependencyFailureException
from app.shared.schemas import ErrorResponse
from app.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    # Startup
    logger.info("Starting CalmTunes Chat API...")
    await Database.connect_db()

    # Route realtime events through the Socket.IO server
    broadcaster.attach(sio)

    logger.info("Application started successfully")

    yield

    # Shutdown
    logger.info("Shutting down...")
    broadcaster.reset()
    await Database.close_db()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="CalmTunes conversations, notifications and realtime delivery",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    body = ErrorResponse(message=exc.detail, code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=exc.headers)


@app.exception_handler(PyMongoError)
async def database_exception_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    error = DependencyFailureException()
    body = ErrorResponse(message=error.detail, code=error.code, retryable=True, detail=error.detail)
    return JSONResponse(status_code=error.status_code, content=body.model_dump())


# Register routers
app.include_router(conversations_router, prefix=settings.API_V1_PREFIX)
app.include_router(messages_router, prefix=settings.API_V1_PREFIX)
app.include_router(notifications_router, prefix=settings.API_V1_PREFIX)
app.include_router(presence_router, prefix=settings.API_V1_PREFIX)

# Mount Socket.IO application
app.mount("/socket.io", socket_app)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to CalmTunes Chat API",
        "version": "1.0.0",
        "docs": "/docs",
        "socket.io": "/socket.io",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }
