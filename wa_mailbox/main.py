"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wa_mailbox.api.middleware import IdempotencyMiddleware, RequestContextMiddleware
from wa_mailbox.api.routes import api_router
from wa_mailbox.infrastructure.redis import response_cache
from wa_mailbox.logging_config import get_logger, setup_logging
from wa_mailbox.settings import settings
from wa_mailbox.workers import jobs_worker

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    await response_cache.connect()
    logger.info("Application started", extra={"environment": settings.environment})
    yield
    # Shutdown
    await response_cache.disconnect()


# Create FastAPI app
app = FastAPI(
    title="WhatsApp Mailbox API",
    description="Multi-tenant WhatsApp Business mailbox and CRM",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add idempotency middleware
app.add_middleware(IdempotencyMiddleware)

# Outermost so every log line of the request carries its id
app.add_middleware(RequestContextMiddleware)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Include worker routes (called by Cloud Scheduler or cron)
app.include_router(jobs_worker.router, prefix="/workers", tags=["workers"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "redis": response_cache.state}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "WhatsApp Mailbox API",
        "version": "0.1.0",
        "docs": "/docs",
    }
