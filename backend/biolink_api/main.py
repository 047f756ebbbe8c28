"""FastAPI application entry point"""

import os
import sys
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from biolink_api.core.config import settings
from biolink_api.models.errors import ApplicationError
from biolink_api.api import admin, seo, track

# Configure logging early with force=True to override any existing config
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    force=True,
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

# httpx logs every request URL at INFO, and CAPI URLs carry access tokens
logging.getLogger("httpx").setLevel(logging.WARNING)

# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    """Render ApplicationError as {ok: false, error, ...}"""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code.value} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.model_dump())


@app.on_event("startup")
async def startup_event():
    """Log startup diagnostic information"""
    logger.info("=" * 60)
    logger.info("BIOLINK SERVICE STARTING")
    logger.info("=" * 60)
    logger.info(f"PID: {os.getpid()}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Config store: {settings.config_store_path}")
    logger.info(f"Domain tenants: {len(settings.domain_tenants())}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down biolink service...")
    try:
        from biolink_api.core.dispatcher import event_dispatcher
        await event_dispatcher.close()
    except Exception as e:
        logger.warning(f"Error closing event_dispatcher: {e}")
    logger.info("Biolink service shutdown complete")


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "healthy", "version": settings.api_version}


@app.get("/health")
async def health():
    """Health check for monitoring"""
    return {"status": "healthy"}


# Register API routes
app.include_router(track.router, prefix="/api", tags=["track"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(seo.router, tags=["seo"])
