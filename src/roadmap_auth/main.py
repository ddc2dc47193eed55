"""Roadmap Auth Service

Main FastAPI application entry point: Entra SSO login, admin session
verification and instance-scoped admin access for the roadmap portal.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roadmap_auth.api.routes import entra, instances, session
from roadmap_auth.config.settings import DEFAULT_JWT_SECRET, get_settings
from roadmap_auth.infrastructure.redis.client import close_redis_client

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    settings = get_settings()

    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    if not settings.entra_sso_enabled:
        logger.warning("Entra SSO disabled: ENTRA_TENANT_ID, ENTRA_CLIENT_ID and ENTRA_CLIENT_SECRET are required")
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        if settings.is_development:
            logger.warning("JWT_SECRET has its default value; acceptable for development only")
        else:
            logger.error("JWT_SECRET has its default value; sessions will be refused until it is set")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    await close_redis_client()


app = FastAPI(
    title="Roadmap Auth Service",
    version=settings.service_version,
    description="Entra ID single sign-on and admin session service for the roadmap portal",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Health check endpoint
@app.get("/health")
async def root_health_check():
    """Root health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "ssoEnabled": settings.entra_sso_enabled,
    }


app.include_router(entra.router)
app.include_router(session.router)
app.include_router(instances.router)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Render HTTP errors as {"error": ...}"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "roadmap_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
