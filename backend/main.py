from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager
import logging

from core.database import initialize_db, db_manager
# Import configuration and logging
from core.config import settings, validate_startup_environment
from core.logging_config import setup_logging
# Import exceptions and handlers
from core.exceptions import (
    APIException,
    api_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    sqlalchemy_exception_handler,
    general_exception_handler
)
from routes import checkout_router, health_router, shipping_router, webhooks_router
from services.catalog_sync import catalog_sync_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup event
    setup_logging(settings.LOG_LEVEL)

    # Validate environment variables first
    logger.info("Validating environment configuration...")
    validation_result = validate_startup_environment()
    if not validation_result.is_valid:
        # Requests needing a missing secret fail with a 500; the others are still served
        logger.warning(f"⚠️ {validation_result.error_message} ({settings.ENVIRONMENT})")
    else:
        logger.info("Environment validation passed ✅")
    for warning in validation_result.warnings:
        logger.warning(warning)

    initialize_db(settings.SQLALCHEMY_DATABASE_URI, echo=False)
    if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        await db_manager.create_all()

    # Catalog writes now keep Stripe products and prices in step
    catalog_sync_service.register()
    logger.info("Catalog → Stripe sync registered on product and engraving lifecycles")

    yield
    # Shutdown event
    await db_manager.dispose()


app = FastAPI(
    title="Ekom API",
    description="Storefront backend: Stripe catalog sync, checkout sessions and order confirmation webhooks.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout_router)
app.include_router(shipping_router)
app.include_router(webhooks_router)
app.include_router(health_router)


@app.get("/")
async def read_root():
    return {
        "service": "Ekom API",
        "status": "Running",
        "version": "1.0.0",
    }


# Register exception handlers
app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)
