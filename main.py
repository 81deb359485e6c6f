"""
Inventory Bulk Upload API.

Mounts the upload wizard and lot routers and configures logging.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from config import settings, check_connection
from exceptions import AppError
from routes import inventory_upload_router, lots_router

API_VERSION = "0.1.0"

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the configuration and whether the store is reachable."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        classifier_configured=settings.classifier_configured,
        upload_batch_size=settings.upload_batch_size
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info("database_connected", lots=db_status["lots_count"])
    else:
        # Decoding, mapping and validation still work without the store
        logger.error("database_connection_failed", error=db_status.get("error"))

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title="Inventory Bulk Upload",
    description="Spreadsheet import of auto-parts inventory into numbered lots",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.include_router(inventory_upload_router, prefix="/api/inventory-upload", tags=["Inventory Upload"])
app.include_router(lots_router, prefix="/api/lots", tags=["Lots"])


@app.get("/health")
async def health_check():
    db_status = check_connection()
    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "classifier_configured": settings.classifier_configured,
        "database": db_status
    }


@app.get("/")
async def root():
    return {
        "name": "Inventory Bulk Upload API",
        "version": API_VERSION,
        "endpoints": {
            "inventory_upload": "/api/inventory-upload",
            "lots": "/api/lots"
        }
    }


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """AppErrors raised outside a route's own handle_error."""
    logger.warning("app_error", path=request.url.path, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
