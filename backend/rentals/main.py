"""Oasis Rentals — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from rentals.api.routes.auth import router as auth_router
from rentals.api.routes.bookings import router as bookings_router
from rentals.api.routes.favorites import router as favorites_router
from rentals.api.routes.payments import router as payments_router
from rentals.api.routes.properties import router as properties_router
from rentals.api.routes.reviews import router as reviews_router
from rentals.api.routes.routes import router as routes_router
from rentals.billing.gateway import build_gateway
from rentals.config import settings
from rentals.database import Database
from rentals.errors import AppError, DatabaseError, describe_validation_errors
from rentals.services.geo import GeoService
from rentals.services.storage import build_storage

# Configure root logger so all rentals.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the connection pool and collaborators; drain the pool on shutdown."""
    # Tests install their own database and collaborators before startup.
    if getattr(app.state, "database", None) is None:
        app.state.database = Database(
            settings.async_database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=settings.db_echo,
        )
    if getattr(app.state, "storage", None) is None:
        app.state.storage = build_storage()
    if getattr(app.state, "gateway", None) is None:
        app.state.gateway = build_gateway()
    if getattr(app.state, "geo", None) is None:
        app.state.geo = GeoService()
    logger.info("%s started with %r", settings.app_name, app.state.database)
    yield
    await app.state.database.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Property rental marketplace: listings, bookings, payments and reviews.",
    docs_url="/docs",
    redoc_url="/redoc",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation failed",
            "errors": describe_validation_errors(exc.errors()),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path, exc_info=exc)
    error = DatabaseError("Database operation failed")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# Routers
app.include_router(auth_router)
app.include_router(properties_router)
app.include_router(bookings_router)
app.include_router(reviews_router)
app.include_router(favorites_router)
app.include_router(payments_router)
app.include_router(routes_router)

# Uploaded property images (LocalImageStorage).
app.mount(settings.media_base_url, StaticFiles(directory=settings.media_root, check_dir=False), name="media")


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("rentals.main:app", host=settings.host, port=settings.port, reload=settings.debug)
