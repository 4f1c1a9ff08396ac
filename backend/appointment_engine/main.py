"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from appointment_engine.config import settings
from appointment_engine.database import lifespan_db
from appointment_engine.errors import EngineError
from appointment_engine.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(debug=settings.debug)

# Import routers
from appointment_engine.api.appointments import router as appointments_router
from appointment_engine.api.clients import router as clients_router
from appointment_engine.api.team import router as team_router

logger = get_logger("engine.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    async with lifespan_db():
        yield


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Appointment lifecycle and scheduling validation engine",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    logger.info(
        "engine_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(appointments_router, prefix="/appointments", tags=["Appointments"])
app.include_router(clients_router, prefix="/clients", tags=["Clients"])
app.include_router(team_router, prefix="/team", tags=["Team"])


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "sqlite" if settings.is_sqlite else "connected",
    }
