from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from typing import Any
from datetime import datetime, timezone

from app.config import settings
from app.database import create_db_and_tables
from app.api import allocation, cases, deliveries, inventory, needs, organizations, service_requests
from app.core.errors import ReliefError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Lifespan manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await create_db_and_tables()
    logger.info("Database tables ready")
    yield
    # Shutdown
    logger.info("Application shutting down")

app = FastAPI(
    title="Relief Allocation API",
    description="Service-area matching and resource allocation for disaster-relief NGOs",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ReliefError)
async def relief_error_handler(request: Request, exc: ReliefError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())}
    )

# Include routers
app.include_router(allocation.router, prefix="/api/allocation", tags=["Allocation"])
app.include_router(service_requests.router, prefix="/api/service-requests", tags=["Service Requests"])
app.include_router(deliveries.router, prefix="/api/service-deliveries", tags=["Service Deliveries"])
app.include_router(deliveries.services_router, prefix="/api/services", tags=["Services"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(needs.router, prefix="/api/needs", tags=["Victim Needs"])
app.include_router(organizations.area_router, prefix="/api/service-areas", tags=["Service Areas"])
app.include_router(organizations.ngo_router, prefix="/api/ngos", tags=["NGOs"])
app.include_router(organizations.staff_router, prefix="/api/staff", tags=["Staff"])
app.include_router(cases.event_router, prefix="/api/events", tags=["Events"])
app.include_router(cases.victim_router, prefix="/api/victims", tags=["Victims"])

@app.get("/")
async def root():
    return {
        "message": "Relief Allocation API",
        "status": "active",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

# Health check endpoint
@app.get("/health")
async def health_check() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
