"""
EVFleet Ops — FastAPI Backend
Rider earnings, vehicle assignment, KYC and damage workflow for an EV fleet.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db.database import engine, init_models
from errors import FleetError
from routers import damages, earnings, hubs, riders, vehicles

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_models()
    logger.info("EVFleet Ops API starting...")
    yield
    # Shutdown
    await engine.dispose()
    logger.info("EVFleet Ops API shut down.")


app = FastAPI(
    title="EVFleet Ops API",
    description="Rider earnings, vehicle assignment, KYC and damage workflow",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ─────────────────────────────────────────────────
@app.exception_handler(FleetError)
async def fleet_error_handler(request: Request, exc: FleetError):
    logger.info("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


# ── Routers ────────────────────────────────────────────────
app.include_router(earnings.router, prefix="/api/earnings", tags=["Rider Earnings"])
app.include_router(hubs.router, prefix="/api/hubs", tags=["Hubs"])
app.include_router(vehicles.router, prefix="/api/vehicles", tags=["Vehicles"])
app.include_router(riders.router, prefix="/api/riders", tags=["Riders"])
app.include_router(damages.router, prefix="/api/damages", tags=["Damage Records"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "EVFleet Ops API"}
