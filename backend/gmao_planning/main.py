from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
import logging

from gmao_planning import __version__
from gmao_planning.config import settings
from gmao_planning.database import init_db, engine, SessionLocal
from gmao_planning.routers import (
    history,
    planning,
    follow_up,
    alerts,
    parameters,
    import_export
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting GMAO Planning API...")

    try:
        init_db()
        logger.info("Database initialized successfully")

        yield

    finally:
        # Shutdown
        logger.info("Shutting down GMAO Planning API...")
        engine.dispose()
        logger.info("Shutdown complete")


# Initialize FastAPI application
app = FastAPI(
    title="GMAO Planning",
    description=(
        "Preventive maintenance scheduling and reconciliation engine\n\n"
        "Consolidates the curative, oil-change and consolidated maintenance logs "
        "into one history, projects a yearly preventive plan per equipment from "
        "the interval rules, and reconciles the plan with what was realized.\n\n"
        "**Features:**\n"
        "- History consolidation with per-reason drop counts\n"
        "- Yearly planning generation (levels C / N / CH)\n"
        "- Plan vs. realized follow-up with out-of-plan (HP) events\n"
        "- Equipment x month grids, CSV / Excel exports\n"
        "- Preventive alerts\n"
    ),
    version=__version__,
    license_info={
        "name": "MIT"
    },
    lifespan=lifespan
)


# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------------------------------------
# Exception handlers
# ----------------------------------------------------
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal server error occurred",
            "error": str(exc)
        }
    )

# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(
    history.router,
    prefix="/api/history",
    tags=["History"]
)

app.include_router(
    planning.router,
    prefix="/api/planning",
    tags=["Planning"]
)

app.include_router(
    follow_up.router,
    prefix="/api/follow-up",
    tags=["Follow-up"]
)

app.include_router(
    alerts.router,
    prefix="/api/alerts",
    tags=["Alerts"]
)

app.include_router(
    parameters.router,
    prefix="/api/parameters",
    tags=["Parameters"]
)

app.include_router(
    import_export.router,
    prefix="/api",
    tags=["Import/Export"]
)

# ----------------------------------------------------
# Root endpoints
# ----------------------------------------------------
@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - API information
    """
    return {
        "message": "GMAO Planning API is running",
        "version": __version__,
        "features": [
            "History Consolidation",
            "Preventive Planning",
            "Plan Follow-up",
            "Preventive Alerts",
            "CSV / Excel Export"
        ],
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health", tags=["Root"])
def health_check():
    """
    Health check endpoint for monitoring
    """
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
            "version": __version__
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e)
            }
        )
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gmao_planning.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
