"""
Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from fuel_ledger.core.config import settings
from fuel_ledger.core.database import init_db
from fuel_ledger.core.exceptions import (
    LedgerError, ledger_exception_handler, unhandled_exception_handler,
    validation_exception_handler
)
from fuel_ledger.schemas import ERROR_RESPONSES
from fuel_ledger.api.v1 import (
    banking, cashbook, crm, depos, expenses, ledgers, payments, recoveries, trips,
    vehicle_expenses, vehicle_rent
)

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting up...")
    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")


# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Exception handlers
app.add_exception_handler(LedgerError, ledger_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
app.include_router(banking.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(cashbook.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(crm.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(depos.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(trips.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(expenses.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(payments.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(recoveries.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(vehicle_rent.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(vehicle_expenses.router, prefix="/api/v1", responses=ERROR_RESPONSES)
app.include_router(ledgers.router, prefix="/api/v1", responses=ERROR_RESPONSES)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
