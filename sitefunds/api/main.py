"""
FastAPI Main Application

Entry point for the site fund flow API.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..exceptions import FundFlowError
from .routes import (
    allocations_router,
    attendance_router,
    bills_router,
    contracts_router,
    expenses_router,
    ledger_router,
    wallet_router,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Site Fund Flow API...")
    yield
    # Shutdown
    logger.info("Shutting down Site Fund Flow API...")


app = FastAPI(
    title="Site Fund Flow API",
    description="Fund allocation, approval and worker ledger API for construction sites",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FundFlowError)
async def fund_flow_error_handler(request: Request, exc: FundFlowError) -> JSONResponse:
    """Render fund flow errors as {code, message, details}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(allocations_router, prefix="/api")
app.include_router(expenses_router, prefix="/api")
app.include_router(bills_router, prefix="/api")
app.include_router(contracts_router, prefix="/api")
app.include_router(ledger_router, prefix="/api")
app.include_router(attendance_router, prefix="/api")
app.include_router(wallet_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Site Fund Flow API",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "endpoints": {
            "allocations": "/api/allocations",
            "expenses": "/api/expenses",
            "bills": "/api/bills",
            "contracts": "/api/contracts",
            "ledger": "/api/ledger/{worker_id}/balance",
            "attendance": "/api/attendance",
            "wallet": "/api/wallet/me",
        },
        "authentication": "X-User-ID header required in production",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sitefunds.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
