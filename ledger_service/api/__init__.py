"""
Ledger API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import LedgerError
from ..logging_config import get_logger
from .dependencies import LedgerSystem
from .routes import router as bank_router


ERROR_STATUS = {
    "NotFound": 404,
    "InvalidAmount": 400,
    "InvalidTransfer": 400,
    "InsufficientFunds": 400,
    "AmbiguousAccountNumber": 409,
    "StoreFailure": 503,
    "Timeout": 504,
}

logger = get_logger("ledger.api")


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without an explicit ``system`` one is built from the global configuration
    at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.ledger_system is None
        if owned:
            app.state.ledger_system = LedgerSystem()
        try:
            yield
        finally:
            if owned:
                app.state.ledger_system.close()
                app.state.ledger_system = None

    app = FastAPI(
        title="Ledger Service API",
        description="Account ledger with deposits, transfers and transaction history",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.ledger_system = system

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = ERROR_STATUS.get(exc.kind, 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(bank_router, prefix="/bank", tags=["Bank"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "ledger_service_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Ledger Service API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "deposit": "/bank/deposit",
                "transfer": "/bank/transfer",
                "transactions": "/bank/transactions/{accountNumber}",
                "accounts": "/bank/accounts",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8000, debug: bool = False, log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "ledger_service.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level=log_level
    )
