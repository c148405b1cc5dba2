# =====================================================
# FILE: app/main.py
# FastAPI application entry point
# =====================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import init_db, test_connection
from app.core.exceptions import SignLedgerError
from app.core.dependencies import get_ledger
from app.services.ledger_service import LedgerClient, close_ledger_client
from app.services.scheduler_service import setup_scheduler
from app.api.api_v1.documents import documents_router
from app.api.api_v1.identity import identity_router
from app.api.api_v1.signatures import signatures_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting {settings.APP_NAME}")
    init_db()

    scheduler = None
    scheduler_task = None
    if settings.SCHEDULER_ENABLED:
        scheduler = setup_scheduler()
        scheduler_task = asyncio.create_task(scheduler.start())

    yield

    if scheduler is not None:
        scheduler.stop()
        scheduler_task.cancel()
    close_ledger_client()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Document signing workflow with identity verification and attestation ledger",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(SignLedgerError)
async def signledger_error_handler(request: Request, exc: SignLedgerError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} - {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.include_router(documents_router)
app.include_router(signatures_router)
app.include_router(identity_router)


@app.get("/health")
def health_check(ledger: LedgerClient = Depends(get_ledger)):
    """Service, database and ledger status"""
    database_ok = test_connection()
    ledger_status = ledger.get_network_status()
    healthy = database_ok and ledger_status.get("connected", False)
    return {
        "status": "healthy" if healthy else "degraded",
        "app": settings.APP_NAME,
        "database": "connected" if database_ok else "unavailable",
        "ledger": ledger_status,
    }
