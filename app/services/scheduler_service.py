# =====================================================
# FILE: app/services/scheduler_service.py
# Background Job Scheduler for document expiry
# =====================================================

import asyncio
from typing import Callable, List, Optional
import logging

from app.core.config import settings
from app.core.database import get_db_session
from app.services.document_service import DocumentService
from app.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class SchedulerService:
    """Background job scheduler"""

    def __init__(self, tick_seconds: float = 60):
        self.jobs: List[dict] = []
        self.running = False
        self.tick_seconds = tick_seconds

    def add_job(self, name: str, func: Callable, interval_minutes: float):
        """Add a scheduled job"""
        self.jobs.append({
            "name": name,
            "func": func,
            "interval": interval_minutes,
            "last_run": None
        })
        logger.info(f"Scheduled job '{name}' every {interval_minutes} minutes")

    async def run_pending(self):
        """Run every job whose interval has elapsed"""
        for job in self.jobs:
            now = utcnow()
            should_run = (
                job["last_run"] is None or
                (now - job["last_run"]).total_seconds() >= job["interval"] * 60
            )

            if should_run:
                try:
                    logger.info(f"⏱️ Running job: {job['name']}")
                    if asyncio.iscoroutinefunction(job["func"]):
                        await job["func"]()
                    else:
                        await asyncio.to_thread(job["func"])
                    logger.info(f"Job completed: {job['name']}")
                except Exception as e:
                    logger.error(f"Job failed: {job['name']} - {e}")
                job["last_run"] = now

    async def start(self):
        """Start the scheduler"""
        self.running = True
        logger.info("🚀 Background scheduler started")

        while self.running:
            await self.run_pending()
            await asyncio.sleep(self.tick_seconds)

    def stop(self):
        """Stop the scheduler"""
        self.running = False
        logger.info("Scheduler stopped")


# =====================================================
# SCHEDULED JOB FUNCTIONS
# =====================================================

def expire_overdue_documents(session_factory: Optional[Callable] = None) -> List[str]:
    """Move pending documents past their deadline to expired"""
    with get_db_session(session_factory) as db:
        expired = DocumentService(db).expire_overdue(utcnow())
    logger.info(f"Expiry check complete. {len(expired)} documents expired.")
    return expired


# =====================================================
# SCHEDULER INITIALIZATION
# =====================================================

scheduler = SchedulerService()


def setup_scheduler():
    """Configure all scheduled jobs"""
    scheduler.add_job(
        "Document Expiry Check",
        expire_overdue_documents,
        settings.EXPIRY_CHECK_INTERVAL_MINUTES
    )
    return scheduler
