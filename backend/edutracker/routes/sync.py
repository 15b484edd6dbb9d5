"""
Sync API routes - outbox status, retry of failed tasks and resync.

All endpoints return 503 when no remote store is configured.
"""

import time
from fastapi import APIRouter, Depends, HTTPException

from edutracker.core import ProgressEngine, get_engine
from edutracker.services.sync import SyncWorker
from edutracker.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


def _worker(engine: ProgressEngine) -> SyncWorker:
    if engine.sync is None:
        raise HTTPException(status_code=503, detail="Remote sync is not configured")
    return engine.sync


@router.get("/api/sync/status")
def sync_status(engine: ProgressEngine = Depends(get_engine)):
    return _worker(engine).stats()


@router.post("/api/sync/retry")
def retry_failed(engine: ProgressEngine = Depends(get_engine)):
    """Requeue tasks that exhausted their attempts."""
    requeued = _worker(engine).retry_failed()
    return {"requeued": requeued}


@router.post("/api/sync/resync")
async def resync(engine: ProgressEngine = Depends(get_engine)):
    """
    Replace local students, classes, competencies and invites with the remote
    copies. Unsynced local changes to those collections are lost.
    """
    worker = _worker(engine)
    start_time = time.time()
    summary = await worker.resync()
    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Resync requested",
                     extra_data={"duration_ms": round(duration_ms, 2), "summary": summary})
    return {"collections": summary, "status": worker.stats()}
