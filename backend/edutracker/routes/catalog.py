"""
Catalog API routes - competency lookup and the dashboard summary.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from edutracker.core import ProgressEngine, get_engine
from edutracker.labels import label
from edutracker.schemas import Standing
from edutracker.logging_config import get_logger

router = APIRouter()
logger = get_logger("http")


@router.get("/api/competencies")
def list_competencies(
    subject: Optional[str] = Query(None, description="Filter by subject"),
    engine: ProgressEngine = Depends(get_engine)
):
    competencies = engine.catalog.list_competencies(subject=subject)
    return {"data": [c.to_record() for c in competencies], "total": len(competencies)}


@router.get("/api/competencies/{competency_id}")
def get_competency(competency_id: str, engine: ProgressEngine = Depends(get_engine)):
    return engine.catalog.describe(competency_id).to_record()


@router.get("/api/dashboard")
def dashboard(
    class_id: Optional[str] = Query(None, description="Restrict student counts to one class"),
    engine: ProgressEngine = Depends(get_engine)
):
    """Students per standing and intervention totals."""
    summary = engine.summary(class_id=class_id)
    summary["labels"] = {standing.value: label(standing) for standing in Standing}
    return summary
