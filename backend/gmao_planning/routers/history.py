"""
History router - consolidation of the raw maintenance logs and history views.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from dateutil.relativedelta import relativedelta
import logging

from gmao_planning.database import get_db
from gmao_planning.models import Equipment
from gmao_planning.schemas import (
    ConsolidationResponse,
    HistoryEventResponse,
    HistoryMatrixResponse
)
from gmao_planning.services.history_service import HistoryService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/consolidate", response_model=ConsolidationResponse)
def consolidate_history(db: Session = Depends(get_db)):
    """
    Rebuild the normalized history event log.

    **Sources merged:**
    - Curative log (replaced parts matched to catalog operations)
    - Oil-change log (oil change plus flagged filters)
    - Consolidated log (coded operations, greasing with a quantity only)

    The previous event log is replaced as a whole. Rows with a missing
    matricule, an unparseable date or an unknown equipment are dropped and
    counted per reason.
    """
    return HistoryService.consolidate_history(db)


@router.get("/matrix", response_model=HistoryMatrixResponse)
def get_history_matrix(db: Session = Depends(get_db)):
    """
    Month-by-month history grid: latest date of each operation per
    (matricule, month) and the highest meter reading seen that month.
    """
    return HistoryService.history_matrix(db)


@router.get("/equipment/{matricule}", response_model=List[HistoryEventResponse])
def get_equipment_history(
    matricule: str,
    months: Optional[int] = Query(None, ge=1, le=240, description="Only the last N months"),
    db: Session = Depends(get_db)
):
    """
    History events of one equipment, newest first.
    """
    if not db.query(Equipment).filter(Equipment.matricule == matricule).first():
        raise HTTPException(status_code=404, detail=f"Equipment '{matricule}' not found")

    since = date.today() - relativedelta(months=months) if months else None
    return HistoryService.history_for_equipment(db, matricule, since)
