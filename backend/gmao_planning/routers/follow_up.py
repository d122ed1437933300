"""
Follow-up router - planned vs. realized reconciliation views and statistics.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from gmao_planning.config import settings
from gmao_planning.database import get_db
from gmao_planning.schemas import (
    FollowUpPage, FollowUpStatistics, MatrixPage, MonthlyPreventiveStats
)
from gmao_planning.services.reconciliation_service import ReconciliationService
from gmao_planning.services.statistics_service import StatisticsService
from gmao_planning.services.matrix_service import MatrixService

router = APIRouter()


@router.get("/{year}", response_model=FollowUpPage)
def get_follow_up(
    year: int,
    matricule: Optional[str] = Query(None, description="Substring filter on matricule"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """
    Reconciled occurrences of a year.

    **Matching:**
    - A realized event matches the nearest free planned occurrence of the
      same equipment and operation within MATCH_TOLERANCE_DAYS (30 by default)
    - Unmatched events are returned as out-of-plan (level HP)
    """
    return ReconciliationService.get_follow_up(db, year, matricule, skip, limit)


@router.get("/{year}/matrix", response_model=MatrixPage)
def get_follow_up_matrix(
    year: int,
    matricule: Optional[str] = Query(None, description="Substring filter on matricule"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """
    Equipment x month follow-up grid. A realized occurrence wins its cell
    over a planned one.
    """
    page_size = page_size or settings.DEFAULT_PAGE_SIZE
    matrix = MatrixService.build_matrix(db, year, matricule, page, page_size, follow_up=True)
    return {**matrix, "page": page, "page_size": page_size}


@router.get("/{year}/statistics", response_model=FollowUpStatistics)
def get_statistics(year: int, db: Session = Depends(get_db)):
    """
    Completion statistics of a year: planned and realized counts by level
    and by operation, out-of-plan count and completion rate.
    """
    return StatisticsService.get_statistics(db, year)


@router.get("/{year}/monthly-preventive", response_model=MonthlyPreventiveStats)
def get_monthly_preventive_stats(year: int, db: Session = Depends(get_db)):
    """
    Monthly preventive activity from the consolidated log: oil changes,
    greasing, transmission, hydraulic and other operations, plus lubricant
    quantities.
    """
    return StatisticsService.get_monthly_preventive_stats(db, year)
