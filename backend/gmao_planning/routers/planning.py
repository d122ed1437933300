"""
Planning router - yearly preventive plan generation, retrieval and reset.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from gmao_planning.config import settings
from gmao_planning.database import get_db
from gmao_planning.schemas import (
    PlanningGenerationResponse,
    PlanPage,
    MatrixPage,
    ClearPlanResponse
)
from gmao_planning.services.planning_service import PlanningService
from gmao_planning.services.matrix_service import MatrixService
from gmao_planning.services.rule_service import RuleTableError
from gmao_planning.services.store import StaleGenerationError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{year}/generate", response_model=PlanningGenerationResponse)
def generate_planning(
    year: int,
    include_rows: bool = Query(False, description="Return the generated rows"),
    db: Session = Depends(get_db)
):
    """
    Generate the preventive plan of a year.

    **Algorithm:**
    - Each equipment x catalog operation gets the active (interval, level)
      pairs of its category
    - Occurrences are projected from the last realized date (or Jan 1st)
    - Same-day collisions keep the highest level (CH > N > C)

    The previous plan of the year is replaced. Generating twice with the same
    inputs yields the same plan.
    """
    if not 2000 <= year <= 2100:
        raise HTTPException(status_code=400, detail="Year must be between 2000 and 2100")

    try:
        result = PlanningService.generate_planning(db, year)
    except RuleTableError as e:
        logger.warning(f"Planning generation for {year} rejected: {e}")
        raise HTTPException(status_code=422, detail=str(e))
    except StaleGenerationError as e:
        logger.warning(f"Planning generation for {year} aborted: {e}")
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "year": year,
        "count": result["count"],
        "by_level": PlanningService.level_counts(result["rows"]),
        "rows": result["rows"] if include_rows else [],
    }


@router.get("/{year}", response_model=PlanPage)
def get_plan(
    year: int,
    matricule: Optional[str] = Query(None, description="Substring filter on matricule"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """
    Planned interventions of a year, ordered by matricule then date.
    """
    return PlanningService.get_plan(db, year, matricule, skip, limit)


@router.get("/{year}/matrix", response_model=MatrixPage)
def get_plan_matrix(
    year: int,
    matricule: Optional[str] = Query(None, description="Substring filter on matricule"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """
    Equipment x month planning grid, paginated by equipment.

    Each cell shows the most significant occurrence of an operation in the
    month (highest level, then latest date).
    """
    page_size = page_size or settings.DEFAULT_PAGE_SIZE
    matrix = MatrixService.build_matrix(db, year, matricule, page, page_size)
    return {**matrix, "page": page, "page_size": page_size}


@router.delete("/{year}", response_model=ClearPlanResponse)
def clear_plan(year: int, db: Session = Depends(get_db)):
    """
    Delete the plan of one year.
    """
    deleted = PlanningService.clear_plan(db, year)
    return {"year": year, "deleted": deleted}


@router.delete("", response_model=ClearPlanResponse)
def clear_all_plans(db: Session = Depends(get_db)):
    """
    Delete every generated plan.
    """
    deleted = PlanningService.clear_plan(db)
    return {"year": None, "deleted": deleted}
