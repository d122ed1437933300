"""
Matrix Service - reshapes planned / reconciled occurrences into the
equipment x month grid consumed by the planning and follow-up screens.
"""

from sqlalchemy.orm import Session
from typing import Dict, List, Optional
import calendar
import logging

from gmao_planning.catalog import OPERATION_CODES
from gmao_planning.models import Equipment, PlannedIntervention, LEVEL_PRIORITY
from gmao_planning.services.reconciliation_service import (
    ReconciliationService, MatchResult, match_events
)

logger = logging.getLogger(__name__)

MATRIX_HEADERS = ["matricule", "month", *OPERATION_CODES]


def _better(current: MatchResult, candidate: MatchResult) -> bool:
    """Realized beats planned, then higher level, then later date"""
    if candidate.realized != current.realized:
        return candidate.realized
    current_priority = LEVEL_PRIORITY.get(current.level, 0)
    candidate_priority = LEVEL_PRIORITY.get(candidate.level, 0)
    if candidate_priority != current_priority:
        return candidate_priority > current_priority
    return candidate.scheduled_date > current.scheduled_date


def _cell(entry: MatchResult) -> Dict:
    return {
        "scheduled_date": entry.scheduled_date.strftime("%d/%m/%Y"),
        "level": entry.level.value,
        "realized": entry.realized,
        "realized_date": entry.realized_date.strftime("%d/%m/%Y") if entry.realized_date else None,
    }


def matrix_rows(matricules: List[str], entries: List[MatchResult]) -> List[List]:
    """Twelve month rows per matricule, one cell per catalog operation"""
    column = {code: index for index, code in enumerate(OPERATION_CODES)}
    best: Dict[tuple, MatchResult] = {}

    for entry in entries:
        if entry.operation not in column:
            continue
        key = (entry.matricule, entry.scheduled_date.month, entry.operation)
        current = best.get(key)
        if current is None or _better(current, entry):
            best[key] = entry

    rows = []
    for matricule in matricules:
        for month in range(1, 13):
            cells: List[Optional[Dict]] = [None] * len(OPERATION_CODES)
            for code, index in column.items():
                entry = best.get((matricule, month, code))
                if entry is not None:
                    cells[index] = _cell(entry)
            rows.append([matricule, calendar.month_name[month], *cells])
    return rows


class MatrixService:
    """Service class for the planning / follow-up grids"""

    @staticmethod
    def roster_matricules(db: Session, matricule_filter: Optional[str] = None) -> List[str]:
        matricules = [
            m for (m,) in db.query(Equipment.matricule).order_by(Equipment.matricule).all()
            if m and m.strip()
        ]
        if matricule_filter:
            needle = matricule_filter.lower()
            matricules = [m for m in matricules if needle in m.lower()]
        return matricules

    @staticmethod
    def build_matrix(
        db: Session,
        year: int,
        matricule_filter: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
        follow_up: bool = False,
        paginate: bool = True
    ) -> Dict:
        """
        Build one page of the equipment x month grid.

        Args:
            db: Database session
            year: Target year
            matricule_filter: Case-insensitive substring on matricules
            page: 1-based page number (pages are counted in equipment)
            page_size: Equipment per page
            follow_up: Reconcile with history (adds realized and HP entries)
            paginate: False to return every matching equipment

        Returns:
            Dict with headers, rows and total equipment count
        """
        matricules = MatrixService.roster_matricules(db, matricule_filter)
        total = len(matricules)
        if paginate:
            start = (page - 1) * page_size
            matricules = matricules[start:start + page_size]

        if not matricules:
            return {"headers": MATRIX_HEADERS, "rows": [], "total": total}

        if follow_up:
            results, out_of_plan = ReconciliationService.reconcile(db, year, matricules)
            entries = results + out_of_plan
        else:
            planned = db.query(PlannedIntervention).filter(
                PlannedIntervention.year == year,
                PlannedIntervention.matricule.in_(matricules),
            ).order_by(PlannedIntervention.scheduled_date, PlannedIntervention.id).all()
            entries, _ = match_events(planned, [], 0)

        return {
            "headers": MATRIX_HEADERS,
            "rows": matrix_rows(matricules, entries),
            "total": total,
        }
