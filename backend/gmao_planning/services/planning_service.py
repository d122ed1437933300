"""
Planning Service - projects a year of preventive interventions per
equipment from the interval rules, anchored on the last known history date.
"""

from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple
import logging

from gmao_planning.catalog import OPERATION_CODES
from gmao_planning.models import (
    Equipment, PlannedIntervention, MaintenanceLevel, LEVEL_PRIORITY
)
from gmao_planning.services.history_service import HistoryService
from gmao_planning.services.normalizer import normalize
from gmao_planning.services.rule_service import RuleResolver
from gmao_planning.services.store import GenerationStore, planning_scope

logger = logging.getLogger(__name__)


def project_dates(anchor: date, interval: int, year: int) -> List[date]:
    """
    Occurrences anchor + k*interval (k >= 1) falling inside the year.
    The anchor itself is the last service, never a new occurrence.
    """
    start_of_year = date(year, 1, 1)
    end_of_year = date(year, 12, 31)
    step = timedelta(days=interval)

    current = anchor + step
    if current < start_of_year:
        # Jump whole intervals instead of looping over old years
        missed = (start_of_year - current).days // interval
        current += step * missed
        while current < start_of_year:
            current += step

    dates = []
    while current <= end_of_year:
        dates.append(current)
        current += step
    return dates


def deduplicate(candidates: List[Dict]) -> List[Dict]:
    """
    Keep one candidate per (matricule, operation, date), the highest level.
    Equal levels keep the earliest generated candidate.
    """
    kept: Dict[Tuple[str, str, date], Dict] = {}
    for candidate in candidates:
        key = (candidate["matricule"], candidate["operation"], candidate["scheduled_date"])
        current = kept.get(key)
        if current is None or LEVEL_PRIORITY[candidate["level"]] > LEVEL_PRIORITY[current["level"]]:
            kept[key] = candidate
    return list(kept.values())


class PlanningService:
    """Service class for yearly planning generation and retrieval"""

    @staticmethod
    def build_candidates(
        equipment: List[Equipment],
        resolver: RuleResolver,
        last_dates: Dict[tuple, date],
        year: int
    ) -> List[Dict]:
        candidates = []
        start_of_year = date(year, 1, 1)

        for engin in equipment:
            matricule = (engin.matricule or "").strip()
            if not matricule:
                continue

            for operation in OPERATION_CODES:
                pairs = resolver.active_rules(engin.category, operation)
                if not pairs:
                    continue

                anchor = last_dates.get((normalize(matricule), normalize(operation)), start_of_year)

                for interval, level in pairs:
                    for scheduled in project_dates(anchor, interval, year):
                        candidates.append({
                            "matricule": matricule,
                            "category": engin.category,
                            "operation": operation,
                            "scheduled_date": scheduled,
                            "interval_days": interval,
                            "level": level,
                        })
        return candidates

    @staticmethod
    def generate_planning(db: Session, year: int) -> Dict:
        """
        Generate and persist the full plan of a year.

        Any previous plan for the year is replaced atomically. Rules, roster
        and history are read under the year's planning lock, so a concurrent
        rule edit either lands before the read or clears the stored plan after it.

        Args:
            db: Database session
            year: Target calendar year

        Returns:
            Dict with count and generated rows

        Raises:
            RuleTableError: if the interval rule table is structurally unusable
            StaleGenerationError: if plans kept being reset during generation
        """
        built: Dict = {}

        def build() -> List[PlannedIntervention]:
            resolver = RuleResolver.load(db)
            try:
                resolver.validate()
            except ValueError as e:
                logger.error(f"CRITICAL: {e}")
                raise

            equipment = db.query(Equipment).order_by(Equipment.matricule).all()
            last_dates = HistoryService.last_dates(db)

            candidates = PlanningService.build_candidates(equipment, resolver, last_dates, year)
            rows = deduplicate(candidates)
            rows.sort(key=lambda r: (r["matricule"], r["scheduled_date"], r["operation"]))

            built["candidates"] = len(candidates)
            built["rows"] = rows
            return [PlannedIntervention(year=year, **row) for row in rows]

        written = GenerationStore(db).regenerate(planning_scope(year), build)

        logger.info(
            f"Planning generated for {year}: {written} interventions "
            f"({built['candidates'] - written} same-day collisions merged)"
        )
        return {"year": year, "count": written, "rows": built["rows"]}

    @staticmethod
    def plan_query(db: Session, year: int, matricule_filter: Optional[str] = None):
        query = db.query(PlannedIntervention).filter(PlannedIntervention.year == year)
        if matricule_filter:
            query = query.filter(PlannedIntervention.matricule.ilike(f"%{matricule_filter}%"))
        return query.order_by(
            PlannedIntervention.matricule,
            PlannedIntervention.scheduled_date,
            PlannedIntervention.id
        )

    @staticmethod
    def get_plan(
        db: Session,
        year: int,
        matricule_filter: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Dict:
        """Paginated planned interventions of a year"""
        query = PlanningService.plan_query(db, year, matricule_filter)
        return {
            "total": query.count(),
            "skip": skip,
            "limit": limit,
            "items": query.offset(skip).limit(limit).all(),
        }

    @staticmethod
    def clear_plan(db: Session, year: Optional[int] = None) -> int:
        """
        Drop a generated plan (one year or all).
        Called whenever reference rules change, the plan is stale until regenerated.
        """
        return GenerationStore(db).clear_plans(year)

    @staticmethod
    def level_counts(rows: List[Dict]) -> Dict[str, int]:
        counts = {level.value: 0 for level in MaintenanceLevel if level != MaintenanceLevel.OUT_OF_PLAN}
        for row in rows:
            counts[row["level"].value] += 1
        return counts
