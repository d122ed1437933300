"""
Reconciliation Service - matches realized history events to planned
interventions of a year and collects the out-of-plan events.

Matching is greedy: each realized event, in store order, takes the nearest
still-free planned occurrence of the same equipment and operation within
the tolerance window. It is not a globally optimal assignment.
"""

from dataclasses import dataclass, asdict
from sqlalchemy.orm import Session
from datetime import date
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from gmao_planning.config import settings
from gmao_planning.models import (
    PlannedIntervention, HistoryEvent, MaintenanceLevel
)
from gmao_planning.services.normalizer import normalize

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Planned (or out-of-plan) occurrence with its realization status"""
    id: str
    matricule: str
    operation: str
    scheduled_date: date
    level: MaintenanceLevel
    interval_days: Optional[int] = None
    category: Optional[str] = None
    realized: bool = False
    realized_date: Optional[date] = None

    @property
    def out_of_plan(self) -> bool:
        return self.level == MaintenanceLevel.OUT_OF_PLAN

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["level"] = self.level.value
        data["out_of_plan"] = self.out_of_plan
        return data


def _key(matricule, operation) -> Tuple[str, str]:
    return normalize(matricule), normalize(operation)


def match_events(
    planned: Iterable[PlannedIntervention],
    realized: Iterable[HistoryEvent],
    tolerance_days: int
) -> Tuple[List[MatchResult], List[MatchResult]]:
    """
    Greedy nearest matching of realized events to planned occurrences.

    Args:
        planned: Planned interventions, in plan order
        realized: Realized events, in arrival order
        tolerance_days: Maximum absolute day gap for a match

    Returns:
        (match results for every planned row, out-of-plan occurrences)
    """
    results: List[MatchResult] = []
    free_by_key: Dict[Tuple[str, str], List[MatchResult]] = defaultdict(list)

    for plan in planned:
        result = MatchResult(
            id=str(plan.id),
            matricule=plan.matricule,
            operation=plan.operation,
            scheduled_date=plan.scheduled_date,
            level=plan.level,
            interval_days=plan.interval_days,
            category=plan.category,
        )
        results.append(result)
        free_by_key[_key(plan.matricule, plan.operation)].append(result)

    out_of_plan: List[MatchResult] = []

    for event in realized:
        candidates = free_by_key.get(_key(event.matricule, event.operation), [])

        best: Optional[MatchResult] = None
        best_diff = None
        for candidate in candidates:
            diff = abs((event.event_date - candidate.scheduled_date).days)
            if diff > tolerance_days:
                continue
            # Strict comparison keeps the first candidate on ties
            if best is None or diff < best_diff:
                best, best_diff = candidate, diff

        if best is not None:
            best.realized = True
            best.realized_date = event.event_date
            candidates.remove(best)
            continue

        out_of_plan.append(MatchResult(
            id=f"hp-{event.id}",
            matricule=event.matricule,
            operation=event.operation,
            scheduled_date=event.event_date,
            level=MaintenanceLevel.OUT_OF_PLAN,
            realized=True,
            realized_date=event.event_date,
        ))

    return results, out_of_plan


class ReconciliationService:
    """Service class for plan vs. history reconciliation"""

    @staticmethod
    def reconcile(
        db: Session,
        year: int,
        matricules: Optional[List[str]] = None,
        tolerance_days: Optional[int] = None
    ) -> Tuple[List[MatchResult], List[MatchResult]]:
        """
        Reconcile the plan of a year with the events realized that year.

        Args:
            db: Database session
            year: Target year
            matricules: Restrict to these equipment (None for all)
            tolerance_days: Override of MATCH_TOLERANCE_DAYS

        Returns:
            (match results, out-of-plan occurrences)
        """
        if tolerance_days is None:
            tolerance_days = settings.MATCH_TOLERANCE_DAYS

        plan_query = db.query(PlannedIntervention).filter(PlannedIntervention.year == year)
        event_query = db.query(HistoryEvent).filter(
            HistoryEvent.event_date >= date(year, 1, 1),
            HistoryEvent.event_date <= date(year, 12, 31),
        )
        if matricules is not None:
            plan_query = plan_query.filter(PlannedIntervention.matricule.in_(matricules))
            event_query = event_query.filter(HistoryEvent.matricule.in_(matricules))

        planned = plan_query.order_by(
            PlannedIntervention.scheduled_date, PlannedIntervention.id
        ).all()
        realized = event_query.order_by(HistoryEvent.id).all()

        results, out_of_plan = match_events(planned, realized, tolerance_days)

        logger.info(
            f"Reconciled {year}: {len(planned)} planned, "
            f"{sum(1 for r in results if r.realized)} realized, {len(out_of_plan)} out of plan"
        )
        return results, out_of_plan

    @staticmethod
    def get_follow_up(
        db: Session,
        year: int,
        matricule_filter: Optional[str] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Dict:
        """Paginated match results (planned then out-of-plan) of a year"""
        matricules = None
        if matricule_filter:
            matricules = [
                m for (m,) in db.query(PlannedIntervention.matricule).distinct().all()
                if matricule_filter.lower() in m.lower()
            ]
            matricules += [
                m for (m,) in db.query(HistoryEvent.matricule).distinct().all()
                if matricule_filter.lower() in m.lower() and m not in matricules
            ]

        results, out_of_plan = ReconciliationService.reconcile(db, year, matricules)
        items = sorted(
            results + out_of_plan,
            key=lambda r: (r.matricule, r.scheduled_date, r.out_of_plan)
        )
        return {
            "total": len(items),
            "skip": skip,
            "limit": limit,
            "items": [r.to_dict() for r in items[skip:skip + limit]],
        }
