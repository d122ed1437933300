"""
Statistics Service - follow-up counters derived from reconciliation, and
monthly activity of the consolidated preventive log.
"""

from sqlalchemy.orm import Session
from datetime import date
from typing import Dict, List
import logging

from gmao_planning.models import PLANNED_LEVELS, ConsolidatedRecord
from gmao_planning.services.normalizer import parse_french_date, parse_quantity
from gmao_planning.services.reconciliation_service import ReconciliationService, MatchResult

logger = logging.getLogger(__name__)

# Consolidated-log codes counted in their own monthly column, others go to "other"
MONTHLY_CODE_COLUMNS: Dict[str, str] = {
    "VIDANGE,M": "oil_change",
    "GR": "greasing",
    "TRANSMISSION": "transmission",
    "HYDRAULIQUE": "hydraulic",
}


def aggregate(results: List[MatchResult], out_of_plan: List[MatchResult]) -> Dict:
    """
    Reduce reconciliation output to follow-up statistics.

    total_realized counts exactly the planned rows the matcher marked realized.
    """
    stats = {
        "total_planned": len(results),
        "total_realized": 0,
        "planned_by_level": {level.value: 0 for level in PLANNED_LEVELS},
        "realized_by_level": {level.value: 0 for level in PLANNED_LEVELS},
        "planned_by_operation": {},
        "realized_by_operation": {},
        "out_of_plan": len(out_of_plan),
        "completion_rate": 0.0,
    }

    for result in results:
        level = result.level.value
        stats["planned_by_level"][level] = stats["planned_by_level"].get(level, 0) + 1
        stats["planned_by_operation"][result.operation] = (
            stats["planned_by_operation"].get(result.operation, 0) + 1
        )

        if result.realized:
            stats["total_realized"] += 1
            stats["realized_by_level"][level] = stats["realized_by_level"].get(level, 0) + 1
            stats["realized_by_operation"][result.operation] = (
                stats["realized_by_operation"].get(result.operation, 0) + 1
            )

    if stats["total_planned"]:
        stats["completion_rate"] = round(stats["total_realized"] / stats["total_planned"], 4)

    return stats


def monthly_preventive_stats(records: List[ConsolidatedRecord], year: int) -> Dict:
    """
    Count consolidated-log operations per month and sum lubricant quantities.

    Rows with an unparseable date, another year or no code are ignored for the
    counts. Only the grease quantity is kept by the consolidated import, so it
    is the single lubricant type reported.
    """
    months = [
        {
            "month": month,
            "month_name": date(year, month, 1).strftime("%b"),
            **{column: 0 for column in MONTHLY_CODE_COLUMNS.values()},
            "other": 0,
        }
        for month in range(1, 13)
    ]
    lubricant_by_type: Dict[str, float] = {}

    for record in records:
        record_date = parse_french_date(record.date)
        if record_date is None or record_date.year != year:
            continue

        code = (record.operation_code or "").strip().upper()
        if code:
            column = MONTHLY_CODE_COLUMNS.get(code, "other")
            months[record_date.month - 1][column] += 1

        quantity = parse_quantity(record.grease_quantity)
        if quantity > 0:
            lubricant_by_type["grease"] = lubricant_by_type.get("grease", 0.0) + quantity

    return {
        "year": year,
        "months": months,
        "total_lubricant": round(sum(lubricant_by_type.values()), 3),
        "lubricant_by_type": {k: round(v, 3) for k, v in lubricant_by_type.items()},
    }


class StatisticsService:
    """Service class for follow-up statistics"""

    @staticmethod
    def get_statistics(db: Session, year: int) -> Dict:
        """Follow-up statistics of a year, recomputed on every call"""
        results, out_of_plan = ReconciliationService.reconcile(db, year)
        stats = aggregate(results, out_of_plan)
        stats["year"] = year
        return stats

    @staticmethod
    def get_monthly_preventive_stats(db: Session, year: int) -> Dict:
        """
        Monthly preventive activity of a year, read from the consolidated log.

        Args:
            db: Database session
            year: Target calendar year

        Returns:
            Dict with twelve month rows and lubricant totals
        """
        records = db.query(ConsolidatedRecord).order_by(ConsolidatedRecord.id).all()
        stats = monthly_preventive_stats(records, year)
        logger.info(f"Monthly preventive stats for {year} computed from {len(records)} consolidated rows")
        return stats
