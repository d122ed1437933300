"""
Alert Service - upcoming and overdue planned interventions.
"""

from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import Dict, List, Optional
import logging

from gmao_planning.models import Equipment, PlannedIntervention

logger = logging.getLogger(__name__)


class AlertService:
    """Service class for preventive maintenance alerts"""

    @staticmethod
    def preventive_alerts(
        db: Session,
        window_days: int,
        today: Optional[date] = None
    ) -> List[Dict]:
        """
        Planned interventions of the current year due within the window.

        Overdue ones are 'urgent', the others 'near'. Reconciliation is not
        applied: an already realized occurrence still shows until the plan
        is regenerated.

        Args:
            db: Database session
            window_days: Days ahead to look
            today: Reference date (defaults to today)

        Returns:
            Alerts sorted by due date
        """
        today = today or date.today()
        end_of_window = today + timedelta(days=window_days)

        rows = db.query(PlannedIntervention, Equipment.designation).outerjoin(
            Equipment, Equipment.matricule == PlannedIntervention.matricule
        ).filter(
            PlannedIntervention.year == today.year,
            PlannedIntervention.scheduled_date <= end_of_window,
        ).order_by(PlannedIntervention.scheduled_date, PlannedIntervention.matricule).all()

        alerts = [
            {
                "matricule": planned.matricule,
                "designation": designation,
                "operation": planned.operation,
                "due_date": planned.scheduled_date,
                "urgency": "urgent" if planned.scheduled_date < today else "near",
                "level": planned.level.value,
            }
            for planned, designation in rows
        ]

        logger.info(f"{len(alerts)} preventive alerts within {window_days} days of {today}")
        return alerts
