"""
Alerts router - upcoming and overdue preventive interventions.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from gmao_planning.config import settings
from gmao_planning.database import get_db
from gmao_planning.schemas import AlertResponse
from gmao_planning.services.alert_service import AlertService

router = APIRouter()


@router.get("", response_model=List[AlertResponse])
def get_alerts(
    days: Optional[int] = Query(None, ge=1, le=365, description="Look-ahead window in days"),
    db: Session = Depends(get_db)
):
    """
    Planned interventions of the current year due within the window.

    **Urgency:**
    - urgent: scheduled date already passed
    - near: due within the window
    """
    return AlertService.preventive_alerts(db, days or settings.DEFAULT_ALERT_WINDOW_DAYS)
