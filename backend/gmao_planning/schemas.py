"""
Pydantic schemas for request/response validation and serialization.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from gmao_planning.models import MaintenanceLevel, HistorySource


# ==================== HISTORY SCHEMAS ====================

class ConsolidationResponse(BaseModel):
    """History consolidation run result"""
    events_written: int
    by_source: Dict[str, int] = {}
    dropped: Dict[str, int] = {}


class HistoryEventResponse(BaseModel):
    id: int
    matricule: str
    operation: str
    event_date: date
    meter_reading: Optional[float] = None
    source: HistorySource

    model_config = ConfigDict(from_attributes=True)


class HistoryMatrixResponse(BaseModel):
    headers: List[str]
    rows: List[List[Any]]
    counts: Dict[str, int]


# ==================== PLANNING SCHEMAS ====================

class PlannedInterventionResponse(BaseModel):
    id: int
    year: int
    matricule: str
    category: Optional[str] = None
    operation: str
    scheduled_date: date
    interval_days: int
    level: MaintenanceLevel

    model_config = ConfigDict(from_attributes=True)


class PlannedRow(BaseModel):
    """Generated row, before it gets a database id"""
    matricule: str
    category: Optional[str] = None
    operation: str
    scheduled_date: date
    interval_days: int
    level: MaintenanceLevel


class PlanningGenerationResponse(BaseModel):
    year: int
    count: int
    by_level: Dict[str, int] = {}
    rows: List[PlannedRow] = []


class PlanPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: List[PlannedInterventionResponse]


class ClearPlanResponse(BaseModel):
    year: Optional[int] = None
    deleted: int


# ==================== FOLLOW-UP SCHEMAS ====================

class MatchResultResponse(BaseModel):
    id: str
    matricule: str
    operation: str
    scheduled_date: date
    level: MaintenanceLevel
    interval_days: Optional[int] = None
    category: Optional[str] = None
    realized: bool
    realized_date: Optional[date] = None
    out_of_plan: bool


class FollowUpPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: List[MatchResultResponse]


class FollowUpStatistics(BaseModel):
    """Planned vs. realized counters of a year"""
    year: int
    total_planned: int
    total_realized: int
    planned_by_level: Dict[str, int]
    realized_by_level: Dict[str, int]
    planned_by_operation: Dict[str, int]
    realized_by_operation: Dict[str, int]
    out_of_plan: int
    completion_rate: float = Field(..., ge=0, le=1)


class MonthlyPreventiveRow(BaseModel):
    month: int = Field(..., ge=1, le=12)
    month_name: str
    oil_change: int
    greasing: int
    transmission: int
    hydraulic: int
    other: int


class MonthlyPreventiveStats(BaseModel):
    """Consolidated preventive log activity of a year, per month"""
    year: int
    months: List[MonthlyPreventiveRow]
    total_lubricant: float
    lubricant_by_type: Dict[str, float]


class MatrixCell(BaseModel):
    scheduled_date: str
    level: MaintenanceLevel
    realized: bool
    realized_date: Optional[str] = None


class MatrixPage(BaseModel):
    """Equipment x month grid; each row is [matricule, month, *cells]"""
    headers: List[str]
    rows: List[List[Any]]
    total: int
    page: int
    page_size: int


# ==================== ALERT SCHEMAS ====================

class AlertResponse(BaseModel):
    matricule: str
    designation: Optional[str] = None
    operation: str
    due_date: date
    urgency: str
    level: MaintenanceLevel


# ==================== PARAMETER SCHEMAS ====================

class IntervalRuleResponse(BaseModel):
    id: int
    operation: str
    interval_7: Optional[str] = None
    interval_30: Optional[str] = None
    interval_90: Optional[str] = None
    interval_180: Optional[str] = None
    interval_360: Optional[str] = None
    control: bool
    cleaning: bool
    replacement: bool

    model_config = ConfigDict(from_attributes=True)


class IntervalRuleUpdate(BaseModel):
    """Partial update of one rule row; markers accept '*', '**' or empty"""
    interval_7: Optional[str] = Field(None, pattern=r"^(\*{1,2})?$")
    interval_30: Optional[str] = Field(None, pattern=r"^(\*{1,2})?$")
    interval_90: Optional[str] = Field(None, pattern=r"^(\*{1,2})?$")
    interval_180: Optional[str] = Field(None, pattern=r"^(\*{1,2})?$")
    interval_360: Optional[str] = Field(None, pattern=r"^(\*{1,2})?$")
    control: Optional[bool] = None
    cleaning: Optional[bool] = None
    replacement: Optional[bool] = None


class CategoryRuleUpdate(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    operation: str = Field(..., min_length=1)
    is_active: bool


class CategoryRuleResponse(BaseModel):
    category: str
    operation: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ==================== IMPORT SCHEMAS ====================

class ImportResponse(BaseModel):
    """Import operation response"""
    status: str
    message: str
    total_rows: int
    successful_rows: int
    failed_rows: int
    errors: List[str] = []
    duration_seconds: float
    import_log_id: Optional[int] = None


class ImportLogResponse(BaseModel):
    id: int
    filename: str
    import_type: str
    status: str
    total_rows: Optional[int] = 0
    successful_rows: Optional[int] = 0
    failed_rows: Optional[int] = 0
    error_messages: Optional[str] = None
    duration_seconds: Optional[float] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
