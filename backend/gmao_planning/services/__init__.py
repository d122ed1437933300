"""
Services package - Business logic layer.
"""

from gmao_planning.services.history_service import HistoryService
from gmao_planning.services.planning_service import PlanningService
from gmao_planning.services.reconciliation_service import ReconciliationService
from gmao_planning.services.statistics_service import StatisticsService
from gmao_planning.services.matrix_service import MatrixService
from gmao_planning.services.alert_service import AlertService
from gmao_planning.services.import_service import ImportService
from gmao_planning.services.export_service import ExportService

__all__ = [
    "HistoryService",
    "PlanningService",
    "ReconciliationService",
    "StatisticsService",
    "MatrixService",
    "AlertService",
    "ImportService",
    "ExportService",
]
