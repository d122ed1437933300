"""
Planning engine configuration.
Centralized settings read from the environment.
"""

import os
from pydantic_settings import BaseSettings


class PlanningSettings(BaseSettings):
    """Planning engine settings"""

    # ==================== Database ====================

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gmao_planning.db")

    # ==================== Reconciliation ====================

    # Maximum gap (days) between a realized event and a planned date
    MATCH_TOLERANCE_DAYS: int = int(os.getenv("MATCH_TOLERANCE_DAYS", "30"))

    # ==================== Presentation ====================

    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    DEFAULT_ALERT_WINDOW_DAYS: int = int(os.getenv("DEFAULT_ALERT_WINDOW_DAYS", "15"))

    # ==================== Import ====================

    MAX_UPLOAD_SIZE_MB: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
    CSV_SEPARATOR: str = os.getenv("CSV_SEPARATOR", ";")

    # ==================== Logging ====================

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = PlanningSettings()
