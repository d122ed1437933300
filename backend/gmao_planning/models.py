"""
SQLAlchemy ORM models for the preventive maintenance planning engine.
Defines reference data, raw historical sources and the derived stores.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Text, Date, DateTime,
    Enum as SQLEnum, Index, Boolean, UniqueConstraint
)
from sqlalchemy.sql import func
import enum

from gmao_planning.database import Base


# ==================== ENUMS ====================

class MaintenanceLevel(str, enum.Enum):
    """Maintenance depth of a planned occurrence"""
    CONTROL = "C"
    CLEANING = "N"
    REPLACEMENT = "CH"
    OUT_OF_PLAN = "HP"


# Priority used for dedup and display (higher wins)
LEVEL_PRIORITY = {
    MaintenanceLevel.CONTROL: 1,
    MaintenanceLevel.CLEANING: 2,
    MaintenanceLevel.REPLACEMENT: 3,
    MaintenanceLevel.OUT_OF_PLAN: 4,
}

PLANNED_LEVELS = (
    MaintenanceLevel.CONTROL,
    MaintenanceLevel.CLEANING,
    MaintenanceLevel.REPLACEMENT,
)


class HistorySource(str, enum.Enum):
    """Raw source a history event was consolidated from"""
    CURATIVE = "curative"
    OIL_CHANGE = "oil_change"
    CONSOLIDATED = "consolidated"


# ==================== REFERENCE DATA ====================

class Equipment(Base):
    """
    Equipment roster entry.
    Identified by its registration code (matricule); the category scopes rules.
    """
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String(50), unique=True, nullable=False, index=True)
    category = Column(String(100), index=True)  # Free-text classification
    designation = Column(String(200))
    brand = Column(String(100))
    acquisition_date = Column(Date)
    meter_reading = Column(Float)  # Current km / hours
    status = Column(String(20), default="actif")

    created_at = Column(DateTime, default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Equipment(id={self.id}, matricule='{self.matricule}', category='{self.category}')>"


class IntervalRule(Base):
    """
    Interval/level rule for one operation.
    Marker columns hold '*' or '**' when the interval is active.
    """
    __tablename__ = "interval_rules"

    id = Column(Integer, primary_key=True, index=True)
    operation = Column(String(200), nullable=False)  # Operation name as written in the table

    interval_7 = Column(String(5))
    interval_30 = Column(String(5))
    interval_90 = Column(String(5))
    interval_180 = Column(String(5))
    interval_360 = Column(String(5))

    control = Column(Boolean, default=False, nullable=False)      # Level C
    cleaning = Column(Boolean, default=False, nullable=False)     # Level N
    replacement = Column(Boolean, default=False, nullable=False)  # Level CH

    def marker_for(self, interval: int):
        return getattr(self, f"interval_{interval}")

    def __repr__(self):
        return f"<IntervalRule(id={self.id}, operation='{self.operation}')>"


class CategoryRule(Base):
    """
    Per-category inclusion flag for an operation.
    A missing row means the operation is active for the category.
    """
    __tablename__ = "category_rules"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String(100), nullable=False, index=True)
    operation = Column(String(50), nullable=False)  # Catalog code
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('category', 'operation', name='uq_category_operation'),
    )

    def __repr__(self):
        return f"<CategoryRule(category='{self.category}', operation='{self.operation}', active={self.is_active})>"


# ==================== RAW HISTORICAL SOURCES ====================
# Dates stay as imported text; consolidation parses and filters them.

class CurativeRecord(Base):
    """Curative maintenance log row (breakdown follow-up)"""
    __tablename__ = "curative_records"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String(50), index=True)
    entry_date = Column(String(30))  # Date d'entrée
    exit_date = Column(String(30))  # Date de sortie, may read "en cours"
    fault_description = Column(Text)  # Panne déclarée
    fault_type = Column(String(100))
    parts = Column(Text)  # Pièces remplacées, hyphen separated
    technician = Column(String(200))
    assignment = Column(String(200))
    current_status = Column(String(200))

    def __repr__(self):
        return f"<CurativeRecord(id={self.id}, matricule='{self.matricule}', entry='{self.entry_date}')>"


class OilChangeRecord(Base):
    """Oil-change log row"""
    __tablename__ = "oil_change_records"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String(50), index=True)
    date = Column(String(30))
    meter = Column(String(50))  # Compteur km/h
    oil_filter = Column(String(5))  # FH
    fuel_filter = Column(String(5))  # FG
    air_filter = Column(String(5))  # FAIR
    hydraulic_filter = Column(String(5))  # FHYD
    observation = Column(Text)

    def __repr__(self):
        return f"<OilChangeRecord(id={self.id}, matricule='{self.matricule}', date='{self.date}')>"


class ConsolidatedRecord(Base):
    """Consolidated preventive log row (coded operations, lubricant quantities)"""
    __tablename__ = "consolidated_records"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String(50), index=True)
    date = Column(String(30))
    operation_code = Column(String(100))
    observation = Column(Text)
    grease_quantity = Column(String(20))

    def __repr__(self):
        return f"<ConsolidatedRecord(id={self.id}, matricule='{self.matricule}', code='{self.operation_code}')>"


# ==================== DERIVED STORES ====================

class HistoryEvent(Base):
    """
    Normalized maintenance event.
    Rebuilt in full by every consolidation run.
    """
    __tablename__ = "history_events"

    id = Column(Integer, primary_key=True, index=True)
    matricule = Column(String(50), nullable=False, index=True)
    operation = Column(String(50), nullable=False)  # Catalog code
    event_date = Column(Date, nullable=False, index=True)
    meter_reading = Column(Float)
    source = Column(SQLEnum(HistorySource), nullable=False)

    __table_args__ = (
        Index('idx_history_matricule_operation', 'matricule', 'operation'),
    )

    def __repr__(self):
        return f"<HistoryEvent(matricule='{self.matricule}', operation='{self.operation}', date='{self.event_date}')>"


class PlannedIntervention(Base):
    """
    Projected preventive occurrence for a year.
    Rebuilt in full per year by the planning generator.
    """
    __tablename__ = "planned_interventions"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False, index=True)
    matricule = Column(String(50), nullable=False, index=True)
    category = Column(String(100))  # Snapshot at generation time
    operation = Column(String(50), nullable=False)  # Catalog code
    scheduled_date = Column(Date, nullable=False, index=True)
    interval_days = Column(Integer, nullable=False)
    level = Column(SQLEnum(MaintenanceLevel), nullable=False)

    __table_args__ = (
        UniqueConstraint('year', 'matricule', 'operation', 'scheduled_date', name='uq_planned_occurrence'),
        Index('idx_planned_year_matricule', 'year', 'matricule'),
    )

    def __repr__(self):
        return (
            f"<PlannedIntervention(year={self.year}, matricule='{self.matricule}', "
            f"operation='{self.operation}', date='{self.scheduled_date}', level='{self.level}')>"
        )


# ==================== AUDIT ====================

class ImportLog(Base):
    """
    Import history and audit log for CSV imports.
    Tracks successful and failed imports with detailed messages.
    """
    __tablename__ = "import_logs"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(200), nullable=False)
    import_type = Column(String(50), nullable=False, index=True)  # equipment, interval_rules, curative...
    status = Column(String(20), nullable=False)  # success, failed, partial

    # Statistics
    total_rows = Column(Integer, default=0)
    successful_rows = Column(Integer, default=0)
    failed_rows = Column(Integer, default=0)

    # Details
    error_messages = Column(Text)
    duration_seconds = Column(Float)

    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ImportLog(id={self.id}, type='{self.import_type}', status='{self.status}')>"
