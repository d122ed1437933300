"""
Import Service - loads the equipment roster, the rule tables and the three
raw historical sources from CSV exports.
Provides encoding detection, header normalization and import logging.
"""

from sqlalchemy import delete
from sqlalchemy.orm import Session
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Dict, List, Optional
import pandas as pd
import chardet
import io
import logging
import re
import unicodedata

from gmao_planning.catalog import OPERATION_CODES, DEFAULT_CATEGORY_EXCLUSIONS
from gmao_planning.config import settings
from gmao_planning.models import (
    Equipment, IntervalRule, CategoryRule, CurativeRecord, OilChangeRecord,
    ConsolidatedRecord, ImportLog, MaintenanceLevel
)
from gmao_planning.services.normalizer import (
    parse_french_date, parse_quantity, resolve_operation, category_key
)
from gmao_planning.services.rule_service import RuleTableSchema
from gmao_planning.services.store import invalidate_plans, planning_lock

logger = logging.getLogger(__name__)

_HEADER_SPACES = re.compile(r"\s+")
_HEADER_PUNCTUATION = re.compile(r"[.\"(),/]")

FALSE_VALUES = {"0", "false", "non", "no", "n", "inactive", "inactif"}


def normalize_header(header) -> str:
    """'Compteur (Km/h)' -> 'compteur_kmh', 'Date entrée' -> 'date_entree'"""
    decomposed = unicodedata.normalize("NFD", str(header).strip())
    text = "".join(c for c in decomposed if not unicodedata.combining(c))
    text = _HEADER_SPACES.sub("_", text)
    return _HEADER_PUNCTUATION.sub("", text).lower()


def value(row: Dict, *keys):
    """First non-missing value among alternative column names"""
    for key in keys:
        cell = row.get(key)
        if cell is None:
            continue
        cell = str(cell).strip()
        if cell:
            return cell
    return None


class ImportService:
    """Service class for CSV import operations"""

    @staticmethod
    def detect_encoding(file_content: bytes) -> str:
        """
        Detect file encoding using chardet

        Args:
            file_content: Raw file bytes

        Returns:
            Detected encoding string
        """
        result = chardet.detect(file_content)
        encoding = result['encoding']
        confidence = result['confidence'] or 0

        logger.info(f"Detected encoding: {encoding} (confidence: {confidence})")

        # Fallback to common encodings if confidence is low
        if confidence < 0.7:
            for fallback in ['utf-8', 'windows-1252', 'latin-1']:
                try:
                    file_content.decode(fallback)
                    encoding = fallback
                    logger.info(f"Using fallback encoding: {encoding}")
                    break
                except UnicodeDecodeError:
                    continue

        return encoding or 'utf-8'

    @staticmethod
    def read_csv(file_content: bytes, normalize_headers: bool = True) -> pd.DataFrame:
        """Read a CSV export as text columns, blank cells as ''"""
        encoding = ImportService.detect_encoding(file_content)
        df = pd.read_csv(
            io.BytesIO(file_content),
            encoding=encoding,
            sep=settings.CSV_SEPARATOR or None,
            engine='python',
            dtype=str,
            keep_default_na=False,
        )
        if normalize_headers:
            df.columns = [normalize_header(c) for c in df.columns]
        else:
            df.columns = [str(c).strip() for c in df.columns]
        return df

    @staticmethod
    def _run_import(
        db: Session,
        file_content: bytes,
        filename: str,
        import_type: str,
        build: Callable[[pd.DataFrame, List[str]], List],
        model,
        normalize_headers: bool = True,
        after: Optional[Callable[[Session], None]] = None,
        clears_plans: bool = False
    ) -> Dict:
        """
        Replace a table with the rows of a CSV file.

        The build callback turns the frame into ORM rows and records row-level
        errors; the table swap is a single transaction. With clears_plans, the
        swap also deletes every generated plan and commits under the planning lock.
        """
        start_time = datetime.now()
        errors: List[str] = []

        try:
            df = ImportService.read_csv(file_content, normalize_headers)
            total_rows = len(df)
            logger.info(f"Processing {total_rows} rows from {import_type} file '{filename}'")

            rows = build(df, errors)

            with planning_lock() if clears_plans else nullcontext():
                db.execute(delete(model))
                db.add_all(rows)
                if after is not None:
                    after(db)
                if clears_plans:
                    invalidate_plans(db)
                db.commit()

            successful_rows = len(rows)
            failed_rows = total_rows - successful_rows
            status = "success" if failed_rows == 0 else "partial"
            duration = (datetime.now() - start_time).total_seconds()

            import_log = ImportLog(
                filename=filename,
                import_type=import_type,
                status=status,
                total_rows=total_rows,
                successful_rows=successful_rows,
                failed_rows=failed_rows,
                error_messages='\n'.join(errors) if errors else None,
                duration_seconds=duration
            )
            db.add(import_log)
            db.commit()

            if failed_rows:
                logger.warning(f"{import_type} import skipped {failed_rows} rows")

            return {
                "status": status,
                "message": f"Imported {successful_rows}/{total_rows} {import_type} rows",
                "total_rows": total_rows,
                "successful_rows": successful_rows,
                "failed_rows": failed_rows,
                "errors": errors[:10],  # Return first 10 errors
                "duration_seconds": duration,
                "import_log_id": import_log.id
            }

        except Exception as e:
            db.rollback()
            logger.error(f"{import_type} import failed: {e}", exc_info=True)

            duration = (datetime.now() - start_time).total_seconds()
            db.add(ImportLog(
                filename=filename,
                import_type=import_type,
                status='failed',
                error_messages=str(e),
                duration_seconds=duration
            ))
            db.commit()
            raise

    # ==================== REFERENCE DATA ====================

    @staticmethod
    def import_equipment_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import the equipment roster.

        Expected columns: matricule *required*, categorie, designation,
        marque, date_achat, km_heures_actuel, statut.
        Category rules are seeded for categories that have none.
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[Equipment]:
            rows, seen = [], set()
            for idx, row in enumerate(df.to_dict('records')):
                matricule = value(row, 'matricule')
                if not matricule:
                    errors.append(f"Row {idx + 2}: Missing matricule")
                    continue
                if matricule in seen:
                    errors.append(f"Row {idx + 2}: Duplicate matricule '{matricule}'")
                    continue
                seen.add(matricule)

                meter = value(row, 'kmheures_actuel', 'km_heures_actuel', 'compteur')
                rows.append(Equipment(
                    matricule=matricule,
                    category=value(row, 'categorie', 'category'),
                    designation=value(row, 'designation'),
                    brand=value(row, 'marque', 'brand'),
                    acquisition_date=parse_french_date(value(row, 'date_achat', 'acquisition_date')),
                    meter_reading=parse_quantity(meter) if meter else None,
                    status=value(row, 'statut', 'status') or 'actif',
                ))
            return rows

        return ImportService._run_import(
            db, file_content, filename, 'equipment', build, Equipment,
            after=ImportService.seed_category_rules
        )

    @staticmethod
    def import_interval_rules_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import the interval/level rule table.

        Columns are discovered once from the header text (see
        RuleTableSchema.discover). Existing plans are cleared.

        Raises:
            RuleTableError: if the operation column cannot be identified
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[IntervalRule]:
            schema = RuleTableSchema.discover(df.columns)
            rows = []
            for idx, row in enumerate(df.to_dict('records')):
                operation = value(row, schema.operation_column)
                if not operation:
                    errors.append(f"Row {idx + 2}: Missing operation name")
                    continue
                if resolve_operation(operation) is None:
                    errors.append(f"Row {idx + 2}: Unknown operation '{operation}'")

                rule = IntervalRule(operation=operation)
                for days, column in schema.interval_columns.items():
                    setattr(rule, f"interval_{days}", value(row, column))
                rule.control = bool(value(row, schema.level_columns.get(MaintenanceLevel.CONTROL, '')))
                rule.cleaning = bool(value(row, schema.level_columns.get(MaintenanceLevel.CLEANING, '')))
                rule.replacement = bool(value(row, schema.level_columns.get(MaintenanceLevel.REPLACEMENT, '')))
                rows.append(rule)
            return rows

        return ImportService._run_import(
            db, file_content, filename, 'interval_rules', build, IntervalRule,
            normalize_headers=False, clears_plans=True
        )

    @staticmethod
    def import_category_rules_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import per-category inclusion rules.

        Expected columns: category/categorie, entretien/operation, is_active/actif.
        Existing plans are cleared.
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[CategoryRule]:
            rows, seen = [], set()
            for idx, row in enumerate(df.to_dict('records')):
                category = value(row, 'category', 'categorie')
                operation = resolve_operation(value(row, 'entretien', 'operation'))
                if not category or operation is None:
                    errors.append(f"Row {idx + 2}: Missing category or unknown operation")
                    continue
                if (category, operation) in seen:
                    errors.append(f"Row {idx + 2}: Duplicate rule for '{category}' / '{operation}'")
                    continue
                seen.add((category, operation))

                flag = (value(row, 'is_active', 'actif') or "1").lower()
                rows.append(CategoryRule(
                    category=category,
                    operation=operation,
                    is_active=flag not in FALSE_VALUES,
                ))
            return rows

        return ImportService._run_import(
            db, file_content, filename, 'category_rules', build, CategoryRule,
            clears_plans=True
        )

    # ==================== RAW HISTORICAL SOURCES ====================

    @staticmethod
    def import_curative_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import the curative maintenance log.

        Expected columns: matricule, date_entree, date_sortie, panne_declaree,
        type_de_panne, pieces, intervenant, affectation, sitactuelle.
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[CurativeRecord]:
            return [
                CurativeRecord(
                    matricule=value(row, 'matricule'),
                    entry_date=value(row, 'date_entree'),
                    exit_date=value(row, 'date_sortie'),
                    fault_description=value(row, 'panne_declaree'),
                    fault_type=value(row, 'type_de_panne'),
                    parts=value(row, 'pieces'),
                    technician=value(row, 'intervenant'),
                    assignment=value(row, 'affectation'),
                    current_status=value(row, 'sitactuelle'),
                )
                for row in df.to_dict('records')
            ]

        return ImportService._run_import(db, file_content, filename, 'curative', build, CurativeRecord)

    @staticmethod
    def import_oil_change_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import the oil-change log.

        Expected columns: matricule, date/date_entretien, compteur_kmh,
        fh, fg, fair, fhyd (markers), obs.
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[OilChangeRecord]:
            return [
                OilChangeRecord(
                    matricule=value(row, 'matricule'),
                    date=value(row, 'date', 'date_entretien'),
                    meter=value(row, 'compteur_kmh', 'compteur_km_h'),
                    oil_filter=value(row, 'fh', 'f_h'),
                    fuel_filter=value(row, 'fg', 'f_g'),
                    air_filter=value(row, 'fair', 'f_air'),
                    hydraulic_filter=value(row, 'fhyd', 'f_hyd'),
                    observation=value(row, 'obs'),
                )
                for row in df.to_dict('records')
            ]

        return ImportService._run_import(db, file_content, filename, 'oil_change', build, OilChangeRecord)

    @staticmethod
    def import_consolidated_csv(db: Session, file_content: bytes, filename: str) -> Dict:
        """
        Import the consolidated preventive log.

        Expected columns: matricule, date, entretien (code), obs, graisse.
        """
        def build(df: pd.DataFrame, errors: List[str]) -> List[ConsolidatedRecord]:
            return [
                ConsolidatedRecord(
                    matricule=value(row, 'matricule'),
                    date=value(row, 'date'),
                    operation_code=value(row, 'entretien'),
                    observation=value(row, 'obs'),
                    grease_quantity=value(row, 'graisse'),
                )
                for row in df.to_dict('records')
            ]

        return ImportService._run_import(
            db, file_content, filename, 'consolidated', build, ConsolidatedRecord
        )

    # ==================== HELPERS ====================

    @staticmethod
    def seed_category_rules(db: Session) -> int:
        """
        Create category rules for roster categories that have none yet.

        Categories are compared on their normalized key, so 'GEG' and 'geg '
        share one rule set. Known categories get their default exclusions as
        inactive rows, every other operation is written active.
        """
        db.flush()
        existing = {category_key(c) for (c,) in db.query(CategoryRule.category).distinct().all()}

        # One spelling per new key, the first in sort order
        categories: Dict[str, str] = {}
        for (category,) in db.query(Equipment.category).distinct().order_by(Equipment.category).all():
            key = category_key(category)
            if key and key not in existing:
                categories.setdefault(key, category.strip())

        created = 0
        for key, category in sorted(categories.items()):
            exclusions = DEFAULT_CATEGORY_EXCLUSIONS.get(key, frozenset())
            for operation in OPERATION_CODES:
                db.add(CategoryRule(
                    category=category,
                    operation=operation,
                    is_active=operation not in exclusions,
                ))
                created += 1

        if created:
            logger.info(f"Seeded {created} category rules for {len(categories)} categories")
        return created
