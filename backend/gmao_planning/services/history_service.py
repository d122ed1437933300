"""
History Consolidation Service - merges the curative log, the oil-change log
and the consolidated log into one normalized event log.
"""

from sqlalchemy.orm import Session
from collections import Counter, defaultdict
from datetime import date
from typing import Dict, List, Optional
import logging

from gmao_planning.catalog import (
    OPERATION_CODES, CONSOLIDATED_CODE_MAPPING, GREASING_CODE,
    OIL_CHANGE_FILTERS, CURATIVE_PREFIXES
)
from gmao_planning.models import (
    Equipment, CurativeRecord, OilChangeRecord, ConsolidatedRecord,
    HistoryEvent, HistorySource
)
from gmao_planning.services.normalizer import (
    normalize, match_operation, extract_meter_reading, parse_french_date,
    is_marker, parse_quantity
)
from gmao_planning.services.store import GenerationStore, HISTORY_SCOPE

logger = logging.getLogger(__name__)


def split_curative_parts(parts: Optional[str]) -> List[str]:
    """
    Split a curative "parts" field into fragments.

    "remplacement de filtre a huile - bougie" -> ["filtre a huile", "bougie"]
    """
    if not parts:
        return []
    text = str(parts).lower().strip()
    for prefix in CURATIVE_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):]
            break
    return [fragment.strip() for fragment in text.split('-') if fragment.strip()]


class HistoryService:
    """Service class for history consolidation and history read models"""

    @staticmethod
    def _roster(db: Session) -> Dict[str, str]:
        """Normalized matricule -> roster matricule"""
        return {
            normalize(matricule): matricule
            for (matricule,) in db.query(Equipment.matricule).all()
            if matricule
        }

    @staticmethod
    def _resolve_row(
        roster: Dict[str, str],
        matricule,
        raw_date,
        dropped: Counter
    ):
        """Common row gate: matricule present and known, date parseable"""
        matricule = str(matricule).strip() if matricule is not None else ""
        if not matricule:
            dropped["missing_matricule"] += 1
            return None, None

        event_date = parse_french_date(raw_date)
        if event_date is None:
            dropped["invalid_date"] += 1
            return None, None

        known = roster.get(normalize(matricule))
        if known is None:
            dropped["unknown_equipment"] += 1
            return None, None

        return known, event_date

    @staticmethod
    def events_from_curative(
        rows: List[CurativeRecord],
        roster: Dict[str, str],
        dropped: Counter
    ) -> List[HistoryEvent]:
        events = []
        for row in rows:
            matricule, event_date = HistoryService._resolve_row(
                roster, row.matricule, row.entry_date, dropped
            )
            if matricule is None:
                continue

            fragments = split_curative_parts(row.parts)
            if not fragments:
                dropped["no_parts"] += 1
                continue

            reading = extract_meter_reading(row.fault_description)
            for fragment in fragments:
                code = match_operation(fragment)
                if code is None:
                    dropped["unmatched_operation"] += 1
                    continue
                events.append(HistoryEvent(
                    matricule=matricule,
                    operation=code,
                    event_date=event_date,
                    meter_reading=reading,
                    source=HistorySource.CURATIVE,
                ))
        return events

    @staticmethod
    def events_from_oil_changes(
        rows: List[OilChangeRecord],
        roster: Dict[str, str],
        dropped: Counter
    ) -> List[HistoryEvent]:
        events = []
        for row in rows:
            matricule, event_date = HistoryService._resolve_row(
                roster, row.matricule, row.date, dropped
            )
            if matricule is None:
                continue

            reading = extract_meter_reading(row.meter)
            observation = (row.observation or "").upper()

            codes = ["change-engine-oil"]
            # Flag column OR observation keyword, either one is enough
            for flag_column, keyword, code in OIL_CHANGE_FILTERS:
                flagged = flag_column is not None and is_marker(getattr(row, flag_column))
                if flagged or keyword in observation:
                    codes.append(code)

            for code in codes:
                events.append(HistoryEvent(
                    matricule=matricule,
                    operation=code,
                    event_date=event_date,
                    meter_reading=reading,
                    source=HistorySource.OIL_CHANGE,
                ))
        return events

    @staticmethod
    def events_from_consolidated(
        rows: List[ConsolidatedRecord],
        roster: Dict[str, str],
        dropped: Counter
    ) -> List[HistoryEvent]:
        events = []
        for row in rows:
            matricule, event_date = HistoryService._resolve_row(
                roster, row.matricule, row.date, dropped
            )
            if matricule is None:
                continue

            operation_code = (row.operation_code or "").strip().upper()
            observation = (row.observation or "").strip()
            reading = extract_meter_reading(observation)

            code = CONSOLIDATED_CODE_MAPPING.get(operation_code)
            if code is not None:
                if operation_code == GREASING_CODE and parse_quantity(row.grease_quantity) <= 0:
                    dropped["greasing_without_quantity"] += 1
                    continue
            else:
                combined = f"{operation_code} {observation}".strip()
                code = match_operation(combined) if combined else None
                if code is None:
                    dropped["unmatched_operation"] += 1
                    continue

            events.append(HistoryEvent(
                matricule=matricule,
                operation=code,
                event_date=event_date,
                meter_reading=reading,
                source=HistorySource.CONSOLIDATED,
            ))
        return events

    @staticmethod
    def consolidate_history(db: Session) -> Dict:
        """
        Rebuild the history event log from the three raw sources.

        The previous log is replaced in a single transaction; malformed rows
        are dropped and only counted.

        Args:
            db: Database session

        Returns:
            Dict with events written, per-source counts and drop counts
        """
        logger.info("Starting history consolidation...")
        roster = HistoryService._roster(db)
        dropped: Counter = Counter()

        curative = HistoryService.events_from_curative(
            db.query(CurativeRecord).order_by(CurativeRecord.id).all(), roster, dropped
        )
        oil_changes = HistoryService.events_from_oil_changes(
            db.query(OilChangeRecord).order_by(OilChangeRecord.id).all(), roster, dropped
        )
        consolidated = HistoryService.events_from_consolidated(
            db.query(ConsolidatedRecord).order_by(ConsolidatedRecord.id).all(), roster, dropped
        )

        events = curative + oil_changes + consolidated
        written = GenerationStore(db).replace_all(HISTORY_SCOPE, events)

        if dropped:
            logger.warning(f"History consolidation dropped {sum(dropped.values())} rows/fragments: {dict(dropped)}")
        logger.info(f"History consolidation wrote {written} events")

        return {
            "events_written": written,
            "by_source": {
                HistorySource.CURATIVE.value: len(curative),
                HistorySource.OIL_CHANGE.value: len(oil_changes),
                HistorySource.CONSOLIDATED.value: len(consolidated),
            },
            "dropped": dict(dropped),
        }

    @staticmethod
    def last_dates(db: Session) -> Dict[tuple, object]:
        """Latest event date per (normalized matricule, normalized operation)"""
        latest = {}
        for matricule, operation, event_date in db.query(
            HistoryEvent.matricule, HistoryEvent.operation, HistoryEvent.event_date
        ).all():
            key = (normalize(matricule), normalize(operation))
            if key not in latest or event_date > latest[key]:
                latest[key] = event_date
        return latest

    @staticmethod
    def history_for_equipment(
        db: Session,
        matricule: str,
        since: Optional[date] = None
    ) -> List[HistoryEvent]:
        """Events of one equipment, newest first"""
        query = db.query(HistoryEvent).filter(HistoryEvent.matricule == matricule)
        if since is not None:
            query = query.filter(HistoryEvent.event_date >= since)
        return query.order_by(HistoryEvent.event_date.desc(), HistoryEvent.id.desc()).all()

    @staticmethod
    def history_matrix(db: Session) -> Dict:
        """
        Month-by-month history grid.

        One row per (matricule, month): latest date of each operation in that
        month and the highest meter reading. Rows are grouped by matricule,
        newest month first.
        """
        events = db.query(HistoryEvent).all()

        counts: Dict[str, int] = Counter(e.operation for e in events)
        groups: Dict[tuple, Dict] = defaultdict(dict)
        readings: Dict[tuple, float] = {}

        for event in events:
            key = (event.matricule, event.event_date.strftime("%Y-%m"))
            current = groups[key].get(event.operation)
            if current is None or event.event_date > current:
                groups[key][event.operation] = event.event_date
            if event.meter_reading and event.meter_reading > readings.get(key, 0):
                readings[key] = event.meter_reading

        ordered = sorted(groups, key=lambda k: k[1], reverse=True)
        ordered.sort(key=lambda k: k[0])

        rows = []
        for key in ordered:
            matricule, month = key
            row = [matricule, month]
            for code in OPERATION_CODES:
                value = groups[key].get(code)
                row.append(value.strftime("%d/%m/%Y") if value else None)
            reading = readings.get(key)
            row.append(int(reading) if reading else None)
            rows.append(row)

        counts = dict(counts)
        counts["matricules"] = len({e.matricule for e in events})
        counts["meter_readings"] = sum(1 for e in events if e.meter_reading is not None)

        return {
            "headers": ["matricule", "month", *OPERATION_CODES, "meter_reading"],
            "rows": rows,
            "counts": counts,
        }
