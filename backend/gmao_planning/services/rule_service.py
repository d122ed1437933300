"""
Interval Rule Resolver - turns the interval/level rule table and the
per-category inclusion rules into (interval, level) pairs.
"""

from dataclasses import dataclass, field
from sqlalchemy.orm import Session
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from gmao_planning.catalog import INTERVAL_DAYS
from gmao_planning.models import IntervalRule, CategoryRule, MaintenanceLevel
from gmao_planning.services.normalizer import (
    normalize, category_key, is_marker, resolve_operation
)

logger = logging.getLogger(__name__)


class RuleTableError(ValueError):
    """The interval rule table is structurally unusable"""


# Header keywords that identify the level flag columns
LEVEL_HEADER_KEYWORDS: Dict[MaintenanceLevel, Tuple[str, ...]] = {
    MaintenanceLevel.CONTROL: ("controler", "control"),
    MaintenanceLevel.CLEANING: ("nettoyage", "cleaning"),
    MaintenanceLevel.REPLACEMENT: ("changement", "replacement"),
}

# Level flag attribute on IntervalRule, in priority order C < N < CH
LEVEL_ATTRIBUTES: Tuple[Tuple[MaintenanceLevel, str], ...] = (
    (MaintenanceLevel.CONTROL, "control"),
    (MaintenanceLevel.CLEANING, "cleaning"),
    (MaintenanceLevel.REPLACEMENT, "replacement"),
)


@dataclass
class RuleTableSchema:
    """
    Declarative mapping from a rule table's headers to logical columns.

    Built once when a rule table is imported; nothing downstream inspects
    header names again.
    """
    operation_column: str
    interval_columns: Dict[int, str]
    level_columns: Dict[MaintenanceLevel, str] = field(default_factory=dict)

    @classmethod
    def discover(cls, headers: Iterable[str]) -> "RuleTableSchema":
        """
        Identify columns by header text.

        Numeric headers (7, 30, 90, 180, 360) are interval markers, headers
        containing control / cleaning / replacement keywords are level flags
        and the remaining non-id column is the operation name.

        Raises:
            RuleTableError: if no operation column can be identified
        """
        headers = [str(h) for h in headers if h is not None and str(h).strip()]

        interval_columns: Dict[int, str] = {}
        for header in headers:
            stripped = header.strip()
            if stripped.isdigit() and int(stripped) in INTERVAL_DAYS:
                interval_columns[int(stripped)] = header

        level_columns: Dict[MaintenanceLevel, str] = {}
        for level, keywords in LEVEL_HEADER_KEYWORDS.items():
            for header in headers:
                key = normalize(header)
                if any(keyword in key for keyword in keywords):
                    level_columns[level] = header
                    break

        known = {"id", *interval_columns.values(), *level_columns.values()}
        candidates = [
            h for h in headers
            if h not in known and h.strip().lower() != "id" and not h.strip().isdigit()
        ]
        if not candidates:
            raise RuleTableError(
                "Could not determine the operation column of the interval rule table "
                f"(headers: {headers})"
            )

        schema = cls(
            operation_column=candidates[0],
            interval_columns=interval_columns,
            level_columns=level_columns,
        )
        logger.info(
            f"Rule table schema: operation='{schema.operation_column}', "
            f"intervals={sorted(interval_columns)}, levels={[l.value for l in level_columns]}"
        )
        return schema


def rule_pairs(rule: IntervalRule) -> List[Tuple[int, MaintenanceLevel]]:
    """
    Pair active intervals (ascending) with active levels (C, N, CH) positionally.
    Intervals without a level are dropped.
    """
    intervals = [days for days in INTERVAL_DAYS if is_marker(rule.marker_for(days))]
    levels = [level for level, attribute in LEVEL_ATTRIBUTES if getattr(rule, attribute)]
    return list(zip(intervals, levels))


class RuleResolver:
    """
    In-memory view of the rule tables for one planning run.

    Category exclusions are opt-out: only an explicit inactive row removes
    an operation from a category.
    """

    def __init__(
        self,
        interval_rules: Iterable[IntervalRule],
        category_rules: Iterable[CategoryRule] = ()
    ):
        self.pairs_by_operation: Dict[str, List[Tuple[int, MaintenanceLevel]]] = {}
        self.unrecognized: List[str] = []
        self.rule_count = 0

        for rule in interval_rules:
            self.rule_count += 1
            code = resolve_operation(rule.operation)
            if code is None:
                self.unrecognized.append(rule.operation)
                continue
            self.pairs_by_operation[code] = rule_pairs(rule)

        self.excluded = set()
        for category_rule in category_rules:
            if not category_rule.is_active:
                self.excluded.add((
                    category_key(category_rule.category),
                    normalize(category_rule.operation),
                ))

    @classmethod
    def load(cls, db: Session) -> "RuleResolver":
        return cls(
            db.query(IntervalRule).order_by(IntervalRule.id).all(),
            db.query(CategoryRule).all(),
        )

    def is_excluded(self, category: Optional[str], operation: str) -> bool:
        return (category_key(category), normalize(operation)) in self.excluded

    def active_rules(self, category: Optional[str], operation: str) -> List[Tuple[int, MaintenanceLevel]]:
        """
        Active (interval, level) pairs of an operation for an equipment category.

        Returns:
            Ordered list of pairs, empty when the category opts out
        """
        if self.is_excluded(category, operation):
            return []
        return list(self.pairs_by_operation.get(operation, []))

    def validate(self) -> None:
        """
        Raises:
            RuleTableError: when no rule row names a catalog operation
        """
        if self.rule_count == 0:
            raise RuleTableError("The interval rule table is empty. Planning generation failed.")
        if not self.pairs_by_operation:
            raise RuleTableError(
                "No row of the interval rule table names a known operation; "
                "the operation column is probably misidentified. Planning generation failed."
            )
        if self.unrecognized:
            logger.warning(f"Ignoring {len(self.unrecognized)} unrecognized rule rows: {self.unrecognized}")


def active_rules(db: Session, category: Optional[str], operation: str) -> List[Tuple[int, MaintenanceLevel]]:
    """One-off resolution; planning preloads a RuleResolver instead"""
    return RuleResolver.load(db).active_rules(category, operation)
