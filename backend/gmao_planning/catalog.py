"""
Preventive maintenance operation catalog.

The catalog is fixed at bootstrap: 23 canonical operations, in display
order, each with a stable code and the French label used in the field data.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class OperationType:
    """Canonical preventive maintenance operation"""
    code: str
    label: str


OPERATION_CATALOG: Tuple[OperationType, ...] = (
    OperationType("engine-oil-level-check", "Niveau d'huile du carter"),
    OperationType("circuit-tightness-check", "Etanchéité de tous les circuits"),
    OperationType("belt", "Courroie"),
    OperationType("oil-filter", "Filtre à huile"),
    OperationType("change-engine-oil", "Vidanger le carter moteur"),
    OperationType("air-filter", "Filtre à air"),
    OperationType("fuel-filter", "Filtre carburant"),
    OperationType("chain", "chaine"),
    OperationType("brake", "Frein"),
    OperationType("valve", "soupape"),
    OperationType("tyre", "pneu"),
    OperationType("wheel-hub", "moyeu de roue"),
    OperationType("gearbox", "boite de vitesse"),
    OperationType("cardan-shaft", "cardan"),
    OperationType("general-greasing", "Graissage général"),
    OperationType("clutch", "embrayage"),
    OperationType("hydraulic-circuit", "circuit hydraulique"),
    OperationType("hydraulic-pump", "pompe hydraulique"),
    OperationType("hydraulic-filter", "Filtre hydraulique"),
    OperationType("hydraulic-tank", "Réservoir hydraulique"),
    OperationType("alternator", "alternateur"),
    OperationType("battery", "batterie"),
    OperationType("electrical-harness", "Faisceaux électriques"),
)

OPERATION_CODES: List[str] = [op.code for op in OPERATION_CATALOG]

_BY_CODE: Dict[str, OperationType] = {op.code: op for op in OPERATION_CATALOG}


def get_operation(code: str) -> Optional[OperationType]:
    """Return the catalog entry for an exact code"""
    return _BY_CODE.get(code)


# Consolidated-log operation codes mapped to catalog codes
CONSOLIDATED_CODE_MAPPING: Dict[str, str] = {
    "NIVEAU HUILE": "engine-oil-level-check",
    "VIDANGE,M": "change-engine-oil",
    "TRANSMISSION": "gearbox",
    "GR": "general-greasing",
    "HYDRAULIQUE": "hydraulic-circuit",
}

GREASING_CODE = "GR"

# Free-text synonyms: every word must appear in the text
OPERATION_SYNONYMS: Dict[str, str] = {
    "liquide refroidissement": "circuit-tightness-check",
}

# Oil-change log: (flag column, observation keyword, emitted operation)
OIL_CHANGE_FILTERS: Tuple[Tuple[Optional[str], str, str], ...] = (
    ("oil_filter", "FH", "oil-filter"),
    ("fuel_filter", "FG", "fuel-filter"),
    ("air_filter", "FAIR", "air-filter"),
    ("hydraulic_filter", "FHYD", "hydraulic-filter"),
    (None, "CHAINE", "chain"),
)

# Leading phrases stripped from curative "parts" text
CURATIVE_PREFIXES: Tuple[str, ...] = (
    "remplacement de ",
    "changement de ",
    "replacement of ",
    "change of ",
)

INTERVAL_DAYS: Tuple[int, ...] = (7, 30, 90, 180, 360)

RULE_MARKERS = ("*", "**")

# Default category exclusions seeded at import (normalized category keys)
_HYDRAULICS = ("hydraulic-circuit", "hydraulic-pump", "hydraulic-filter", "hydraulic-tank")
_DRIVETRAIN = ("brake", "chain", "tyre", "wheel-hub", "gearbox", "cardan-shaft", "clutch")
_ENGINE = ("belt", "oil-filter", "change-engine-oil", "air-filter", "fuel-filter", "valve")

DEFAULT_CATEGORY_EXCLUSIONS: Dict[str, frozenset] = {
    "geg": frozenset(_DRIVETRAIN + _HYDRAULICS + ("general-greasing", "electrical-harness")),
    "outillagedivers": frozenset(
        _ENGINE + _DRIVETRAIN + _HYDRAULICS
        + ("alternator", "battery", "general-greasing", "electrical-harness")
    ),
    "aircomprime": frozenset(
        _DRIVETRAIN + ("general-greasing", "hydraulic-circuit", "hydraulic-pump", "electrical-harness")
    ),
    "transmarchandise1": frozenset(
        _ENGINE + _HYDRAULICS
        + ("engine-oil-level-check", "circuit-tightness-check", "chain", "gearbox",
           "cardan-shaft", "clutch", "alternator", "battery", "electrical-harness")
    ),
    "transetvspeciaux1": frozenset(
        _ENGINE + _HYDRAULICS
        + ("engine-oil-level-check", "circuit-tightness-check", "chain", "gearbox",
           "cardan-shaft", "clutch", "alternator", "battery", "electrical-harness")
    ),
    "transpersonnel": frozenset(
        _HYDRAULICS + ("engine-oil-level-check", "electrical-harness")
    ),
    "transbenner": frozenset(
        ("clutch", "chain", "gearbox", "alternator", "electrical-harness")
    ),
    "legeree": frozenset(_HYDRAULICS + ("general-greasing",)),
    "legerd": frozenset(_HYDRAULICS + ("general-greasing", "electrical-harness")),
    "transforbeton": frozenset(_DRIVETRAIN + _HYDRAULICS + ("electrical-harness",)),
    "manutention1": frozenset(
        ("oil-filter", "change-engine-oil", "air-filter", "fuel-filter", "valve", "alternator",
         "brake", "chain", "tyre", "wheel-hub", "cardan-shaft", "clutch", "electrical-harness")
        + _HYDRAULICS
    ),
}
