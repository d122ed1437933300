from __future__ import annotations

import pytest

from gmao_planning import models
from gmao_planning.models import MaintenanceLevel
from gmao_planning.services.rule_service import (
    RuleResolver, RuleTableError, RuleTableSchema, active_rules, rule_pairs
)


def _rule(operation: str = "Vidanger le carter moteur", **fields) -> models.IntervalRule:
    values = dict(control=False, cleaning=False, replacement=False)
    values.update(fields)
    return models.IntervalRule(operation=operation, **values)


def test_rule_pairs_zip_intervals_and_levels_in_order():
    rule = _rule(interval_30="*", interval_90="**", interval_360="*", control=True, replacement=True)

    assert rule_pairs(rule) == [(30, MaintenanceLevel.CONTROL), (90, MaintenanceLevel.REPLACEMENT)]


def test_rule_pairs_ignore_non_marker_cells():
    rule = _rule(interval_7="x", interval_90="*", cleaning=True)

    assert rule_pairs(rule) == [(90, MaintenanceLevel.CLEANING)]


def test_category_rules_are_opt_out():
    resolver = RuleResolver(
        [_rule(interval_90="*", control=True)],
        [models.CategoryRule(category="Léger E", operation="change-engine-oil", is_active=False)],
    )

    assert resolver.active_rules("LEGER E", "change-engine-oil") == []
    assert resolver.active_rules("Engin", "change-engine-oil") == [(90, MaintenanceLevel.CONTROL)]
    assert resolver.active_rules(None, "change-engine-oil") == [(90, MaintenanceLevel.CONTROL)]
    assert resolver.active_rules("Engin", "brake") == []


def test_active_category_rule_keeps_operation():
    resolver = RuleResolver(
        [_rule(interval_90="*", control=True)],
        [models.CategoryRule(category="GEG", operation="change-engine-oil", is_active=True)],
    )

    assert resolver.active_rules("GEG", "change-engine-oil") == [(90, MaintenanceLevel.CONTROL)]


def test_schema_discovery_identifies_columns():
    schema = RuleTableSchema.discover(
        ["id", "Entretien", "7", "30", "90", "180", "360", "Contrôler", "Nettoyage", "Changement"]
    )

    assert schema.operation_column == "Entretien"
    assert schema.interval_columns == {7: "7", 30: "30", 90: "90", 180: "180", 360: "360"}
    assert schema.level_columns == {
        MaintenanceLevel.CONTROL: "Contrôler",
        MaintenanceLevel.CLEANING: "Nettoyage",
        MaintenanceLevel.REPLACEMENT: "Changement",
    }


def test_schema_discovery_fails_without_operation_column():
    with pytest.raises(RuleTableError):
        RuleTableSchema.discover(["7", "30", "Contrôler"])


def test_validate_rejects_empty_table():
    with pytest.raises(RuleTableError):
        RuleResolver([]).validate()


def test_validate_rejects_table_without_known_operations():
    resolver = RuleResolver([_rule(operation="90"), _rule(operation="Nettoyage")])

    with pytest.raises(RuleTableError):
        resolver.validate()


def test_validate_tolerates_some_unknown_rows():
    resolver = RuleResolver([_rule(interval_90="*", control=True), _rule(operation="Pompe à eau")])

    resolver.validate()
    assert resolver.unrecognized == ["Pompe à eau"]


def test_active_rules_reads_the_store(db_session):
    db_session.add(_rule(interval_30="*", interval_180="*", control=True, cleaning=True))
    db_session.add(models.CategoryRule(category="GEG", operation="change-engine-oil", is_active=False))
    db_session.commit()

    assert active_rules(db_session, "Engin", "change-engine-oil") == [
        (30, MaintenanceLevel.CONTROL), (180, MaintenanceLevel.CLEANING)
    ]
    assert active_rules(db_session, "geg", "change-engine-oil") == []
