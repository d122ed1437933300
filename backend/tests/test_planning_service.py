from __future__ import annotations

from datetime import date

import pytest

from gmao_planning import models
from gmao_planning.models import MaintenanceLevel
from gmao_planning.services.planning_service import (
    PlanningService, deduplicate, project_dates
)
from gmao_planning.services.rule_service import RuleTableError


def _create_equipment(session, *, matricule: str = "ENG-01", category: str = "Engin") -> models.Equipment:
    equipment = models.Equipment(matricule=matricule, category=category)
    session.add(equipment)
    session.commit()
    return equipment


def _create_oil_rule(session, **fields) -> models.IntervalRule:
    values = dict(interval_90="*", interval_180="*", control=True, cleaning=True, replacement=False)
    values.update(fields)
    rule = models.IntervalRule(operation="Vidanger le carter moteur", **values)
    session.add(rule)
    session.commit()
    return rule


def _plan(session, year: int = 2024):
    return [
        (p.scheduled_date, p.level)
        for p in session.query(models.PlannedIntervention)
        .filter(models.PlannedIntervention.year == year)
        .order_by(models.PlannedIntervention.scheduled_date)
        .all()
    ]


def test_project_dates_excludes_anchor_and_stays_in_year():
    dates = project_dates(date(2024, 1, 1), 90, 2024)

    assert dates == [date(2024, 3, 31), date(2024, 6, 29), date(2024, 9, 27), date(2024, 12, 26)]


def test_project_dates_from_old_anchor_keeps_spacing():
    anchor = date(2019, 7, 14)

    dates = project_dates(anchor, 30, 2024)

    assert dates[0] >= date(2024, 1, 1)
    assert (dates[0] - date(2024, 1, 1)).days < 30
    assert dates[-1] <= date(2024, 12, 31)
    assert all((d - anchor).days % 30 == 0 for d in dates)


def test_project_dates_from_future_anchor_is_empty():
    assert project_dates(date(2025, 2, 1), 30, 2024) == []


def test_deduplicate_keeps_highest_level():
    base = {"matricule": "ENG-01", "operation": "change-engine-oil", "scheduled_date": date(2024, 6, 29)}
    candidates = [
        {**base, "interval_days": 90, "level": MaintenanceLevel.CONTROL},
        {**base, "interval_days": 360, "level": MaintenanceLevel.REPLACEMENT},
        {**base, "interval_days": 180, "level": MaintenanceLevel.CLEANING},
    ]

    rows = deduplicate(candidates)

    assert len(rows) == 1
    assert rows[0]["level"] == MaintenanceLevel.REPLACEMENT
    assert rows[0]["interval_days"] == 360


def test_generate_planning_without_history(db_session):
    _create_equipment(db_session)
    _create_oil_rule(db_session)

    result = PlanningService.generate_planning(db_session, 2024)

    assert result["count"] == 4
    assert _plan(db_session) == [
        (date(2024, 3, 31), MaintenanceLevel.CONTROL),
        (date(2024, 6, 29), MaintenanceLevel.CLEANING),
        (date(2024, 9, 27), MaintenanceLevel.CONTROL),
        (date(2024, 12, 26), MaintenanceLevel.CLEANING),
    ]
    assert PlanningService.level_counts(result["rows"]) == {"C": 2, "N": 2, "CH": 0}


def test_generate_planning_anchors_on_last_history_date(db_session):
    _create_equipment(db_session)
    _create_oil_rule(db_session, interval_180=None, cleaning=False)
    db_session.add(models.HistoryEvent(
        matricule="ENG-01",
        operation="change-engine-oil",
        event_date=date(2023, 12, 1),
        source=models.HistorySource.OIL_CHANGE,
    ))
    db_session.commit()

    PlanningService.generate_planning(db_session, 2024)

    assert [d for d, _ in _plan(db_session)] == [
        date(2024, 2, 29), date(2024, 5, 29), date(2024, 8, 27), date(2024, 11, 25)
    ]


def test_generate_planning_is_idempotent(db_session):
    _create_equipment(db_session)
    _create_equipment(db_session, matricule="ENG-02")
    _create_oil_rule(db_session)

    PlanningService.generate_planning(db_session, 2024)
    first = _plan(db_session)
    PlanningService.generate_planning(db_session, 2024)

    assert _plan(db_session) == first
    assert len(first) == 8


def test_generate_planning_respects_category_exclusion(db_session):
    _create_equipment(db_session, category="GEG")
    _create_oil_rule(db_session)
    db_session.add(models.CategoryRule(category="GEG", operation="change-engine-oil", is_active=False))
    db_session.commit()

    result = PlanningService.generate_planning(db_session, 2024)

    assert result["count"] == 0


def test_generate_planning_keeps_other_years(db_session):
    _create_equipment(db_session)
    _create_oil_rule(db_session)

    PlanningService.generate_planning(db_session, 2024)
    PlanningService.generate_planning(db_session, 2025)
    PlanningService.generate_planning(db_session, 2024)

    assert len(_plan(db_session, 2025)) == 4
    assert PlanningService.clear_plan(db_session, 2025) == 4
    assert len(_plan(db_session, 2024)) == 4


def test_generate_planning_fails_on_empty_rule_table(db_session):
    _create_equipment(db_session)

    with pytest.raises(RuleTableError):
        PlanningService.generate_planning(db_session, 2024)


def test_get_plan_filters_and_paginates(db_session):
    _create_equipment(db_session)
    _create_equipment(db_session, matricule="CAM-07")
    _create_oil_rule(db_session)
    PlanningService.generate_planning(db_session, 2024)

    page = PlanningService.get_plan(db_session, 2024, matricule_filter="cam", skip=1, limit=2)

    assert page["total"] == 4
    assert len(page["items"]) == 2
    assert all(item.matricule == "CAM-07" for item in page["items"])
