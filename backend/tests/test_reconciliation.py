from __future__ import annotations

from datetime import date

from gmao_planning import models
from gmao_planning.models import MaintenanceLevel
from gmao_planning.services.planning_service import PlanningService
from gmao_planning.services.reconciliation_service import ReconciliationService
from gmao_planning.services.statistics_service import (
    StatisticsService, aggregate, monthly_preventive_stats
)


def _setup_plan(session):
    session.add(models.Equipment(matricule="ENG-01", category="Engin"))
    session.add(models.IntervalRule(
        operation="Vidanger le carter moteur",
        interval_90="*",
        interval_180="*",
        control=True,
        cleaning=True,
        replacement=False,
    ))
    session.commit()
    # C 31/03, N 29/06, C 27/09, N 26/12
    PlanningService.generate_planning(session, 2024)


def _add_event(session, event_date: date, operation: str = "change-engine-oil", matricule: str = "ENG-01"):
    event = models.HistoryEvent(
        matricule=matricule,
        operation=operation,
        event_date=event_date,
        source=models.HistorySource.OIL_CHANGE,
    )
    session.add(event)
    session.commit()
    return event


def test_event_within_tolerance_matches_planned_occurrence(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 3, 15))

    results, out_of_plan = ReconciliationService.reconcile(db_session, 2024)

    realized = [r for r in results if r.realized]
    assert len(realized) == 1
    assert realized[0].scheduled_date == date(2024, 3, 31)
    assert realized[0].realized_date == date(2024, 3, 15)
    assert out_of_plan == []


def test_event_beyond_tolerance_is_out_of_plan(db_session):
    _setup_plan(db_session)
    event = _add_event(db_session, date(2024, 5, 15))

    results, out_of_plan = ReconciliationService.reconcile(db_session, 2024)

    assert not any(r.realized for r in results)
    assert len(out_of_plan) == 1
    assert out_of_plan[0].id == f"hp-{event.id}"
    assert out_of_plan[0].level == MaintenanceLevel.OUT_OF_PLAN
    assert out_of_plan[0].out_of_plan


def test_nearest_free_occurrence_wins(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 6, 20))
    _add_event(db_session, date(2024, 6, 25))

    results, out_of_plan = ReconciliationService.reconcile(db_session, 2024)

    by_date = {r.scheduled_date: r for r in results}
    # First event takes 29/06; the second has no other occurrence within 30 days
    assert by_date[date(2024, 6, 29)].realized_date == date(2024, 6, 20)
    assert not by_date[date(2024, 3, 31)].realized
    assert [o.scheduled_date for o in out_of_plan] == [date(2024, 6, 25)]


def test_other_operations_and_years_do_not_match(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 3, 31), operation="tyre")
    _add_event(db_session, date(2023, 12, 31))

    results, out_of_plan = ReconciliationService.reconcile(db_session, 2024)

    assert not any(r.realized for r in results)
    assert [(o.operation, o.scheduled_date) for o in out_of_plan] == [("tyre", date(2024, 3, 31))]


def test_tolerance_can_be_overridden(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 3, 15))

    results, out_of_plan = ReconciliationService.reconcile(db_session, 2024, tolerance_days=10)

    assert not any(r.realized for r in results)
    assert len(out_of_plan) == 1


def test_statistics_count_matched_rows(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 3, 15))
    _add_event(db_session, date(2024, 7, 10))
    _add_event(db_session, date(2024, 5, 15))

    stats = StatisticsService.get_statistics(db_session, 2024)
    results, _ = ReconciliationService.reconcile(db_session, 2024)

    assert stats["year"] == 2024
    assert stats["total_planned"] == 4
    assert stats["total_realized"] == sum(1 for r in results if r.realized) == 2
    assert stats["planned_by_level"] == {"C": 2, "N": 2, "CH": 0}
    assert stats["realized_by_level"] == {"C": 1, "N": 1, "CH": 0}
    assert stats["realized_by_operation"] == {"change-engine-oil": 2}
    assert stats["out_of_plan"] == 1
    assert stats["completion_rate"] == 0.5


def test_aggregate_of_empty_year():
    stats = aggregate([], [])

    assert stats["total_planned"] == 0
    assert stats["completion_rate"] == 0.0


def test_monthly_preventive_stats_count_codes_and_grease(db_session):
    db_session.add_all([
        models.ConsolidatedRecord(matricule="ENG-01", date="05/01/2024", operation_code="VIDANGE,M"),
        models.ConsolidatedRecord(matricule="ENG-01", date="20/01/2024", operation_code=" gr ", grease_quantity="1,5"),
        models.ConsolidatedRecord(matricule="ENG-02", date="03/03/2024", operation_code="GR", grease_quantity="2"),
        models.ConsolidatedRecord(matricule="ENG-02", date="04/03/2024", operation_code="TRANSMISSION"),
        models.ConsolidatedRecord(matricule="ENG-02", date="10/07/2024", operation_code="NIVEAU HUILE"),
        models.ConsolidatedRecord(matricule="ENG-02", date="11/07/2024", operation_code="HYDRAULIQUE"),
        models.ConsolidatedRecord(matricule="ENG-01", date="15/02/2023", operation_code="GR", grease_quantity="9"),
        models.ConsolidatedRecord(matricule="ENG-01", date="bad date", operation_code="GR"),
    ])
    db_session.commit()

    stats = StatisticsService.get_monthly_preventive_stats(db_session, 2024)

    assert len(stats["months"]) == 12
    january, march, july = stats["months"][0], stats["months"][2], stats["months"][6]
    assert (january["oil_change"], january["greasing"]) == (1, 1)
    assert (march["greasing"], march["transmission"]) == (1, 1)
    assert (july["hydraulic"], july["other"]) == (1, 1)
    assert stats["months"][1]["greasing"] == 0
    assert stats["total_lubricant"] == 3.5
    assert stats["lubricant_by_type"] == {"grease": 3.5}


def test_monthly_preventive_stats_of_empty_log():
    stats = monthly_preventive_stats([], 2024)

    assert [m["month"] for m in stats["months"]] == list(range(1, 13))
    assert all(m["other"] == 0 for m in stats["months"])
    assert stats["total_lubricant"] == 0
    assert stats["lubricant_by_type"] == {}


def test_follow_up_page_lists_planned_and_out_of_plan(db_session):
    _setup_plan(db_session)
    _add_event(db_session, date(2024, 5, 15))

    page = ReconciliationService.get_follow_up(db_session, 2024, matricule_filter="eng", limit=10)

    assert page["total"] == 5
    levels = [item["level"] for item in page["items"]]
    assert levels.count("HP") == 1
    assert all(isinstance(item["id"], str) for item in page["items"])
