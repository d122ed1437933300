from __future__ import annotations

from datetime import date

from gmao_planning import models
from gmao_planning.catalog import OPERATION_CODES
from gmao_planning.models import MaintenanceLevel
from gmao_planning.services.alert_service import AlertService
from gmao_planning.services.matrix_service import MatrixService, matrix_rows
from gmao_planning.services.planning_service import PlanningService
from gmao_planning.services.reconciliation_service import MatchResult

OIL_COLUMN = 2 + OPERATION_CODES.index("change-engine-oil")


def _setup_plan(session, matricules=("ENG-01",)):
    for matricule in matricules:
        session.add(models.Equipment(matricule=matricule, category="Engin", designation="Chargeuse"))
    session.add(models.IntervalRule(
        operation="Vidanger le carter moteur",
        interval_90="*",
        interval_180="*",
        control=True,
        cleaning=True,
        replacement=False,
    ))
    session.commit()
    PlanningService.generate_planning(session, 2024)


def _entry(day: date, level: MaintenanceLevel, realized: bool = False) -> MatchResult:
    return MatchResult(
        id="1",
        matricule="ENG-01",
        operation="change-engine-oil",
        scheduled_date=day,
        level=level,
        realized=realized,
        realized_date=day if realized else None,
    )


def test_matrix_rows_cover_twelve_months_per_equipment():
    rows = matrix_rows(["ENG-01", "ENG-02"], [])

    assert len(rows) == 24
    assert [row[0] for row in rows[:12]] == ["ENG-01"] * 12
    assert all(cell is None for cell in rows[0][2:])


def test_matrix_cell_prefers_higher_level_then_later_date():
    rows = matrix_rows(["ENG-01"], [
        _entry(date(2024, 3, 20), MaintenanceLevel.CONTROL),
        _entry(date(2024, 3, 5), MaintenanceLevel.REPLACEMENT),
        _entry(date(2024, 3, 10), MaintenanceLevel.REPLACEMENT),
    ])

    cell = rows[2][OIL_COLUMN]
    assert cell["level"] == "CH"
    assert cell["scheduled_date"] == "10/03/2024"


def test_matrix_cell_prefers_realized_entries():
    rows = matrix_rows(["ENG-01"], [
        _entry(date(2024, 3, 5), MaintenanceLevel.CONTROL, realized=True),
        _entry(date(2024, 3, 20), MaintenanceLevel.REPLACEMENT),
    ])

    cell = rows[2][OIL_COLUMN]
    assert cell["level"] == "C"
    assert cell["realized"] is True
    assert cell["realized_date"] == "05/03/2024"


def test_build_matrix_paginates_by_equipment(db_session):
    _setup_plan(db_session, matricules=("ENG-01", "ENG-02", "ENG-03"))

    matrix = MatrixService.build_matrix(db_session, 2024, page=2, page_size=2)

    assert matrix["total"] == 3
    assert len(matrix["rows"]) == 12
    assert matrix["rows"][0][0] == "ENG-03"
    assert matrix["rows"][2][OIL_COLUMN]["scheduled_date"] == "31/03/2024"
    assert matrix["rows"][5][OIL_COLUMN]["level"] == "N"


def test_follow_up_matrix_shows_out_of_plan_events(db_session):
    _setup_plan(db_session)
    db_session.add(models.HistoryEvent(
        matricule="ENG-01",
        operation="tyre",
        event_date=date(2024, 8, 14),
        source=models.HistorySource.CURATIVE,
    ))
    db_session.commit()

    matrix = MatrixService.build_matrix(db_session, 2024, follow_up=True)

    cell = matrix["rows"][7][2 + OPERATION_CODES.index("tyre")]
    assert cell["level"] == "HP"
    assert cell["realized"] is True


def test_alerts_flag_overdue_and_upcoming(db_session):
    _setup_plan(db_session)

    alerts = AlertService.preventive_alerts(db_session, 15, today=date(2024, 7, 5))

    assert [(a["due_date"], a["urgency"]) for a in alerts] == [
        (date(2024, 3, 31), "urgent"),
        (date(2024, 6, 29), "urgent"),
    ]

    alerts = AlertService.preventive_alerts(db_session, 15, today=date(2024, 3, 20))

    assert len(alerts) == 1
    assert alerts[0]["urgency"] == "near"
    assert alerts[0]["designation"] == "Chargeuse"
    assert alerts[0]["level"] == "C"
