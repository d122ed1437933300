from __future__ import annotations

from datetime import date

import pytest

from gmao_planning import models
from gmao_planning.services.import_service import ImportService, normalize_header, value
from gmao_planning.services.rule_service import RuleTableError

EQUIPMENT_CSV = (
    "Matricule;Categorie;Designation;Date achat;Km/heures actuel\n"
    "ENG-01;GEG;Groupe electrogene;12/05/2019;1500\n"
    "ENG-02;Engin;Chargeuse;;\n"
    ";Engin;Sans matricule;;\n"
).encode("utf-8")

RULES_CSV = (
    "Entretien;7;30;90;180;360;Controler;Nettoyage;Changement\n"
    "Vidanger le carter moteur;;;*;*;;x;x;\n"
    "Frein;;*;;;;x;;\n"
).encode("utf-8")


def test_normalize_header():
    assert normalize_header("Compteur (Km/h)") == "compteur_kmh"
    assert normalize_header("Date entrée") == "date_entree"
    assert normalize_header(" Sit.actuelle ") == "sitactuelle"


def test_value_takes_first_non_blank_alternative():
    row = {"date": "", "date_entretien": "05/03/2024"}

    assert value(row, "date", "date_entretien") == "05/03/2024"
    assert value(row, "missing") is None


def test_import_equipment_counts_rejected_rows(db_session):
    result = ImportService.import_equipment_csv(db_session, EQUIPMENT_CSV, "equipment.csv")

    assert result["status"] == "partial"
    assert result["total_rows"] == 3
    assert result["successful_rows"] == 2
    assert result["failed_rows"] == 1

    engin = db_session.query(models.Equipment).filter_by(matricule="ENG-01").one()
    assert engin.category == "GEG"
    assert engin.meter_reading == 1500
    assert engin.acquisition_date.year == 2019


def test_import_equipment_seeds_category_rules(db_session):
    ImportService.import_equipment_csv(db_session, EQUIPMENT_CSV, "equipment.csv")

    rules = {
        (r.category, r.operation): r.is_active
        for r in db_session.query(models.CategoryRule).all()
    }
    assert len(rules) == 46
    assert rules[("GEG", "brake")] is False
    assert rules[("GEG", "change-engine-oil")] is True
    assert rules[("Engin", "brake")] is True


def test_seed_category_rules_compares_normalized_categories(db_session):
    db_session.add_all([
        models.Equipment(matricule="ENG-01", category="GEG"),
        models.Equipment(matricule="ENG-02", category="geg "),
    ])

    created = ImportService.seed_category_rules(db_session)
    db_session.commit()

    rules = db_session.query(models.CategoryRule).all()
    assert created == 23
    assert {r.category for r in rules} == {"GEG"}
    assert len({r.operation for r in rules}) == 23


def test_seed_category_rules_skips_category_known_under_other_spelling(db_session):
    db_session.add(models.CategoryRule(category="GEG", operation="brake", is_active=False))
    db_session.add(models.Equipment(matricule="ENG-01", category="Geg"))

    created = ImportService.seed_category_rules(db_session)

    assert created == 0


def test_import_interval_rules_discovers_columns(db_session):
    result = ImportService.import_interval_rules_csv(db_session, RULES_CSV, "rules.csv")

    assert result["successful_rows"] == 2
    oil = db_session.query(models.IntervalRule).filter_by(operation="Vidanger le carter moteur").one()
    assert (oil.interval_90, oil.interval_180, oil.interval_30) == ("*", "*", None)
    assert (oil.control, oil.cleaning, oil.replacement) == (True, True, False)


def test_import_interval_rules_clears_plans(db_session):
    db_session.add(models.PlannedIntervention(
        year=2024, matricule="ENG-01", operation="brake",
        scheduled_date=date(2024, 3, 31), interval_days=90,
        level=models.MaintenanceLevel.CONTROL,
    ))
    db_session.commit()

    ImportService.import_interval_rules_csv(db_session, RULES_CSV, "rules.csv")

    assert db_session.query(models.PlannedIntervention).count() == 0


def test_import_interval_rules_without_operation_column_fails(db_session):
    with pytest.raises(RuleTableError):
        ImportService.import_interval_rules_csv(db_session, b"7;30;90\n*;;\n", "rules.csv")

    log = db_session.query(models.ImportLog).one()
    assert log.status == "failed"


def test_import_category_rules_resolves_labels(db_session):
    content = (
        "Categorie;Entretien;Actif\n"
        "GEG;Frein;0\n"
        "GEG;change-engine-oil;1\n"
        "GEG;Pompe a eau;1\n"
    ).encode("utf-8")

    result = ImportService.import_category_rules_csv(db_session, content, "categories.csv")

    assert result["successful_rows"] == 2
    rules = {r.operation: r.is_active for r in db_session.query(models.CategoryRule).all()}
    assert rules == {"brake": False, "change-engine-oil": True}


def test_import_raw_logs_keep_text_values(db_session):
    curative = (
        "Matricule;Date entree;Date sortie;Panne declaree;Type de panne;Pieces\n"
        "ENG-01;15/03/2024;en cours;fuite a 12500 km;Moteur;remplacement de filtre a huile - bougie\n"
    ).encode("utf-8")
    oil = (
        "Matricule;Date;Compteur km/h;FH;FG;FAIR;FHYD;Obs\n"
        "ENG-01;10/02/2024;12500;*;;;;\n"
    ).encode("utf-8")
    consolidated = (
        "Matricule;Date;Entretien;Obs;Graisse\n"
        "ENG-01;02/04/2024;GR;;1,5\n"
    ).encode("utf-8")

    ImportService.import_curative_csv(db_session, curative, "curative.csv")
    ImportService.import_oil_change_csv(db_session, oil, "vidange.csv")
    ImportService.import_consolidated_csv(db_session, consolidated, "consolide.csv")

    record = db_session.query(models.CurativeRecord).one()
    assert record.exit_date == "en cours"
    assert record.parts == "remplacement de filtre a huile - bougie"
    assert db_session.query(models.OilChangeRecord).one().oil_filter == "*"
    assert db_session.query(models.ConsolidatedRecord).one().grease_quantity == "1,5"
