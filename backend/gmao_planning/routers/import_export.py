"""
Import/Export router - CSV imports of reference data and raw logs, grid exports.
"""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import io
import logging

from gmao_planning.config import settings
from gmao_planning.database import get_db
from gmao_planning.models import ImportLog
from gmao_planning.schemas import ImportResponse, ImportLogResponse
from gmao_planning.services.import_service import ImportService
from gmao_planning.services.export_service import ExportService
from gmao_planning.services.rule_service import RuleTableError

router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_upload(file: UploadFile) -> bytes:
    """Validate type and size of an uploaded CSV file and return its bytes"""
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=400,
            detail="Only CSV files are accepted"
        )

    content = await file.read()

    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit"
        )
    if not content.strip():
        raise HTTPException(status_code=400, detail="File is empty")

    return content


def _run(label: str, importer, db: Session, content: bytes, filename: str):
    try:
        return importer(db, content, filename)
    except RuleTableError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"{label} import error: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Import failed: {str(e)}"
        )


# ==================== REFERENCE DATA IMPORTS ====================

@router.post("/import/equipment", response_model=ImportResponse)
async def import_equipment_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import the equipment roster (replaces the current roster).

    **Expected columns:**
    - Matricule *required*
    - Categorie
    - Designation
    - Marque
    - Date achat (DD/MM/YYYY)
    - Km/heures actuel
    - Statut

    **Features:**
    - Auto-detects encoding (UTF-8, Windows-1252, etc.)
    - Seeds default category rules for new categories
    """
    content = await _read_upload(file)
    return _run("Equipment", ImportService.import_equipment_csv, db, content, file.filename)


@router.post("/import/interval-rules", response_model=ImportResponse)
async def import_interval_rules_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import the interval/level rule table.

    **Expected columns:**
    - Operation name (the non-numeric, non-level column)
    - 7, 30, 90, 180, 360 (markers '*' / '**')
    - Controler, Nettoyage, Changement (level flags, any non-empty value)

    Generated plans are cleared. A table whose operation column cannot be
    identified is rejected with 422.
    """
    content = await _read_upload(file)
    return _run("Interval rule", ImportService.import_interval_rules_csv, db, content, file.filename)


@router.post("/import/category-rules", response_model=ImportResponse)
async def import_category_rules_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import per-category operation rules.

    **Expected columns:**
    - Categorie *required*
    - Entretien (catalog code or label) *required*
    - Actif (0/non/false for inactive, default active)

    Generated plans are cleared.
    """
    content = await _read_upload(file)
    return _run("Category rule", ImportService.import_category_rules_csv, db, content, file.filename)


# ==================== RAW LOG IMPORTS ====================

@router.post("/import/curative", response_model=ImportResponse)
async def import_curative_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import the curative maintenance log (raw rows, consolidated later).

    **Expected columns:**
    - Matricule, Date entree, Date sortie, Panne declaree, Type de panne,
      Pieces (hyphen separated), Intervenant, Affectation, Sit.actuelle
    """
    content = await _read_upload(file)
    return _run("Curative", ImportService.import_curative_csv, db, content, file.filename)


@router.post("/import/oil-change", response_model=ImportResponse)
async def import_oil_change_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import the oil-change log.

    **Expected columns:**
    - Matricule, Date, Compteur km/h, FH, FG, FAIR, FHYD (markers), Obs
    """
    content = await _read_upload(file)
    return _run("Oil change", ImportService.import_oil_change_csv, db, content, file.filename)


@router.post("/import/consolidated", response_model=ImportResponse)
async def import_consolidated_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """
    Import the consolidated preventive log.

    **Expected columns:**
    - Matricule, Date, Entretien (code), Obs, Graisse (quantity)
    """
    content = await _read_upload(file)
    return _run("Consolidated", ImportService.import_consolidated_csv, db, content, file.filename)


@router.get("/import/history", response_model=List[ImportLogResponse])
def get_import_history(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    import_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(success|partial|failed)$"),
    db: Session = Depends(get_db)
):
    """
    Import logs, newest first.
    """
    query = db.query(ImportLog)
    if import_type:
        query = query.filter(ImportLog.import_type == import_type)
    if status:
        query = query.filter(ImportLog.status == status)

    return query.order_by(ImportLog.created_at.desc(), ImportLog.id.desc()).offset(skip).limit(limit).all()


# ==================== EXPORT ENDPOINTS ====================

def _stream(content: bytes, filename: str, media_type: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/export/planning/{year}")
def export_planning(
    year: int,
    format: str = Query("excel", pattern="^(csv|excel)$"),
    db: Session = Depends(get_db)
):
    """
    Export the planning grid of a year.

    **Formats:**
    - csv: ';' separated, UTF-8 with BOM
    - excel: styled .xlsx sheet
    """
    content, filename, media_type = ExportService.export_matrix(db, year, format)
    return _stream(content, filename, media_type)


@router.get("/export/follow-up/{year}")
def export_follow_up(
    year: int,
    format: str = Query("excel", pattern="^(csv|excel)$"),
    db: Session = Depends(get_db)
):
    """
    Export the follow-up grid of a year; realized cells carry their date.
    """
    content, filename, media_type = ExportService.export_matrix(db, year, format, follow_up=True)
    return _stream(content, filename, media_type)
