"""
Export Service - planning and follow-up grids to CSV and Excel.
"""

from sqlalchemy.orm import Session
from typing import Dict, Tuple
from datetime import datetime
import pandas as pd
import io
import logging

# Excel styling
from openpyxl.styles import Font, Alignment, PatternFill
from openpyxl.utils import get_column_letter

from gmao_planning.catalog import OPERATION_CATALOG
from gmao_planning.services.matrix_service import MatrixService

logger = logging.getLogger(__name__)


HEADER_FILL = PatternFill(start_color="3b82f6", end_color="3b82f6", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF", size=11)
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)
REALIZED_FILL = PatternFill(start_color="DCFCE7", end_color="DCFCE7", fill_type="solid")


def format_cell(cell: Dict) -> str:
    """Render one grid cell as text: '31/03/2024 C' or '31/03/2024 C ✓ 15/03/2024'"""
    if not cell:
        return ""
    text = f"{cell['scheduled_date']} {cell['level']}"
    if cell["realized"] and cell["level"] != "HP":
        text += f" ✓ {cell['realized_date']}"
    return text


class ExportService:
    """Service class for grid exports"""

    @staticmethod
    def matrix_dataframe(db: Session, year: int, follow_up: bool) -> pd.DataFrame:
        matrix = MatrixService.build_matrix(db, year, follow_up=follow_up, paginate=False)
        columns = ["Matricule", "Mois", *[op.label for op in OPERATION_CATALOG]]

        data = []
        for row in matrix["rows"]:
            matricule, month, *cells = row
            data.append([matricule, month, *[format_cell(cell) for cell in cells]])

        return pd.DataFrame(data, columns=columns)

    @staticmethod
    def export_matrix(
        db: Session,
        year: int,
        format: str,
        follow_up: bool = False
    ) -> Tuple[bytes, str, str]:
        """
        Export a full year grid.

        Args:
            db: Database session
            year: Target year
            format: 'csv' or 'excel'
            follow_up: Export the reconciled grid instead of the raw plan

        Returns:
            Tuple of (file_content, filename, media_type)
        """
        df = ExportService.matrix_dataframe(db, year, follow_up)
        kind = "suivi" if follow_up else "planning"
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        output = io.BytesIO()

        if format == 'csv':
            # CSV with UTF-8 BOM for Excel compatibility
            df.to_csv(output, index=False, encoding='utf-8-sig', sep=';')
            filename = f"{kind}_{year}_{stamp}.csv"
            media_type = "text/csv"
        else:  # excel
            sheet = f"{kind.capitalize()} {year}"
            with pd.ExcelWriter(output, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name=sheet, index=False)
                worksheet = writer.sheets[sheet]

                for cell in worksheet[1]:
                    cell.fill = HEADER_FILL
                    cell.font = HEADER_FONT
                    cell.alignment = HEADER_ALIGN

                for row in worksheet.iter_rows(min_row=2, min_col=3):
                    for cell in row:
                        if cell.value and "✓" in str(cell.value):
                            cell.fill = REALIZED_FILL

                for idx, col in enumerate(df.columns, start=1):
                    lengths = df[col].astype(str).apply(len)
                    max_length = max(lengths.max() if len(lengths) else 0, len(col))
                    worksheet.column_dimensions[get_column_letter(idx)].width = min(max_length + 2, 40)

            filename = f"{kind}_{year}_{stamp}.xlsx"
            media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

        output.seek(0)
        logger.info(f"Exported {kind} grid for {year} as {format} ({len(df)} rows)")
        return output.getvalue(), filename, media_type
