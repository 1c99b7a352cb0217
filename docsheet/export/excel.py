"""
Excel export module for extracted records.

Handles:
- Writing schema-less records to a single-sheet workbook in memory
- Header row styling and frozen panes
- Column widths fitted to content
- Date-stamped download filenames
"""

import json
import logging
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from docsheet.config import AppConfig, get_config
from docsheet.models.extraction import ExtractedRecord

logger = logging.getLogger(__name__)

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _cell_value(value):
    """Coerce a record value into something openpyxl can store."""
    if isinstance(value, (dict, list)):
        value = json.dumps(value, ensure_ascii=False)
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


class ExcelExporter:
    """
    Exports extracted records to Excel.

    Features:
    - One row per record, one column per header
    - Styled, frozen header row
    - Column widths fitted to content
    """

    MIN_COLUMN_WIDTH = 10
    MAX_COLUMN_WIDTH = 60

    def __init__(self, config: Optional[AppConfig] = None):
        """Initialize the Excel exporter."""
        self.config = config or get_config()
        self._setup_styles()

    def _setup_styles(self):
        """Set up Excel styles for formatting."""
        self.header_font = Font(bold=True, color="FFFFFF")
        self.header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
        self.header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

        thin_border = Side(style="thin", color="CCCCCC")
        self.cell_border = Border(
            left=thin_border,
            right=thin_border,
            top=thin_border,
            bottom=thin_border,
        )

    def build_workbook(
        self,
        rows: list[ExtractedRecord],
        headers: Optional[list[str]] = None,
    ) -> Workbook:
        """
        Build a workbook from records.

        Args:
            rows: Records to write, in order
            headers: Column order; defaults to the keys of the first row.
                Keys outside headers are not written; missing keys stay blank.

        Returns:
            openpyxl Workbook with a single sheet
        """
        if headers is None:
            headers = list(rows[0]) if rows else []

        wb = Workbook()
        ws = wb.active
        ws.title = self.config.export_sheet_title

        self._write_headers(ws, headers)

        widths = [len(str(header)) for header in headers]
        for row_num, row_data in enumerate(rows, start=2):
            for col, header in enumerate(headers, start=1):
                value = _cell_value(row_data.get(header))
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = self.cell_border
                if value is not None:
                    widths[col - 1] = max(widths[col - 1], len(str(value)))

        for col, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(col)].width = min(
                max(width + 2, self.MIN_COLUMN_WIDTH),
                self.MAX_COLUMN_WIDTH,
            )

        return wb

    def _write_headers(self, ws, headers: list[str]):
        """Write header row with formatting."""
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.header_alignment
            cell.border = self.cell_border

        # Freeze header row
        ws.freeze_panes = "A2"

    def to_bytes(
        self,
        rows: list[ExtractedRecord],
        headers: Optional[list[str]] = None,
    ) -> bytes:
        """
        Serialize records to an .xlsx file in memory.

        Args:
            rows: Records to write
            headers: Column order (see build_workbook)

        Returns:
            The workbook as bytes, ready for download
        """
        wb = self.build_workbook(rows, headers)
        buffer = BytesIO()
        wb.save(buffer)
        logger.info(f"Exported {len(rows)} rows x {wb.active.max_column} columns to workbook")
        return buffer.getvalue()

    def export(
        self,
        rows: list[ExtractedRecord],
        file_path: Union[str, Path],
        headers: Optional[list[str]] = None,
    ) -> Path:
        """
        Write records to an Excel file on disk.

        Args:
            rows: Records to write
            file_path: Destination path (.xlsx enforced)
            headers: Column order (see build_workbook)

        Returns:
            Path to the exported file
        """
        file_path = Path(file_path)
        if file_path.suffix.lower() != ".xlsx":
            file_path = file_path.with_suffix(".xlsx")

        file_path.write_bytes(self.to_bytes(rows, headers))
        logger.info(f"Saved workbook to {file_path}")
        return file_path

    def build_filename(self, export_date: Optional[date] = None) -> str:
        """Download filename with a date stamp, e.g. Batch_Extraction_2024-01-15.xlsx."""
        export_date = export_date or date.today()
        return f"{self.config.export_filename_prefix}_{export_date.isoformat()}.xlsx"


def to_spreadsheet(
    rows: list[ExtractedRecord],
    headers: Optional[list[str]] = None,
) -> bytes:
    """
    Convenience function to serialize records to .xlsx bytes.

    Args:
        rows: Records to write
        headers: Column order

    Returns:
        Workbook bytes
    """
    exporter = ExcelExporter()
    return exporter.to_bytes(rows, headers)
