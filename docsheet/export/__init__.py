"""Export module for writing extracted records to Excel spreadsheets."""

from .excel import XLSX_MIME_TYPE, ExcelExporter, to_spreadsheet

__all__ = ["ExcelExporter", "XLSX_MIME_TYPE", "to_spreadsheet"]
