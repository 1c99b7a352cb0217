from datetime import date
from io import BytesIO

from openpyxl import load_workbook

from docsheet.config import AppConfig
from docsheet.export.excel import ExcelExporter


def read_back(data):
    ws = load_workbook(BytesIO(data)).active
    return ws, [[cell.value for cell in row] for row in ws.iter_rows()]


def test_rows_follow_header_order():
    exporter = ExcelExporter(AppConfig())
    rows = [{"b": "2", "a": "1"}, {"a": "3", "b": "4"}]

    ws, values = read_back(exporter.to_bytes(rows, ["a", "b"]))

    assert ws.title == "Data"
    assert ws.freeze_panes == "A2"
    assert values == [["a", "b"], ["1", "2"], ["3", "4"]]


def test_headers_default_to_first_row_keys():
    exporter = ExcelExporter(AppConfig())
    rows = [{"x": 1}, {"x": 2, "extra": "dropped"}]

    _, values = read_back(exporter.to_bytes(rows))

    assert values == [["x"], [1], [2]]


def test_missing_values_stay_blank():
    exporter = ExcelExporter(AppConfig())

    _, values = read_back(exporter.to_bytes([{"a": "1"}], ["a", "b"]))

    assert values == [["a", "b"], ["1", None]]


def test_nested_values_are_written_as_json():
    exporter = ExcelExporter(AppConfig())

    _, values = read_back(exporter.to_bytes([{"items": ["a", "b"], "meta": {"k": 1}}]))

    assert values[1] == ['["a", "b"]', '{"k": 1}']


def test_empty_batch_writes_empty_sheet():
    _, values = read_back(ExcelExporter(AppConfig()).to_bytes([]))

    assert values in ([], [[None]])


def test_filename_is_date_stamped():
    exporter = ExcelExporter(AppConfig())

    assert exporter.build_filename(date(2024, 1, 15)) == "Batch_Extraction_2024-01-15.xlsx"


def test_export_writes_xlsx_file(tmp_path):
    exporter = ExcelExporter(AppConfig())

    path = exporter.export([{"a": 1}], tmp_path / "out.csv")

    assert path.suffix == ".xlsx"
    _, values = read_back(path.read_bytes())
    assert values == [["a"], [1]]
