"""
Artifact renderers for report tables.

PDF output uses fpdf2 with the built-in Helvetica font; Excel output uses
openpyxl. Both consume the same ReportTable so the two formats always carry
identical cell values in identical order.
"""

from __future__ import annotations

import io
from typing import Callable, Dict, List

from fpdf import FPDF
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from registry_reports.domain.reports import ExportFormat
from registry_reports.reports.errors import UnsupportedReportConfiguration
from registry_reports.reports.layouts import ReportTable

# Spreadsheet layout: info lines in rows 1-3, header on row 5
HEADER_ROW = 5
MAX_COLUMN_WIDTH = 60
HEADER_FILL = PatternFill(start_color="D3D3D3", end_color="D3D3D3", fill_type="solid")


def strip_control_characters(text: str) -> str:
    """Drop C0 control characters (other than tab and newlines) that worksheets reject."""
    return ILLEGAL_CHARACTERS_RE.sub("", text)


def clean_text_for_pdf(text: str) -> str:
    # Core PDF fonts are latin-1 only; anything else becomes '?'
    return strip_control_characters(text).encode("latin-1", "replace").decode("latin-1")


class ReportPDF(FPDF):
    def footer(self):
        self.set_y(-15)
        self.set_font("helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}", align="C")


def render_pdf(table: ReportTable) -> bytes:
    """Render title, info lines and a single table into a landscape A4 PDF."""
    pdf = ReportPDF(orientation="landscape", format="A4")
    pdf.set_creation_date(table.generated_at.astimezone())
    pdf.set_title(clean_text_for_pdf(table.title))
    pdf.add_page()

    title, *info = table.info_lines()
    pdf.set_font("helvetica", "B", 18)
    pdf.cell(0, 10, clean_text_for_pdf(title), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("helvetica", size=10)
    for line in info:
        pdf.cell(0, 6, clean_text_for_pdf(line), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    pdf.set_font("helvetica", size=9)
    with pdf.table(text_align="LEFT", first_row_as_headings=True) as grid:
        header = grid.row()
        for column in table.columns:
            header.cell(clean_text_for_pdf(column))
        for values in table.rows:
            row = grid.row()
            for value in values:
                row.cell(clean_text_for_pdf(value))

    return bytes(pdf.output())


def _fit_columns(widths: List[int], values) -> None:
    for idx, value in enumerate(values):
        widths[idx] = max(widths[idx], len(str(value)))


def render_excel(table: ReportTable) -> bytes:
    """Render info lines, a bold header row and the data grid into one sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = table.layout.sheet_name
    wb.properties.created = table.generated_at
    wb.properties.title = table.title

    for offset, line in enumerate(table.info_lines(), start=1):
        ws.cell(row=offset, column=1, value=line)
    ws.cell(row=1, column=1).font = Font(bold=True, size=14)

    widths = [0] * len(table.columns)
    for col, name in enumerate(table.columns, start=1):
        cell = ws.cell(row=HEADER_ROW, column=col, value=name)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL
    _fit_columns(widths, table.columns)

    for row_idx, values in enumerate(table.rows, start=HEADER_ROW + 1):
        for col, raw in enumerate(values, start=1):
            value = strip_control_characters(raw)
            cell = ws.cell(row=row_idx, column=col, value=value)
            if value.startswith("="):
                # Record text is data, never a formula
                cell.data_type = "s"
        _fit_columns(widths, values)

    for col, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col)].width = min(width + 2, MAX_COLUMN_WIDTH)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


RENDERERS: Dict[ExportFormat, Callable[[ReportTable], bytes]] = {
    ExportFormat.PDF: render_pdf,
    ExportFormat.EXCEL: render_excel,
}


def renderer_for(export_format: ExportFormat) -> Callable[[ReportTable], bytes]:
    try:
        return RENDERERS[export_format]
    except KeyError:
        raise UnsupportedReportConfiguration(
            f"No renderer for export format {export_format!r}", export_format=export_format
        ) from None
