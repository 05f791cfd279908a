from __future__ import annotations

import logging
from typing import Dict, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from booth_quote.render.layout import ProposalDocument, fmt_whole

logger = logging.getLogger(__name__)

MONEY_FORMAT = "#,##0.00"
HEADERS = ["Description", "Unit Price", "Qty", "Total"]


def _fill(color: str) -> PatternFill:
    c = color.lstrip("#").upper()
    return PatternFill(start_color=c, end_color=c, fill_type="solid")


def _replace_placeholders(ws: Worksheet, values: Dict[str, str]) -> None:
    for row in ws.iter_rows():
        for cell in row:
            if isinstance(cell.value, str) and "{{" in cell.value and "}}" in cell.value:
                v = cell.value
                for ph, val in values.items():
                    v = v.replace(ph, val)
                cell.value = v


def _write_quote(ws: Worksheet, document: ProposalDocument, start_row: int) -> int:
    """Write header, sections and totals from start_row on; returns the next free row."""
    bold = Font(bold=True)
    r = start_row

    ws.cell(r, 1).value = document.header.brand_name
    ws.cell(r, 1).font = Font(bold=True, size=16)
    r += 1
    for ln in document.header.company_lines:
        ws.cell(r, 1).value = ln
        r += 1
    r += 1
    for label, value in document.header.meta:
        ws.cell(r, 1).value = label
        ws.cell(r, 1).font = bold
        ws.cell(r, 2).value = value
        r += 1
    r += 1
    ws.cell(r, 1).value = "Customer"
    ws.cell(r, 1).font = bold
    ws.cell(r, 2).value = document.recipient.client
    r += 1
    ws.cell(r, 1).value = "Project"
    ws.cell(r, 1).font = bold
    ws.cell(r, 2).value = document.recipient.project_name
    r += 2

    for s in document.sections:
        ws.cell(r, 1).value = f"{s.index}. {s.name}"
        ws.cell(r, 1).font = Font(bold=True, color="FFFFFF")
        for c in range(1, len(HEADERS) + 1):
            ws.cell(r, c).fill = _fill(s.accent)
        r += 1
        for c, h in enumerate(HEADERS, start=1):
            ws.cell(r, c).value = h
            ws.cell(r, c).font = bold
        r += 1
        for row in s.rows:
            ws.cell(r, 1).value = " ".join(row.lines)
            ws.cell(r, 2).value = float(row.unit_price)
            ws.cell(r, 3).value = float(row.quantity)
            ws.cell(r, 4).value = float(row.total)
            ws.cell(r, 2).number_format = MONEY_FORMAT
            ws.cell(r, 4).number_format = MONEY_FORMAT
            r += 1
        ws.cell(r, 3).value = "Subtotal"
        ws.cell(r, 3).font = bold
        ws.cell(r, 4).value = float(s.subtotal)
        ws.cell(r, 4).number_format = MONEY_FORMAT
        ws.cell(r, 4).font = bold
        r += 2

    f = document.footer
    for label, value in f.breakdown:
        ws.cell(r, 3).value = label
        ws.cell(r, 4).value = float(value)
        ws.cell(r, 4).number_format = MONEY_FORMAT
        r += 1
    ws.cell(r, 3).value = f"Total ({f.currency})"
    ws.cell(r, 3).font = bold
    ws.cell(r, 4).value = float(f.grand_total)
    ws.cell(r, 4).number_format = MONEY_FORMAT
    ws.cell(r, 4).font = bold
    r += 2

    ws.cell(r, 1).value = "Terms"
    ws.cell(r, 1).font = bold
    r += 1
    for term in f.terms:
        ws.cell(r, 1).value = term
        r += 1
    return r


def create_default_workbook(document: ProposalDocument) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Quote"
    ws.column_dimensions["A"].width = 48
    for col in "BCD":
        ws.column_dimensions[col].width = 16
    _write_quote(ws, document, start_row=1)
    return wb


def render_quote_xlsx(document: ProposalDocument, output_path: str, template_path: Optional[str] = None) -> None:
    """Spreadsheet version of the proposal, on a template's first sheet when one is given."""
    if template_path:
        wb = load_workbook(template_path)
        ws = wb.active
        meta = dict(document.header.meta)
        _replace_placeholders(ws, {
            "{{COMPANY_NAME}}": document.header.brand_name,
            "{{CLIENT}}": document.recipient.client,
            "{{PROJECT}}": document.recipient.project_name,
            "{{QUOTE_NO}}": meta.get("QUOTE #", ""),
            "{{DATE}}": meta.get("DATE", ""),
            "{{GRAND_TOTAL}}": fmt_whole(document.footer.grand_total),
        })
        _write_quote(ws, document, start_row=ws.max_row + 2)
    else:
        wb = create_default_workbook(document)
    wb.save(output_path)
    logger.info("XLSX quote saved: %s", output_path)
