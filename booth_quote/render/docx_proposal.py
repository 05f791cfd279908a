from __future__ import annotations

import io
import logging
from typing import Dict, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Mm, Pt, RGBColor
from docx.table import _Cell
from docx.text.paragraph import Paragraph

from booth_quote.images import open_image_ref
from booth_quote.render.layout import GroupSection, ProposalDocument, fmt_money, fmt_qty, fmt_whole

logger = logging.getLogger(__name__)


# ---------------------------
# 1) Placeholders
# ---------------------------

def _placeholders(document: ProposalDocument) -> Dict[str, str]:
    meta = dict(document.header.meta)
    return {
        "{{COMPANY_NAME}}": document.header.brand_name,
        "{{CLIENT}}": document.recipient.client,
        "{{PROJECT}}": document.recipient.project_name,
        "{{QUOTE_NO}}": meta.get("QUOTE #", ""),
        "{{DATE}}": meta.get("DATE", ""),
        "{{VALID_UNTIL}}": meta.get("VALID UNTIL", ""),
        "{{GRAND_TOTAL}}": f"{fmt_whole(document.footer.grand_total)} {document.footer.currency}",
    }


# ---------------------------
# 2) Safe text set in paragraph/cell
# ---------------------------

def _set_paragraph_text_preserve_runs(p: Paragraph, new_text: str) -> None:
    """Write into the first run and blank the others, keeping run formatting."""
    if not p.runs:
        p.add_run(new_text)
        return
    for r in p.runs:
        r.text = ""
    p.runs[0].text = new_text


def _set_cell_text(cell: _Cell, text: str, bold: bool = False, size: float = 8, color: Optional[str] = None,
                   align=None) -> None:
    p = cell.paragraphs[0]
    _set_paragraph_text_preserve_runs(p, text)
    run = p.runs[0]
    run.font.bold = bold
    run.font.size = Pt(size)
    if color:
        run.font.color.rgb = RGBColor.from_string(color.lstrip("#").upper())
    if align is not None:
        p.alignment = align


def _shade(cell: _Cell, color: str) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), color.lstrip("#").upper())
    tc_pr.append(shd)


def _replace_placeholders(doc, values: Dict[str, str]) -> None:
    def fix(p: Paragraph) -> None:
        full = "".join(r.text for r in p.runs)
        if "{{" not in full or "}}" not in full:
            return
        for ph, val in values.items():
            full = full.replace(ph, val)
        _set_paragraph_text_preserve_runs(p, full)

    for p in doc.paragraphs:
        fix(p)
    for t in doc.tables:
        for row in t.rows:
            for cell in row.cells:
                for p in cell.paragraphs:
                    fix(p)


def _picture_stream(ref: str) -> Optional[io.BytesIO]:
    img = open_image_ref(ref)
    if img is None:
        return None
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return buf


# ---------------------------
# 3) Blocks
# ---------------------------

def _add_header(doc, document: ProposalDocument) -> None:
    h = document.header
    title = doc.add_paragraph()
    run = title.add_run(h.brand_name)
    run.font.bold = True
    run.font.size = Pt(20)
    run.font.color.rgb = RGBColor.from_string(document.accent.lstrip("#").upper())
    for ln in h.company_lines:
        doc.add_paragraph(ln)

    meta = doc.add_table(rows=len(h.meta), cols=2)
    meta.style = "Table Grid"
    for row, (label, value) in zip(meta.rows, h.meta):
        _set_cell_text(row.cells[0], label, bold=True, color="#64748B")
        _set_cell_text(row.cells[1], value, bold=True)

    r = document.recipient
    doc.add_paragraph()
    p = doc.add_paragraph()
    run = p.add_run("CUSTOMER RECIPIENT")
    run.font.bold = True
    run.font.size = Pt(8)
    p = doc.add_paragraph()
    run = p.add_run(r.client.upper())
    run.font.bold = True
    run.font.size = Pt(12)
    doc.add_paragraph(r.project_name.upper())
    for ln in r.lines:
        doc.add_paragraph(ln)


def _add_section(doc, s: GroupSection) -> None:
    heading = doc.add_heading(f"{s.index}. {s.name.upper()}", level=2)
    for run in heading.runs:
        run.font.color.rgb = RGBColor.from_string(s.accent.lstrip("#").upper())

    table = doc.add_table(rows=1, cols=4)
    table.style = "Table Grid"
    for cell, label in zip(table.rows[0].cells, ["DESCRIPTION", "UNIT PRICE", "QTY", "TOTAL"]):
        _set_cell_text(cell, label, bold=True, color="#FFFFFF")
        _shade(cell, s.accent)

    for row in s.rows:
        cells = table.add_row().cells
        _set_cell_text(cells[0], " ".join(row.lines), bold=True)
        _set_cell_text(cells[1], fmt_money(row.unit_price), align=WD_ALIGN_PARAGRAPH.CENTER)
        _set_cell_text(cells[2], fmt_qty(row.quantity), bold=True, align=WD_ALIGN_PARAGRAPH.CENTER)
        _set_cell_text(cells[3], fmt_money(row.total), bold=True, align=WD_ALIGN_PARAGRAPH.RIGHT)
        if row.image_ref:
            stream = _picture_stream(row.image_ref)
            if stream is not None:
                cells[0].paragraphs[0].add_run().add_picture(stream, width=Mm(8))
        if row.shaded:
            for c in cells:
                _shade(c, "#F8FAFC")

    cells = table.add_row().cells
    merged = cells[0].merge(cells[2])
    _set_cell_text(merged, "SECTION SUBTOTAL", bold=True, color="#64748B", align=WD_ALIGN_PARAGRAPH.RIGHT)
    _set_cell_text(cells[3], fmt_money(s.subtotal), bold=True, align=WD_ALIGN_PARAGRAPH.RIGHT)

    if s.image_panel is None:
        return
    p = doc.add_paragraph()
    run = p.add_run("REF VISUALS")
    run.font.bold = True
    run.font.size = Pt(7)
    cols = s.image_panel.columns
    grid = doc.add_table(rows=0, cols=cols)
    cells = None
    for i, tile in enumerate(s.image_panel.tiles):
        if i % cols == 0:
            cells = grid.add_row().cells
        stream = _picture_stream(tile.ref)
        cell = cells[i % cols]
        if stream is not None:
            cell.paragraphs[0].add_run().add_picture(stream, width=Mm(tile.size))
        cap = cell.add_paragraph(tile.label)
        cap.alignment = WD_ALIGN_PARAGRAPH.CENTER


def _add_footer(doc, document: ProposalDocument) -> None:
    f = document.footer
    doc.add_heading("TERMS AND CONDITIONS", level=3)
    for term in f.terms:
        p = doc.add_paragraph(term)
        for run in p.runs:
            run.font.size = Pt(8)

    box = doc.add_table(rows=len(f.breakdown) + 1, cols=2)
    box.style = "Table Grid"
    for row, (label, value) in zip(box.rows, f.breakdown):
        _set_cell_text(row.cells[0], label, bold=True, color="#64748B")
        _set_cell_text(row.cells[1], fmt_money(value), bold=True, align=WD_ALIGN_PARAGRAPH.RIGHT)
    last = box.rows[-1].cells
    _set_cell_text(last[0], "TOTAL INVESTMENT PORTFOLIO", bold=True, color="#FFFFFF")
    _set_cell_text(last[1], f"{fmt_whole(f.grand_total)} {f.currency}", bold=True, size=14, color="#FFFFFF",
                   align=WD_ALIGN_PARAGRAPH.RIGHT)
    for c in last:
        _shade(c, document.accent)

    doc.add_paragraph()
    doc.add_paragraph("OFFICIAL CUSTOMER ACCEPTANCE SIGNATURE: ______________________    SIGNATURE DATE: ________")
    doc.add_paragraph("    ".join(f.closing))


# ---------------------------
# 4) Main render function
# ---------------------------

def render_proposal_docx(document: ProposalDocument, output_path: str, template_path: Optional[str] = None) -> None:
    """
    Write the proposal as an editable Word document.

    With a template, its {{PLACEHOLDERS}} are filled in first and the
    proposal blocks are appended after the template body.
    """
    doc = Document(template_path) if template_path else Document()
    if template_path:
        _replace_placeholders(doc, _placeholders(document))

    _add_header(doc, document)
    for s in document.sections:
        _add_section(doc, s)
    _add_footer(doc, document)

    doc.save(output_path)
    logger.info("DOCX proposal saved: %s (%d section(s))", output_path, len(document.sections))
