from __future__ import annotations

import io
import logging
import threading
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import quote

import fitz  # PyMuPDF
from PIL import Image, ImageDraw, ImageFont, ImageOps

from booth_quote.config import CURRENCY, PAGE_HEIGHT_MM, PAGE_WIDTH_MM, RASTER_DPI
from booth_quote.images import open_image_ref
from booth_quote.models import AppConfig, Project, Totals, TransportRule
from booth_quote.pricing import compute_totals
from booth_quote.render.docx_proposal import render_proposal_docx
from booth_quote.render.layout import (
    CLOSING_H,
    CONTENT_WIDTH,
    COST_BOX_H,
    COST_BOX_W,
    DESC_SHARE,
    FOOTER_GAP,
    PANEL_LABEL_H,
    SECTION_TITLE_H,
    SIDE_GAP,
    SUBTOTAL_H,
    TABLE_HEAD_H,
    TILE_CAPTION_H,
    GroupSection,
    PagePlacement,
    ProposalDocument,
    compose_proposal,
    fmt_money,
    fmt_qty,
    fmt_whole,
    paginate,
    wrap_text,
)

logger = logging.getLogger(__name__)

PT_PER_MM = 72 / 25.4

INK = "#0f172a"
MUTED = "#64748b"
FAINT = "#cbd5e1"
SHADE = "#f8fafc"
SUBTOTAL_FILL = "#f1f5f9"


class ExportInProgress(Exception):
    """Raised when an export is requested while the previous one is still running."""


# ---------------------------
# 1) Rasterisation (Pillow)
# ---------------------------

@lru_cache(maxsize=32)
def _font(size_px: int, bold: bool = False) -> ImageFont.ImageFont:
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size_px)
    except OSError:
        return ImageFont.load_default()


class _Canvas:
    def __init__(self, width_mm: float, height_mm: float, dpi: int):
        self.ppm = dpi / 25.4
        self.dpi = dpi
        self.img = Image.new("RGB", (self.px(width_mm), self.px(height_mm)), "white")
        self.draw = ImageDraw.Draw(self.img)

    def px(self, mm: float) -> int:
        return int(round(mm * self.ppm))

    def rect(self, x: float, y: float, w: float, h: float, fill=None, outline=None, line_mm: float = 0.3) -> None:
        self.draw.rectangle(
            [self.px(x), self.px(y), self.px(x + w), self.px(y + h)],
            fill=fill,
            outline=outline,
            width=max(1, self.px(line_mm)) if outline else 0,
        )

    def line(self, x0: float, y0: float, x1: float, y1: float, fill=INK, line_mm: float = 0.3) -> None:
        self.draw.line([self.px(x0), self.px(y0), self.px(x1), self.px(y1)], fill=fill, width=max(1, self.px(line_mm)))

    def text(self, x: float, y: float, s: str, pt: float, fill=INK, bold: bool = False, align: str = "left",
             box_w: float = 0.0) -> None:
        font = _font(max(6, int(round(pt * self.dpi / 72))), bold)
        px_x = self.px(x)
        if align != "left":
            width = self.draw.textlength(s, font=font)
            room = self.px(box_w)
            px_x += int(room - width) if align == "right" else int((room - width) / 2)
        self.draw.text((px_x, self.px(y)), s, fill=fill, font=font)

    def paste_ref(self, ref: str, x: float, y: float, w: float, h: float) -> bool:
        img = open_image_ref(ref)
        if img is None:
            self.rect(x, y, w, h, fill=SUBTOTAL_FILL)
            return False
        tile = ImageOps.fit(img, (max(1, self.px(w)), max(1, self.px(h))))
        self.img.paste(tile, (self.px(x), self.px(y)))
        return True


def _draw_header(c: _Canvas, doc: ProposalDocument) -> None:
    h = doc.header
    x0, y = doc.margin, h.top
    right = doc.margin + CONTENT_WIDTH

    c.rect(x0, y, 16, 16, fill=doc.accent)
    if not (h.logo and c.paste_ref(h.logo, x0, y, 16, 16)):
        c.text(x0, y + 4, h.brand_icon[:2], 20, fill="white", bold=True, align="center", box_w=16)
    c.text(x0 + 21, y + 1, h.brand_name, 22, fill=doc.accent, bold=True)
    c.text(x0 + 21, y + 11, "OFFICIAL QUOTATION DOCUMENT", 6, fill=MUTED, bold=True)
    for i, ln in enumerate(h.company_lines):
        c.text(x0, y + 22 + i * 5, ln, 8, fill=INK if i == 0 else MUTED, bold=(i == 0))

    table_w, label_w, row_h = 52.0, 21.0, 8.0
    tx = right - table_w
    c.text(tx, y, "QUOTE", 30, fill="#e2e8f0", bold=True, align="right", box_w=table_w)
    for i, (label, value) in enumerate(h.meta):
        ry = y + 20 + i * row_h
        c.rect(tx, ry, label_w, row_h, fill=SHADE if i % 2 == 0 else None, outline=INK)
        c.rect(tx + label_w, ry, table_w - label_w, row_h, outline=INK)
        c.text(tx + 1, ry + 2.2, label, 6.5, fill=MUTED, bold=True, align="right", box_w=label_w - 2)
        c.text(tx + label_w, ry + 2.2, value, 7, fill="#dc2626" if label == "VALID UNTIL" else INK,
               bold=True, align="center", box_w=table_w - label_w)

    c.line(x0, y + h.height - 2, right, y + h.height - 2, fill="#f1f5f9", line_mm=0.6)


def _draw_recipient(c: _Canvas, doc: ProposalDocument) -> None:
    r = doc.recipient
    x0, y = doc.margin, r.top
    c.rect(x0, y, CONTENT_WIDTH, 7, fill=doc.accent)
    c.text(x0 + 5, y + 1.8, "CUSTOMER RECIPIENT", 7.5, fill="white", bold=True)
    c.rect(x0, y + 7, CONTENT_WIDTH, r.height - 7, fill="#fbfcfd", outline=FAINT)
    c.text(x0 + 5, y + 11, r.client.upper(), 12, bold=True)
    c.text(x0 + 5, y + 18, r.project_name.upper(), 7, fill=doc.accent, bold=True)
    for i, ln in enumerate(r.lines):
        c.text(x0 + 5, y + 24 + i * 5, ln, 8, fill=MUTED)


def _draw_section(c: _Canvas, doc: ProposalDocument, s: GroupSection) -> None:
    x0, y = doc.margin, s.top
    c.rect(x0, y, 8, 8, fill=s.accent)
    c.text(x0, y + 2, str(s.index), 8, fill="white", bold=True, align="center", box_w=8)
    c.text(x0 + 11, y + 1.5, s.name.upper(), 10, bold=True)
    c.line(x0 + 11, y + 8, x0 + 11 + min(len(s.name) * 2.6 + 4, CONTENT_WIDTH - 11), y + 8, fill=s.accent, line_mm=0.6)

    tw = s.table_width
    cols = [tw * DESC_SHARE, tw * 0.15, tw * 0.12]
    cols.append(tw - sum(cols))
    edges = [x0]
    for w in cols:
        edges.append(edges[-1] + w)

    ty = y + SECTION_TITLE_H
    c.rect(x0, ty, tw, TABLE_HEAD_H, fill=s.accent, outline=INK)
    for (label, align), left, w in zip(
        [("DESCRIPTION", "left"), ("UNIT PRICE", "center"), ("QTY", "center"), ("TOTAL", "right")], edges, cols
    ):
        c.text(left + 2, ty + 2.3, label, 6.5, fill="white", bold=True, align=align, box_w=w - 4)

    ry = ty + TABLE_HEAD_H
    for row in s.rows:
        if row.shaded:
            c.rect(x0, ry, tw, row.height, fill=SHADE)
        text_x = x0 + 2
        if row.image_ref:
            c.paste_ref(row.image_ref, x0 + 1.5, ry + 1, 5, 5)
            text_x += 6.5
        for i, ln in enumerate(row.lines):
            c.text(text_x, ry + 1.8 + i * 4, ln, 7, fill="#334155", bold=True)
        c.text(edges[1] + 2, ry + 1.8, fmt_money(row.unit_price), 7, align="center", box_w=cols[1] - 4)
        c.text(edges[2] + 2, ry + 1.8, fmt_qty(row.quantity), 7, bold=True, align="center", box_w=cols[2] - 4)
        c.text(edges[3] + 2, ry + 1.8, fmt_money(row.total), 7, bold=True, align="right", box_w=cols[3] - 4)
        ry += row.height

    c.rect(x0, ry, tw, SUBTOTAL_H, fill=SUBTOTAL_FILL, outline=INK)
    c.text(x0 + 2, ry + 2, "SECTION SUBTOTAL", 6, fill=MUTED, bold=True, align="right", box_w=edges[3] - x0 - 4)
    c.text(edges[3] + 2, ry + 1.8, fmt_money(s.subtotal), 7, bold=True, align="right", box_w=cols[3] - 4)
    c.rect(x0, ty, tw, ry + SUBTOTAL_H - ty, outline=INK)
    for e in edges[1:-1]:
        c.line(e, ty, e, ry + SUBTOTAL_H, fill=INK, line_mm=0.2)

    panel = s.image_panel
    if panel is None:
        return
    px0 = x0 + tw + SIDE_GAP
    c.rect(px0, ty, panel.width, PANEL_LABEL_H - 1.5, fill=s.accent)
    c.text(px0 + 2, ty + 1.2, "REF VISUALS", 6.5, fill="white", bold=True)
    for tile in panel.tiles:
        tx, tyy = px0 + tile.x, ty + tile.y
        c.rect(tx, tyy, tile.size, tile.size + TILE_CAPTION_H, fill="white", outline=INK, line_mm=0.2)
        c.paste_ref(tile.ref, tx + 0.5, tyy + 0.5, tile.size - 1, tile.size - 1)
        c.text(tx, tyy + tile.size, tile.label, 4.5, fill=FAINT, bold=True, align="center", box_w=tile.size)


def _draw_footer(c: _Canvas, doc: ProposalDocument) -> None:
    f = doc.footer
    x0 = doc.margin
    y = f.top + FOOTER_GAP
    right = x0 + CONTENT_WIDTH
    c.line(x0, y - 4, right, y - 4, line_mm=0.6)

    terms_w = CONTENT_WIDTH - COST_BOX_W - SIDE_GAP
    c.rect(x0, y, terms_w, 7, fill=doc.accent)
    c.text(x0 + 5, y + 1.8, "TERMS AND CONDITIONS", 7, fill="white", bold=True)
    ly = y + 11
    for term in f.terms:
        for ln in wrap_text(term, terms_w - 10):
            c.text(x0 + 5, ly, ln, 6.5, fill="#475569")
            ly += 5
    ly += 6
    c.text(x0 + 5, ly, "OFFICIAL CUSTOMER ACCEPTANCE SIGNATURE:", 5.5, fill=MUTED, bold=True)
    c.line(x0 + 5, ly + 12, x0 + terms_w - 5, ly + 12, fill=FAINT)
    c.text(x0 + 5, ly + 14, "AUTHORIZED RECIPIENT REPRESENTATIVE", 5.5, fill=MUTED, bold=True)
    c.text(x0 + 5, ly + 14, "SIGNATURE DATE", 5.5, fill=MUTED, bold=True, align="right", box_w=terms_w - 10)

    bx = right - COST_BOX_W
    c.rect(bx, y, COST_BOX_W, COST_BOX_H, outline=INK, line_mm=0.6)
    for i, (label, value) in enumerate(f.breakdown):
        last = i == len(f.breakdown) - 1
        by = y + 6 + i * 8 + (3 if last else 0)
        if last:
            c.line(bx + 5, by - 3, right - 5, by - 3, fill=FAINT)
        c.text(bx + 5, by, label, 7, fill=doc.accent if last else MUTED, bold=True)
        c.text(bx + 5, by, fmt_money(value), 7, fill=doc.accent if last else INK, bold=True, align="right",
               box_w=COST_BOX_W - 10)

    gy = y + COST_BOX_H - 30
    c.rect(bx, gy, COST_BOX_W, 30, fill=doc.accent)
    c.text(bx + 5, gy + 4, "TOTAL INVESTMENT PORTFOLIO", 7, fill="#cbd5e1", bold=True, align="right",
           box_w=COST_BOX_W - 10)
    c.text(bx + 5, gy + 13, f"{fmt_whole(f.grand_total)} {f.currency}", 24, fill="white", bold=True,
           align="right", box_w=COST_BOX_W - 10)

    cy = f.top + f.height - CLOSING_H + 6
    c.line(x0, cy - 3, right, cy - 3, fill="#f1f5f9")
    c.text(x0, cy, f.closing[0], 5.5, fill=FAINT, bold=True)
    c.text(x0, cy, f.closing[1], 5.5, fill=FAINT, bold=True, align="right", box_w=CONTENT_WIDTH)


def rasterize(doc: ProposalDocument, dpi: int = RASTER_DPI) -> Image.Image:
    """Draw the whole document on one tall white image at natural size."""
    c = _Canvas(doc.width, doc.height, dpi)
    _draw_header(c, doc)
    _draw_recipient(c, doc)
    for s in doc.sections:
        _draw_section(c, doc, s)
    _draw_footer(c, doc)
    return c.img


# ---------------------------
# 2) PDF assembly (PyMuPDF)
# ---------------------------

def _page_png(image: Image.Image, doc: ProposalDocument, pl: PagePlacement, page_width: float):
    """Crop the part of the raster visible on this page; returns (png bytes, visible x0, visible x1)."""
    px_per_mm = image.width / doc.width
    vis_x0 = max(pl.x, 0.0)
    vis_x1 = min(pl.x + pl.width, page_width)

    left = (vis_x0 - pl.x) / pl.scale * px_per_mm
    right = (vis_x1 - pl.x) / pl.scale * px_per_mm
    top = pl.source_top / pl.scale * px_per_mm
    bottom = (pl.source_top + pl.source_height) / pl.scale * px_per_mm

    box = (
        int(round(left)),
        int(round(top)),
        max(int(round(right)), int(round(left)) + 1),
        max(min(int(round(bottom)), image.height), int(round(top)) + 1),
    )
    buf = io.BytesIO()
    image.crop(box).save(buf, format="PNG")
    return buf.getvalue(), vis_x0, vis_x1


def write_pdf(
    image: Image.Image,
    doc: ProposalDocument,
    placements: List[PagePlacement],
    output_path: Path,
    page_width: float = PAGE_WIDTH_MM,
    page_height: float = PAGE_HEIGHT_MM,
) -> int:
    with fitz.open() as pdf:
        for pl in placements:
            page = pdf.new_page(width=page_width * PT_PER_MM, height=page_height * PT_PER_MM)
            png, vis_x0, vis_x1 = _page_png(image, doc, pl, page_width)
            rect = fitz.Rect(vis_x0 * PT_PER_MM, 0, vis_x1 * PT_PER_MM, pl.height * PT_PER_MM)
            page.insert_image(rect, stream=png, keep_proportion=False)
        pdf.save(str(output_path))
        return len(placements)


# ---------------------------
# 3) Entry points
# ---------------------------

def render_proposal(
    project: Project,
    config: AppConfig,
    rules: Optional[Iterable[TransportRule]] = None,
    today: Optional[date] = None,
) -> ProposalDocument:
    """Lay out the priced document; saved projects use their own rate snapshot, drafts the config rates."""
    totals = compute_totals(project, config, rules, use_project_rates=not project.is_draft)
    return compose_proposal(project, config, totals, today=today)


def export_proposal(
    project: Project,
    config: AppConfig,
    output_path: Path,
    fit_to_page: Optional[bool] = None,
    scale_percent=None,
    rules: Optional[Iterable[TransportRule]] = None,
    dpi: int = RASTER_DPI,
    today: Optional[date] = None,
) -> Path:
    """
    Render and save a paginated PDF. fit_to_page / scale_percent default
    to what is stored on the project.
    """
    if fit_to_page is None:
        fit_to_page = project.fit_to_page
    if scale_percent is None:
        scale_percent = project.scale_percent

    doc = render_proposal(project, config, rules, today=today)
    placements = paginate(doc.width, doc.height, fit_to_page=fit_to_page, scale_percent=scale_percent)
    image = rasterize(doc, dpi=dpi)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    pages = write_pdf(image, doc, placements, output_path)
    logger.info("Proposal '%s' exported: %s (%d page(s), fit=%s, scale=%s)",
                project.name, output_path, pages, fit_to_page, scale_percent)
    return output_path


class ProposalExporter:
    """
    One export at a time. A second call while the first is running raises
    ExportInProgress; a failed rasterisation falls back to a DOCX file.
    """

    def __init__(self, config: AppConfig, rules: Optional[Iterable[TransportRule]] = None, dpi: int = RASTER_DPI):
        self.config = config
        self.rules = list(rules) if rules is not None else None
        self.dpi = dpi
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def export(self, project: Project, output_path: Path, fit_to_page: Optional[bool] = None,
               scale_percent=None) -> Path:
        if not self._busy.acquire(blocking=False):
            raise ExportInProgress(f"Export of '{project.name}' is already running")
        try:
            try:
                return export_proposal(
                    project, self.config, output_path,
                    fit_to_page=fit_to_page, scale_percent=scale_percent,
                    rules=self.rules, dpi=self.dpi,
                )
            except (OSError, ValueError, RuntimeError) as e:
                logger.error("PDF export failed, falling back to DOCX: %s", e)
                fallback = Path(output_path).with_suffix(".docx")
                render_proposal_docx(render_proposal(project, self.config, self.rules), str(fallback))
                return fallback
        finally:
            self._busy.release()


def build_mailto(project: Project, totals: Totals, recipient: str, message: str = "") -> str:
    """mailto: link carrying the quotation summary."""
    subject = quote(f"Quotation: {project.name}")
    body = quote(f"{message}\n\nTotal: {fmt_whole(totals.grand_total)} {CURRENCY}")
    return f"mailto:{recipient}?subject={subject}&body={body}"


def total_pages(doc: ProposalDocument, fit_to_page: bool, scale_percent=100) -> int:
    return len(paginate(doc.width, doc.height, fit_to_page=fit_to_page, scale_percent=scale_percent))


__all__ = [
    "ExportInProgress",
    "ProposalExporter",
    "build_mailto",
    "export_proposal",
    "rasterize",
    "render_proposal",
    "total_pages",
    "write_pdf",
]
