"""
Proposal document model: lays a priced project out on a fixed-width A4
column and decides how the rendered result is split into pages.

All geometry is in millimetres of the unscaled document.
"""
from __future__ import annotations

import math
import textwrap
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional, Tuple

from booth_quote.config import (
    CURRENCY,
    DEFAULT_PRIMARY_COLOR,
    PAGE_HEIGHT_MM,
    PAGE_MARGIN_MM,
    PAGE_WIDTH_MM,
    SCALE_MAX,
    SCALE_MIN,
)
from booth_quote.models import AppConfig, Project, ProjectGroup, Totals
from booth_quote.pricing import group_subtotal

# ---------------------------
# 1) Block geometry (mm)
# ---------------------------

CONTENT_WIDTH = PAGE_WIDTH_MM - 2 * PAGE_MARGIN_MM

HEADER_H = 64.0
RECIPIENT_H = 38.0
BLOCK_GAP = 10.0

SECTION_TITLE_H = 13.0
TABLE_HEAD_H = 8.0
ROW_H = 7.0
ROW_EXTRA_LINE_H = 4.0
SUBTOTAL_H = 7.0
SECTION_GAP = 12.0

# table : image panel = 2.5 : 1, 8 mm apart
SIDE_GAP = 8.0
TABLE_WITH_PANEL_W = (CONTENT_WIDTH - SIDE_GAP) * 2.5 / 3.5
PANEL_W = CONTENT_WIDTH - SIDE_GAP - TABLE_WITH_PANEL_W
PANEL_COLUMNS = 2
PANEL_LABEL_H = 7.0
TILE_GAP = 2.0
TILE_CAPTION_H = 3.0

# description column share of the table width, ~2 characters per mm at 11px
DESC_SHARE = 0.55
CHARS_PER_MM = 0.5

FOOTER_GAP = 16.0
TERMS_BASE_H = 45.0
TERMS_LINE_H = 5.0
COST_BOX_W = 85.0
COST_BOX_H = 78.0
CLOSING_H = 16.0


# ---------------------------
# 2) Formatting helpers
# ---------------------------

def fmt_money(v: Decimal) -> str:
    """12345.6 -> '12,345.60'."""
    q = v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{q:,.2f}"


def fmt_whole(v: Decimal) -> str:
    """Rounded to a whole amount: 17869.5 -> '17,870'."""
    q = v.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{q:,.0f}"


def fmt_qty(q: Decimal) -> str:
    if q == q.to_integral():
        return str(int(q))
    return format(q.normalize(), "f")


def fmt_rate(rate: Decimal) -> str:
    """0.14 -> '14.0%'."""
    pct = (rate * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{pct}%"


def fmt_date(iso: Optional[str], today: date) -> str:
    if not iso:
        return f"{today.month}/{today.day}/{today.year}"
    try:
        d = date.fromisoformat(iso[:10])
    except ValueError:
        return iso
    return f"{d.month}/{d.day}/{d.year}"


def wrap_text(text: str, width_mm: float) -> List[str]:
    max_chars = max(int(width_mm / CHARS_PER_MM), 8)
    return textwrap.wrap(text or "", max_chars) or [""]


# ---------------------------
# 3) Document model
# ---------------------------

@dataclass
class HeaderBlock:
    brand_name: str
    brand_icon: str
    logo: Optional[str]
    company_lines: List[str]
    meta: List[Tuple[str, str]]  # DATE / QUOTE # / CUSTOMER ID / VALID UNTIL
    top: float = 0.0
    height: float = HEADER_H


@dataclass
class RecipientBlock:
    client: str
    project_name: str
    lines: List[str]
    top: float = 0.0
    height: float = RECIPIENT_H


@dataclass
class ItemRow:
    lines: List[str]  # wrapped description
    unit_price: Decimal
    quantity: Decimal
    total: Decimal
    image_ref: Optional[str]
    shaded: bool
    height: float


@dataclass
class ImageTile:
    ref: str
    label: str
    x: float  # relative to the panel
    y: float
    size: float


@dataclass
class ImagePanel:
    tiles: List[ImageTile]
    width: float
    height: float
    columns: int = PANEL_COLUMNS


@dataclass
class GroupSection:
    index: int  # 1-based ordinal
    name: str
    accent: str
    rows: List[ItemRow]
    subtotal: Decimal
    table_width: float
    table_height: float
    image_panel: Optional[ImagePanel]
    top: float = 0.0
    height: float = 0.0


@dataclass
class FooterBlock:
    terms: List[str]
    breakdown: List[Tuple[str, Decimal]]
    grand_total: Decimal
    currency: str
    closing: List[str]
    top: float = 0.0
    height: float = 0.0


@dataclass
class ProposalDocument:
    title: str
    accent: str
    header: HeaderBlock
    recipient: RecipientBlock
    sections: List[GroupSection]
    footer: FooterBlock
    width: float = PAGE_WIDTH_MM
    height: float = 0.0
    margin: float = PAGE_MARGIN_MM
    totals: Optional[Totals] = None


# ---------------------------
# 4) Section layout
# ---------------------------

def layout_image_panel(refs: List[str], width: float = PANEL_W, columns: int = PANEL_COLUMNS) -> Optional[ImagePanel]:
    """Fixed-column grid of square tiles; None when there is nothing to show."""
    if not refs:
        return None
    size = (width - TILE_GAP * (columns - 1)) / columns
    step_y = size + TILE_CAPTION_H + TILE_GAP
    tiles = []
    for i, ref in enumerate(refs):
        row, col = divmod(i, columns)
        tiles.append(ImageTile(
            ref=ref,
            label=f"REF #{i + 1}",
            x=col * (size + TILE_GAP),
            y=PANEL_LABEL_H + row * step_y,
            size=size,
        ))
    rows = math.ceil(len(refs) / columns)
    height = PANEL_LABEL_H + rows * step_y - TILE_GAP
    return ImagePanel(tiles=tiles, width=width, height=height, columns=columns)


def layout_group(group: ProjectGroup, index: int, accent: str) -> GroupSection:
    panel = layout_image_panel(group.image_refs)
    table_w = TABLE_WITH_PANEL_W if panel else CONTENT_WIDTH
    desc_w = table_w * DESC_SHARE

    rows: List[ItemRow] = []
    for i, it in enumerate(group.items):
        lines = wrap_text(it.name.upper(), desc_w)
        rows.append(ItemRow(
            lines=lines,
            unit_price=it.unit_price,
            quantity=it.quantity,
            total=it.total,
            image_ref=it.image_ref,
            shaded=(i % 2 == 1),
            height=ROW_H + ROW_EXTRA_LINE_H * (len(lines) - 1),
        ))

    table_h = TABLE_HEAD_H + sum(r.height for r in rows) + SUBTOTAL_H
    body_h = max(table_h, panel.height if panel else 0.0)
    return GroupSection(
        index=index,
        name=group.name,
        accent=accent,
        rows=rows,
        subtotal=group_subtotal(group),
        table_width=table_w,
        table_height=table_h,
        image_panel=panel,
        height=SECTION_TITLE_H + body_h,
    )


# ---------------------------
# 5) Whole document
# ---------------------------

def _customer_id(client_name: str) -> str:
    return f"[{client_name[:3].upper()}]" if client_name else "[123]"


def compose_proposal(
    project: Project,
    config: AppConfig,
    totals: Totals,
    today: Optional[date] = None,
) -> ProposalDocument:
    today = today or date.today()
    accent = project.primary_color or DEFAULT_PRIMARY_COLOR
    quote_no = project.proposal_id or "[123456]"

    header = HeaderBlock(
        brand_name=config.app_name,
        brand_icon=config.app_icon,
        logo=project.custom_logo,
        company_lines=[
            config.company_address or "[Street Address, City, ST ZIP]",
            f"Website: {config.company_website or 'somedomain.com'}",
            f"Phone: {config.company_phone or '[000-000-0000]'}",
        ],
        meta=[
            ("DATE", fmt_date(project.proposal_date, today)),
            ("QUOTE #", quote_no),
            ("CUSTOMER ID", _customer_id(project.client_name)),
            ("VALID UNTIL", project.valid_until or "30 Days from issue"),
        ],
    )
    recipient = RecipientBlock(
        client=f"[{project.client_name or 'Name'}]",
        project_name=project.name or "[Project Description]",
        lines=["[Official Billing Address Line 1]", "[City, State, Zip Code]"],
    )

    payment = project.payment_terms or config.default_payment_terms
    validity = project.validity_period or config.default_validity_period
    terms = [
        "01. Acceptance of this quote constitutes a formal contract for production and logistics.",
        f"02. Payment terms: {payment}.",
        f"03. Quote validity: {validity}.",
        f"04. All production assets remain intellectual property of {config.app_name} "
        "until full payment settlement.",
    ]
    notes = project.notes or config.default_terms
    terms.extend(ln for ln in notes.splitlines() if ln.strip())

    terms_w = CONTENT_WIDTH - COST_BOX_W - SIDE_GAP
    wrapped_terms = sum(len(wrap_text(t, terms_w)) for t in terms)
    footer = FooterBlock(
        terms=terms,
        breakdown=[
            ("SUBTOTAL ASSETS", totals.material_subtotal),
            ("LOGISTIC SUPPORT", totals.transport_subtotal),
            ("INTERNAL OVERHEADS", totals.overhead_amount + totals.profit_amount),
            (f"VAT TAX ({fmt_rate(totals.vat_rate)})", totals.vat_amount),
        ],
        grand_total=totals.grand_total,
        currency=CURRENCY,
        closing=["ELECTRONICALLY VERIFIED CORPORATE NODE", f"(c) {today.year} {config.app_name}"],
        height=FOOTER_GAP + max(TERMS_BASE_H + TERMS_LINE_H * wrapped_terms, COST_BOX_H) + CLOSING_H,
    )

    sections = [layout_group(g, i, accent) for i, g in enumerate(project.groups, start=1)]

    # stack blocks top to bottom
    y = PAGE_MARGIN_MM
    header.top = y
    y += header.height + BLOCK_GAP
    recipient.top = y
    y += recipient.height + BLOCK_GAP
    for s in sections:
        s.top = y
        y += s.height + SECTION_GAP
    footer.top = y
    y += footer.height + PAGE_MARGIN_MM

    return ProposalDocument(
        title=f"Quotation_{project.name or 'Pro'}_{quote_no}",
        accent=accent,
        header=header,
        recipient=recipient,
        sections=sections,
        footer=footer,
        height=y,
        totals=totals,
    )


# ---------------------------
# 6) Pagination
# ---------------------------

@dataclass(frozen=True)
class PagePlacement:
    """
    Where one page's slice of the (scaled) document image goes.

    source_top/source_height: slice of the scaled image shown on this page,
    in drawn units (divide by scale for natural document millimetres).
    x: left offset on the page; width/height: drawn size of the slice.
    """
    page_index: int
    x: float
    source_top: float
    source_height: float
    width: float
    height: float
    scale: float  # scaled size / natural size


def clamp_scale(scale_percent: Any) -> float:
    """Manual zoom in percent, clamped to 10..200; junk or NaN input means 100."""
    try:
        value = float(scale_percent)
    except (TypeError, ValueError):
        return 100.0
    if math.isnan(value):
        return 100.0
    return min(max(value, SCALE_MIN), SCALE_MAX)


def paginate(
    content_width: float,
    content_height: float,
    fit_to_page: bool,
    scale_percent: Any = 100,
    page_width: float = PAGE_WIDTH_MM,
    page_height: float = PAGE_HEIGHT_MM,
) -> List[PagePlacement]:
    """
    Split a rendered document of natural size content_width x content_height.

    The manual scale applies to both axes first. fit_to_page then shrinks
    (or grows) uniformly so the whole thing sits on exactly one page;
    otherwise the image is cut into page-height slices from the top, the
    last one possibly shorter. Every page is centred horizontally.
    """
    if content_width <= 0 or content_height <= 0:
        raise ValueError("Document has no area to paginate")

    factor = clamp_scale(scale_percent) / 100.0
    width = content_width * factor
    height = content_height * factor

    if fit_to_page:
        fit = min(page_width / width, page_height / height)
        fit_w = min(width * fit, page_width)
        fit_h = min(height * fit, page_height)
        return [PagePlacement(
            page_index=0,
            x=(page_width - fit_w) / 2,
            source_top=0.0,
            source_height=fit_h,
            width=fit_w,
            height=fit_h,
            scale=factor * fit,
        )]

    # ceil(height / page_height), rounded first so float noise cannot add an empty page
    count = max(1, math.ceil(round(height / page_height, 9)))
    pages: List[PagePlacement] = []
    for k in range(count):
        offset = k * page_height
        slice_h = min(page_height, height - offset)
        pages.append(PagePlacement(
            page_index=k,
            x=(page_width - width) / 2,
            source_top=offset,
            source_height=slice_h,
            width=width,
            height=slice_h,
            scale=factor,
        ))
    return pages
