import math
from datetime import date
from decimal import Decimal

import pytest

from booth_quote.models import ProjectGroup
from booth_quote.pricing import compute_totals
from booth_quote.render.layout import (
    CONTENT_WIDTH,
    PAGE_MARGIN_MM,
    TABLE_WITH_PANEL_W,
    clamp_scale,
    compose_proposal,
    fmt_money,
    fmt_whole,
    layout_group,
    layout_image_panel,
    paginate,
)

A4_W, A4_H = 210.0, 297.0


@pytest.mark.parametrize("height,pages", [
    (100, 1),
    (297, 1),
    (298, 2),
    (600, 3),
    (891, 3),
    (892, 4),
])
def test_page_count(height, pages):
    assert len(paginate(A4_W, height, fit_to_page=False)) == pages


@pytest.mark.parametrize("height,scale", [(1234.5, 100), (800, 55), (300, 180)])
def test_slices_cover_document(height, scale):
    placements = paginate(A4_W, height, fit_to_page=False, scale_percent=scale)
    drawn = height * scale / 100

    assert len(placements) == math.ceil(drawn / A4_H)
    assert sum(p.source_height for p in placements) == pytest.approx(drawn)
    for k, p in enumerate(placements):
        assert p.page_index == k
        assert p.source_top == pytest.approx(k * A4_H)
        assert p.height <= A4_H


def test_scaled_pages_are_centred():
    placements = paginate(A4_W, 600, fit_to_page=False, scale_percent=50)
    assert len(placements) == 2
    assert placements[0].width == pytest.approx(105)
    assert placements[0].x == pytest.approx(52.5)


@pytest.mark.parametrize("width,height,scale", [
    (210, 1000, 100),
    (210, 5000, 200),
    (420, 100, 100),
    (50, 40, 10),
])
def test_fit_to_page_is_one_page(width, height, scale):
    (p,) = paginate(width, height, fit_to_page=True, scale_percent=scale)
    assert p.width <= A4_W + 1e-9
    assert p.height <= A4_H + 1e-9
    assert p.x == pytest.approx((A4_W - p.width) / 2)
    # aspect ratio kept
    assert p.width / p.height == pytest.approx(width / height)


def test_fit_wide_document():
    (p,) = paginate(420, 100, fit_to_page=True)
    assert p.width == pytest.approx(210)
    assert p.height == pytest.approx(50)
    assert p.scale == pytest.approx(0.5)


def test_paginate_rejects_empty_document():
    with pytest.raises(ValueError):
        paginate(0, 100, fit_to_page=False)


@pytest.mark.parametrize("raw,expected", [
    (5, 10.0),
    (500, 200.0),
    (150, 150.0),
    (Decimal("75"), 75.0),
    ("abc", 100.0),
    (None, 100.0),
    (0, 10.0),
    (-5, 10.0),
    (float("nan"), 100.0),
])
def test_clamp_scale(raw, expected):
    assert clamp_scale(raw) == expected


def test_empty_group_section():
    s = layout_group(ProjectGroup(id="g", name="Empty"), 1, "#000000")
    assert s.subtotal == 0
    assert s.rows == []
    assert s.image_panel is None
    assert s.table_width == CONTENT_WIDTH


def test_image_panel_grid():
    refs = ["a", "b", "c"]
    panel = layout_image_panel(refs)
    assert [t.label for t in panel.tiles] == ["REF #1", "REF #2", "REF #3"]
    assert panel.tiles[0].y == panel.tiles[1].y
    assert panel.tiles[2].x == 0 and panel.tiles[2].y > panel.tiles[0].y
    assert layout_image_panel([]) is None

    s = layout_group(ProjectGroup(id="g", name="Visual", image_refs=refs), 2, "#000000")
    assert s.table_width == pytest.approx(TABLE_WITH_PANEL_W)
    assert s.image_panel is not None


def test_compose_fallbacks(priced_project, config):
    priced_project.client_name = ""
    totals = compute_totals(priced_project, config, use_project_rates=True)
    doc = compose_proposal(priced_project, config, totals, today=date(2024, 3, 5))

    meta = dict(doc.header.meta)
    assert meta["QUOTE #"] == "[123456]"
    assert meta["CUSTOMER ID"] == "[123]"
    assert meta["DATE"] == "3/5/2024"
    assert meta["VALID UNTIL"] == "30 Days from issue"
    assert doc.title == "Quotation_Booth_[123456]"


def test_compose_stacks_blocks(priced_project, config):
    totals = compute_totals(priced_project, config, use_project_rates=True)
    doc = compose_proposal(priced_project, config, totals)

    assert dict(doc.header.meta)["CUSTOMER ID"] == "[ACM]"
    assert doc.header.top == PAGE_MARGIN_MM
    assert doc.recipient.top > doc.header.top
    assert doc.sections[0].top > doc.recipient.top
    assert doc.footer.top > doc.sections[-1].top
    assert doc.height == pytest.approx(doc.footer.top + doc.footer.height + PAGE_MARGIN_MM)

    labels = [label for label, _ in doc.footer.breakdown]
    assert labels[-1] == "VAT TAX (14.0%)"
    assert doc.footer.grand_total == Decimal("17869.5")


def test_money_formatting():
    assert fmt_money(Decimal("12345.6")) == "12,345.60"
    assert fmt_whole(Decimal("17869.5")) == "17,870"
