from decimal import Decimal

import pytest

from booth_quote.models import AppConfig, Project
from booth_quote.pricing import (
    compute_totals,
    cost_breakdown,
    line_total,
    resolve_transport,
    resolve_waste_factor,
    share_of_total,
    transport_cost,
)
from booth_quote.storage import seed_transport


def test_grand_total_rollup_order(priced_project, config):
    t = compute_totals(priced_project, config)

    assert t.material_subtotal == Decimal("10000")
    assert t.transport_subtotal == Decimal("1400")
    assert t.direct_costs == Decimal("11400")
    assert t.overhead_amount == Decimal("1140")
    assert t.profit_amount == Decimal("3135")
    assert t.vat_amount == Decimal("2194.5")
    assert t.grand_total == Decimal("17869.5")


def test_totals_are_idempotent(priced_project, config):
    assert compute_totals(priced_project, config) == compute_totals(priced_project, config)


def test_line_total_applies_waste():
    assert line_total(Decimal("3"), Decimal("850"), Decimal("0.15")) == Decimal("2932.5")


@pytest.mark.parametrize("material_id,expected", [
    ("m1", Decimal("0.15")),
    ("m8", Decimal("0")),
    ("custom", Decimal("0")),
    ("gone", Decimal("0")),
])
def test_waste_factor_lookup(catalog, material_id, expected):
    assert resolve_waste_factor(material_id, catalog) == expected
    assert resolve_waste_factor(material_id, {m.id: m for m in catalog}) == expected


@pytest.mark.parametrize("transport_id,expected", [
    ("t1", Decimal("1400")),
    ("t2", Decimal("2400")),
    ("nope", Decimal("0")),
    ("", Decimal("0")),
])
def test_transport_cost(transport_id, expected):
    assert transport_cost(resolve_transport(transport_id, seed_transport())) == expected


def test_unknown_transport_contributes_nothing(priced_project, config):
    priced_project.selected_transport = "t9"
    t = compute_totals(priced_project, config)
    assert t.transport_subtotal == 0
    assert t.direct_costs == Decimal("10000")


def test_project_rate_snapshot(priced_project, config):
    priced_project.markup = Decimal("0")
    priced_project.overhead = Decimal("0")

    assert compute_totals(priced_project, config).grand_total == Decimal("17869.5")
    assert compute_totals(priced_project, config, use_project_rates=True).grand_total == Decimal("12996")


def test_rates_are_not_clamped(priced_project):
    cfg = AppConfig.from_dict({"DEFAULT_MARKUP": "-0.5", "DEFAULT_OVERHEAD": "0", "VAT_RATE": "0"})
    t = compute_totals(priced_project, cfg)
    assert t.profit_amount == Decimal("-5700")
    assert t.grand_total == Decimal("5700")


def test_empty_project_share_guard(config):
    p = Project(selected_transport="none")
    t = compute_totals(p, config)

    assert t.grand_total == 0
    assert share_of_total(Decimal("10"), t) == 0
    assert [pct for _, _, pct in cost_breakdown(t)] == [0, 0, 0, 0]


def test_cost_breakdown_shares(priced_project, config):
    t = compute_totals(priced_project, config)
    rows = {label: (amount, pct) for label, amount, pct in cost_breakdown(t)}

    assert rows["Assets"] == (Decimal("10000"), Decimal("56.0"))
    assert rows["Logistics"] == (Decimal("1400"), Decimal("7.8"))
    assert rows["Profit"][0] == Decimal("3135")
