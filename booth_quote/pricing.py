from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from booth_quote.config import SEED_TRANSPORT
from booth_quote.models import AppConfig, Material, Project, ProjectGroup, Totals, TransportRule

ZERO = Decimal("0")

Catalog = Union[Mapping[str, Material], Iterable[Material]]

DEFAULT_TRANSPORT_RULES: List[TransportRule] = [TransportRule.from_dict(r) for r in SEED_TRANSPORT]


def _catalog_lookup(material_id: str, catalog: Catalog) -> Optional[Material]:
    if isinstance(catalog, Mapping):
        return catalog.get(material_id)
    for m in catalog:
        if m.id == material_id:
            return m
    return None


def resolve_waste_factor(material_id: str, catalog: Catalog) -> Decimal:
    """Waste factor of the material as the catalog has it *now*; 0 for custom/unknown ids."""
    mat = _catalog_lookup(material_id, catalog)
    return mat.waste_factor if mat is not None else ZERO


def line_total(quantity: Decimal, unit_price: Decimal, waste_factor: Decimal) -> Decimal:
    return quantity * unit_price * (Decimal("1") + waste_factor)


def resolve_transport(transport_id: str, rules: Iterable[TransportRule]) -> Optional[TransportRule]:
    for rule in rules:
        if rule.id == transport_id:
            return rule
    return None


def transport_cost(rule: Optional[TransportRule]) -> Decimal:
    if rule is None:
        return ZERO
    return rule.base_price + rule.loading_fee


def group_subtotal(group: ProjectGroup) -> Decimal:
    return sum((it.total for it in group.items), ZERO)


def material_subtotal(project: Project) -> Decimal:
    return sum((group_subtotal(g) for g in project.groups), ZERO)


def compute_totals(
    project: Project,
    config: AppConfig,
    rules: Optional[Iterable[TransportRule]] = None,
    use_project_rates: bool = False,
) -> Totals:
    """
    Roll a project up into a priced quotation.

    Order is fixed:
      direct   = materials + transport
      overhead = direct * overhead_rate
      profit   = (direct + overhead) * markup_rate
      vat      = (direct + overhead + profit) * vat_rate

    use_project_rates=True takes the overhead/markup snapshot stored on the
    project (a saved document) instead of the config defaults. Rates are
    passed through as-is, negative or > 1 included.
    """
    if rules is None:
        rules = DEFAULT_TRANSPORT_RULES

    if use_project_rates:
        overhead_rate, markup_rate = project.overhead, project.markup
    else:
        overhead_rate, markup_rate = config.default_overhead, config.default_markup
    vat_rate = config.vat_rate

    materials = material_subtotal(project)
    transport = transport_cost(resolve_transport(project.selected_transport, rules))

    direct = materials + transport
    overhead = direct * overhead_rate
    profit = (direct + overhead) * markup_rate
    before_vat = direct + overhead + profit
    vat = before_vat * vat_rate

    return Totals(
        material_subtotal=materials,
        transport_subtotal=transport,
        direct_costs=direct,
        overhead_rate=overhead_rate,
        markup_rate=markup_rate,
        vat_rate=vat_rate,
        overhead_amount=overhead,
        profit_amount=profit,
        subtotal_before_vat=before_vat,
        vat_amount=vat,
        grand_total=before_vat + vat,
    )


def share_of_total(amount: Decimal, totals: Totals) -> Decimal:
    """Percentage of the grand total, 0 when the total is 0."""
    if totals.grand_total == 0:
        return ZERO
    pct = amount * Decimal("100") / totals.grand_total
    return pct.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def cost_breakdown(totals: Totals) -> List[Tuple[str, Decimal, Decimal]]:
    """(label, rounded amount, percent of grand total) for the dashboard chart."""
    slices: Dict[str, Decimal] = {
        "Assets": totals.material_subtotal,
        "Logistics": totals.transport_subtotal,
        "Overhead": totals.overhead_amount,
        "Profit": totals.profit_amount,
    }
    return [
        (label, value.quantize(Decimal("1"), rounding=ROUND_HALF_UP), share_of_total(value, totals))
        for label, value in slices.items()
    ]
