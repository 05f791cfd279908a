from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from openpyxl import load_workbook

from booth_quote.config import CUSTOM_CATEGORY
from booth_quote.models import Material, new_id

logger = logging.getLogger(__name__)


def _norm(s: str) -> str:
    return "".join(ch for ch in s.lower().strip() if ch.isalnum() or ch in [" ", "_"]).replace("  ", " ")


HEADERS = {
    "name": ["name", "material", "item", "description"],
    "category": ["category", "type", "group"],
    "unit": ["unit", "uom", "measure"],
    "price": ["price", "unit price", "cost", "rate"],
    "waste": ["waste", "waste factor", "wastage", "scrap"],
}
REQUIRED = ("name", "unit", "price")


def _to_decimal(v) -> Decimal:
    if v is None:
        raise InvalidOperation()
    if isinstance(v, (int, float)):
        d = Decimal(str(v))
    else:
        s = str(v).replace(" ", "").replace("%", "")
        # "1,234.50" uses a thousands comma, "1,5" a decimal one
        s = s.replace(",", "") if "." in s else s.replace(",", ".")
        d = Decimal(s)
    if not d.is_finite():
        raise InvalidOperation()
    return d


def _waste(v) -> Decimal:
    """Blank means 0; values above 1 are read as percentages (15 -> 0.15)."""
    if v is None or str(v).strip() == "":
        return Decimal("0")
    w = _to_decimal(v)
    return w / 100 if w > 1 else w


def _find_columns(normed: List[str]) -> Dict[str, int]:
    col_map: Dict[str, int] = {}
    # exact header names win over substring matches
    for exact in (True, False):
        for key, syns in HEADERS.items():
            if key in col_map:
                continue
            for idx, cell in enumerate(normed, start=1):
                if not cell or idx in col_map.values():
                    continue
                if any((cell == k) if exact else (k in cell) for k in syns):
                    col_map[key] = idx
                    break
    return col_map


def read_materials_from_excel(path: str) -> List[Material]:
    """
    Read a price list sheet into catalog materials.

    The header row is found by column names (name / unit / price required,
    category and waste optional) within the first 80 rows of the active sheet.
    """
    wb = load_workbook(path, data_only=True)
    ws = wb.active

    header_row: Optional[int] = None
    col_map: Dict[str, int] = {}
    for r in range(1, min(ws.max_row, 80) + 1):
        values = [ws.cell(r, c).value for c in range(1, min(ws.max_column, 50) + 1)]
        normed = [_norm(str(v)) if v is not None else "" for v in values]
        found = _find_columns(normed)
        if all(k in found for k in REQUIRED):
            header_row, col_map = r, found
            break

    if header_row is None:
        raise ValueError(f"{path}: no header row with name, unit and price columns found.")

    materials: List[Material] = []
    for r in range(header_row + 1, ws.max_row + 1):
        name = ws.cell(r, col_map["name"]).value
        if name is None or str(name).strip() == "":
            if materials:
                break
            continue

        try:
            price = _to_decimal(ws.cell(r, col_map["price"]).value)
            waste = _waste(ws.cell(r, col_map["waste"]).value) if "waste" in col_map else Decimal("0")
        except InvalidOperation:
            logger.warning("%s row %d skipped: bad number", path, r)
            continue

        category = ""
        if "category" in col_map:
            category = str(ws.cell(r, col_map["category"]).value or "").strip()

        materials.append(Material(
            id=new_id("m"),
            name=str(name).strip(),
            category=category or CUSTOM_CATEGORY,
            unit=str(ws.cell(r, col_map["unit"]).value or "").strip(),
            price=max(price, Decimal("0")),
            waste_factor=max(waste, Decimal("0")),
        ))

    if not materials:
        raise ValueError(f"{path}: header found but no material rows under it.")

    logger.info("Read %d material(s) from %s", len(materials), path)
    return materials


def merge_materials(existing: Iterable[Material], imported: Iterable[Material]) -> List[Material]:
    """Imported rows replace catalog entries with the same name (case-insensitive) and keep their id."""
    merged = list(existing)
    by_name = {m.name.lower(): i for i, m in enumerate(merged)}
    for m in imported:
        idx = by_name.get(m.name.lower())
        if idx is None:
            by_name[m.name.lower()] = len(merged)
            merged.append(m)
        else:
            old = merged[idx]
            merged[idx] = Material(
                id=old.id, name=m.name, category=m.category, unit=m.unit,
                price=m.price, waste_factor=m.waste_factor,
            )
    return merged
