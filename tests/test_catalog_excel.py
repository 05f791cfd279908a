from decimal import Decimal

import pytest
from openpyxl import Workbook

from booth_quote.extract.catalog_excel import merge_materials, read_materials_from_excel


def _write_sheet(path, rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    wb.save(path)
    return str(path)


def test_reads_price_list(tmp_path):
    path = _write_sheet(tmp_path / "prices.xlsx", [
        ["Supplier price list 2024"],
        [],
        ["Material", "Category", "Unit", "Unit Price", "Waste %"],
        ["MDF 18mm", "Wood", "Sheet", 900, 15],
        ["Cable", None, "m", "12.5", None],
        ["Spot", "Lighting", "Pcs", 480, 0.05],
        [],
        ["Notes below the table"],
    ])

    materials = read_materials_from_excel(path)

    assert [m.name for m in materials] == ["MDF 18mm", "Cable", "Spot"]
    mdf, cable, spot = materials
    assert mdf.price == Decimal("900") and mdf.waste_factor == Decimal("0.15")
    assert cable.category == "Custom" and cable.price == Decimal("12.5") and cable.waste_factor == 0
    assert spot.waste_factor == Decimal("0.05")
    assert len({m.id for m in materials}) == 3


def test_no_header(tmp_path):
    path = _write_sheet(tmp_path / "junk.xlsx", [["a", "b"], [1, 2]])
    with pytest.raises(ValueError):
        read_materials_from_excel(path)


def test_header_without_rows(tmp_path):
    path = _write_sheet(tmp_path / "empty.xlsx", [["Name", "Unit", "Price"]])
    with pytest.raises(ValueError):
        read_materials_from_excel(path)


def test_bad_price_row_is_skipped(tmp_path):
    path = _write_sheet(tmp_path / "p.xlsx", [
        ["Name", "Unit", "Price"],
        ["Good", "m2", 10],
        ["Bad", "m2", "call us"],
    ])
    assert [m.name for m in read_materials_from_excel(path)] == ["Good"]


def test_text_prices_with_commas(tmp_path):
    path = _write_sheet(tmp_path / "p.xlsx", [
        ["Name", "Unit", "Price", "Waste %"],
        ["Paint", "l", "1,5", "7,5%"],
        ["Truss", "m", "1,234.50", None],
        ["Carpet", "m2", "2 400", None],
        ["Ghost", "m2", "NaN", None],
    ])
    paint, truss, carpet = read_materials_from_excel(path)
    assert paint.price == Decimal("1.5") and paint.waste_factor == Decimal("0.075")
    assert truss.price == Decimal("1234.50")
    assert carpet.price == Decimal("2400")


def test_merge_keeps_catalog_ids(catalog, tmp_path):
    path = _write_sheet(tmp_path / "prices.xlsx", [
        ["Name", "Category", "Unit", "Price"],
        ["mdf 18mm", "Wood", "Sheet", 900],
        ["Cable", "Lighting", "m", 12],
    ])
    merged = merge_materials(catalog, read_materials_from_excel(path))

    assert len(merged) == len(catalog) + 1
    assert merged[0].id == "m1" and merged[0].price == Decimal("900")
    assert merged[-1].name == "Cable"
