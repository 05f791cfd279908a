"""
Writes the starter catalog, config and sample templates into a data dir.
Run from the project root: python -m booth_quote.create_seed_data [data_dir]
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from openpyxl import Workbook

from booth_quote.config import ASSETS_DIR, SEED_CATEGORIES, default_data_dir
from booth_quote.models import AppConfig, CustomItem
from booth_quote.project_store import ProjectStore
from booth_quote.storage import Repositories, seed_materials

TEMPLATES_DIR = ASSETS_DIR / "templates"


def create_seed_data(data_dir: Path) -> Repositories:
    """Catalog + categories + config, and one bundle template to start from."""
    repos = Repositories(data_dir)
    materials = seed_materials()
    repos.catalog.save(materials)
    repos.catalog.save_categories(list(SEED_CATEGORIES))
    repos.config.save(AppConfig.default())

    store = ProjectStore.blank(materials)
    store.update_details(name="Standard 3x3 Booth")
    store.set_project_type("bundle")
    main = store.project.groups[0]
    store.add_items_bulk(main.id, ["m1", "m4", "m8"])
    graphics = store.add_group("Graphics")
    store.add_items_bulk(graphics.id, ["m6", "m7"])
    store.add_item(graphics.id, CustomItem(name="Installation Crew", unit="day", quantity=2))
    repos.save_as_template(store.project)
    return repos


def create_price_list_template(out_dir: Optional[Path] = None) -> Path:
    """Empty-ish spreadsheet in the layout catalog import understands."""
    out_dir = out_dir or TEMPLATES_DIR
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / "price_list.xlsx"

    wb = Workbook()
    ws = wb.active
    ws.title = "Materials"
    ws["A1"] = "Material price list"
    for c, h in enumerate(["Name", "Category", "Unit", "Price", "Waste"], start=1):
        ws.cell(3, c).value = h
    ws.cell(4, 1).value = "Example material"
    ws.cell(4, 2).value = "Wood"
    ws.cell(4, 3).value = "Sheet"
    ws.cell(4, 4).value = 100.0
    ws.cell(4, 5).value = 0.1

    wb.save(out)
    return out


def main():
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else default_data_dir()
    print("Writing seed data to", data_dir)
    create_seed_data(data_dir)
    print("Created:", create_price_list_template())


if __name__ == "__main__":
    main()
