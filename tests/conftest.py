from decimal import Decimal

import pytest

from booth_quote.models import AppConfig, LineItem, Project, ProjectGroup
from booth_quote.storage import Repositories, seed_materials


@pytest.fixture
def catalog():
    return seed_materials()


@pytest.fixture
def config():
    return AppConfig.default()


@pytest.fixture
def repos(tmp_path):
    return Repositories(tmp_path / "data")


@pytest.fixture
def priced_project():
    """One group worth 10000 in materials, quarter transport (1000 + 400)."""
    item = LineItem(
        id="i1",
        material_id="custom",
        name="Main structure",
        quantity=Decimal("1"),
        unit="lot",
        unit_price=Decimal("10000"),
        total=Decimal("10000"),
        category="Custom",
    )
    return Project(
        id="p1",
        name="Booth",
        client_name="Acme Events",
        groups=[ProjectGroup(id="g1", name="Main Module", items=[item])],
        selected_transport="t1",
    )
