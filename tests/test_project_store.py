import json
from decimal import Decimal

import pytest

from booth_quote.config import CUSTOM_MATERIAL_ID
from booth_quote.models import CustomItem, Dimensions, Material
from booth_quote.project_store import (
    GroupNotFound,
    ItemNotFound,
    ProjectStore,
    apply_mutation,
)
from booth_quote.storage import DraftSlot, ProjectArchive


def _material(catalog, material_id):
    return next(m for m in catalog if m.id == material_id)


@pytest.fixture
def store(catalog):
    return ProjectStore.blank(catalog)


@pytest.fixture
def bundle(catalog):
    s = ProjectStore.blank(catalog)
    s.set_project_type("bundle")
    return s


# ---------------------------
# groups
# ---------------------------

def test_single_project_ignores_add_group(store):
    assert store.add_group() is None
    assert len(store.project.groups) == 1


def test_bundle_add_group_names_and_colors(bundle):
    g = bundle.add_group()
    assert g.name == "New Component 2"
    assert g.header_color != bundle.project.groups[0].header_color
    assert len(bundle.project.groups) == 2


def test_last_group_cannot_be_removed(bundle):
    only = bundle.project.groups[0].id
    assert bundle.remove_group(only) is False
    assert len(bundle.project.groups) == 1


@pytest.mark.parametrize("order", [
    [0, 1, 2, 3, 4],
    [4, 3, 2, 1, 0],
    [2, 2, 0, 4, 0, 1, 3, 1, 4, 2],
    [0, 0, 0, 3, 1, 1, 4, 2, 2],
])
def test_removals_never_empty_the_project(bundle, order):
    for _ in range(4):
        bundle.add_group()
    ids = [g.id for g in bundle.project.groups]
    assert len(ids) == 5

    for idx in order:
        gid = ids[idx]
        before = len(bundle.project.groups)
        present = any(g.id == gid for g in bundle.project.groups)
        if before > 1 and not present:
            with pytest.raises(GroupNotFound):
                bundle.remove_group(gid)
        else:
            assert bundle.remove_group(gid) is (before > 1)
        assert len(bundle.project.groups) >= 1

    assert len(bundle.project.groups) == 1


def test_remove_group(bundle):
    g = bundle.add_group("Counter")
    assert bundle.remove_group(g.id) is True
    assert [x.id for x in bundle.project.groups] == ["default"]


def test_remove_unknown_group_raises(bundle):
    bundle.add_group()
    with pytest.raises(GroupNotFound):
        bundle.remove_group("missing")
    assert len(bundle.project.groups) == 2


def test_switch_to_single_keeps_first_group(bundle):
    bundle.add_group("B")
    bundle.add_group("C")
    bundle.set_project_type("single")
    assert [g.id for g in bundle.project.groups] == ["default"]


def test_unknown_project_type(store):
    with pytest.raises(ValueError):
        store.set_project_type("mega")


# ---------------------------
# items
# ---------------------------

def test_add_catalog_item(store, catalog):
    item = store.add_item("default", _material(catalog, "m1"))
    assert item.quantity == 1
    assert item.unit_price == Decimal("850")
    assert item.total == Decimal("977.5")


def test_quantity_edit_recomputes_total(store, catalog):
    item = store.add_item("default", _material(catalog, "m1"))
    store.update_item_quantity("default", item.id, 3)
    assert item.total == Decimal("2932.5")


@pytest.mark.parametrize("op,value", [
    ("update_item_quantity", -4),
    ("update_item_unit_price", "-10"),
])
def test_negative_inputs_clamp_to_zero(store, catalog, op, value):
    item = store.add_item("default", _material(catalog, "m1"))
    getattr(store, op)("default", item.id, value)
    assert item.total == 0
    assert item.quantity >= 0 and item.unit_price >= 0


def test_waste_factor_read_at_edit_time(store, catalog):
    item = store.add_item("default", _material(catalog, "m1"))
    store.set_catalog([Material("m1", "MDF 18mm", "Wood", "Sheet", Decimal("850"), Decimal("0"))])
    store.update_item_quantity("default", item.id, 2)
    assert item.total == Decimal("1700")


def test_custom_item_starts_unpriced(store):
    item = store.add_item("default", CustomItem(name="Carpet", unit="m2", quantity=Decimal("12")))
    assert item.material_id == CUSTOM_MATERIAL_ID
    assert item.unit_price == 0 and item.total == 0

    store.update_item_unit_price("default", item.id, "100")
    assert item.total == Decimal("1200")


def test_bulk_add_follows_catalog_order(store):
    added = store.add_items_bulk("default", ["m8", "m1", "nope"])
    assert [it.material_id for it in added] == ["m1", "m8"]
    assert len(store.project.groups[0].items) == 2


def test_edits_on_unknown_ids_leave_state(store, catalog):
    store.add_item("default", _material(catalog, "m2"))
    before = store.snapshot()
    with pytest.raises(ItemNotFound):
        store.update_item_quantity("default", "ghost", 5)
    with pytest.raises(GroupNotFound):
        store.add_item("ghost", _material(catalog, "m2"))
    assert store.project == before


def test_remove_item(store, catalog):
    item = store.add_item("default", _material(catalog, "m5"))
    store.remove_item("default", item.id)
    assert store.project.groups[0].items == []


# ---------------------------
# images and details
# ---------------------------

def test_group_images(store):
    store.add_group_image("default", "data:image/png;base64,AAA")
    store.add_group_image("default", "data:image/png;base64,BBB")
    store.remove_group_image("default", 0)
    assert store.project.groups[0].image_refs == ["data:image/png;base64,BBB"]
    with pytest.raises(IndexError):
        store.remove_group_image("default", 5)


def test_line_item_image(store, catalog):
    item = store.add_item("default", _material(catalog, "m6"))
    store.set_line_item_image("default", item.id, "data:image/png;base64,AAA")
    assert item.image_ref == "data:image/png;base64,AAA"
    store.set_line_item_image("default", item.id, "")
    assert item.image_ref is None


def test_update_details(store):
    store.update_details(name="Expo", dimensions={"l": "6", "w": 3, "h": 2.5}, scale_percent="80")
    assert store.project.name == "Expo"
    assert store.project.dimensions == Dimensions(Decimal("6"), Decimal("3"), Decimal("2.5"))
    assert store.project.scale_percent == Decimal("80")


def test_update_details_rejects_bad_input(store):
    with pytest.raises(AttributeError):
        store.update_details(colour="red")
    with pytest.raises(ValueError):
        store.update_details(dimensions={"l": 0, "w": 3, "h": 3})


# ---------------------------
# pure mutation entry point
# ---------------------------

def test_apply_mutation_leaves_input_untouched(store, catalog):
    original = store.snapshot()
    changed = apply_mutation(original, catalog, "add_items_bulk", group_id="default", material_ids=["m1"])
    assert original.groups[0].items == []
    assert len(changed.groups[0].items) == 1


def test_apply_mutation_unknown_op(store, catalog):
    with pytest.raises(ValueError):
        apply_mutation(store.project, catalog, "explode")


# ---------------------------
# draft slot and archive
# ---------------------------

def test_draft_autosave_and_commit(tmp_path, catalog, config):
    drafts = DraftSlot(tmp_path / "draft.json")
    archive = ProjectArchive(tmp_path / "projects.json")
    s = ProjectStore.blank(catalog, drafts)

    s.add_item("default", _material(catalog, "m1"))
    assert drafts.load().groups[0].items[0].material_id == "m1"

    stored = s.commit(archive, config)
    assert stored.id and s.project.id == stored.id
    assert stored.name == "Unnamed Project"
    assert stored.payment_terms == config.default_payment_terms
    assert drafts.load() is None

    # saved projects no longer touch the draft slot
    s.update_details(name="Saved")
    assert drafts.load() is None

    s.commit(archive, config)
    assert [p.name for p in archive.load()] == ["Saved"]


def test_commit_snapshots_current_rates(tmp_path, catalog, config):
    archive = ProjectArchive(tmp_path / "projects.json")
    s = ProjectStore.blank(catalog)
    config.default_markup = Decimal("0.40")
    assert s.commit(archive, config).markup == Decimal("0.40")


def test_restore_draft(tmp_path, catalog):
    drafts = DraftSlot(tmp_path / "draft.json")
    s = ProjectStore.blank(catalog, drafts)
    s.update_details(name="Half done")

    restored = ProjectStore.restore_draft(catalog, drafts)
    assert restored.project.name == "Half done"
    assert restored.project.is_draft


def test_broken_draft_starts_blank(tmp_path, catalog):
    path = tmp_path / "draft.json"
    path.write_text("{not json", encoding="utf-8")
    restored = ProjectStore.restore_draft(catalog, DraftSlot(path))
    assert restored.project.name == ""
    assert len(restored.project.groups) == 1


def test_non_finite_draft_starts_blank(tmp_path, catalog):
    path = tmp_path / "draft.json"
    path.write_text(json.dumps({"name": "Half done", "dimensions": {"l": "NaN", "w": "3", "h": "2.5"}}), encoding="utf-8")
    restored = ProjectStore.restore_draft(catalog, DraftSlot(path))
    assert restored.project.name == ""
    assert restored.project.dimensions == Dimensions.default()


def test_from_template(tmp_path, catalog, priced_project):
    drafts = DraftSlot(tmp_path / "draft.json")
    priced_project.proposal_id = "Q-1"
    s = ProjectStore.from_template(priced_project, catalog, drafts)

    p = s.project
    assert p.name == "Booth (Copy)"
    assert p.id == "" and p.client_name == "" and p.proposal_id == ""
    assert len(p.groups[0].items) == 1
    assert drafts.load().name == "Booth (Copy)"
    assert priced_project.name == "Booth"


def test_reset(tmp_path, catalog):
    drafts = DraftSlot(tmp_path / "draft.json")
    s = ProjectStore.blank(catalog, drafts)
    s.add_items_bulk("default", ["m1", "m2"])
    s.reset()
    assert s.project.groups[0].items == []
    assert drafts.load() is None
