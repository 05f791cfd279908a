import json
from decimal import Decimal

import pytest

from booth_quote.models import AppConfig, Project
from booth_quote.storage import (
    ProjectArchive,
    Repositories,
    export_system_state,
    import_system_state,
)


def test_upsert_assigns_id_and_appends(tmp_path):
    archive = ProjectArchive(tmp_path / "projects.json")
    stored = archive.upsert(Project(name="A"))
    assert stored.id
    assert len(archive.load()) == 1


def test_upsert_replaces_in_place(tmp_path):
    archive = ProjectArchive(tmp_path / "projects.json")
    ids = [archive.upsert(Project(name=n)).id for n in ("A", "B", "C")]

    middle = archive.get(ids[1])
    middle.name = "B2"
    archive.upsert(middle)

    loaded = archive.load()
    assert [p.name for p in loaded] == ["A", "B2", "C"]
    assert [p.id for p in loaded] == ids


def test_get_and_delete_missing(tmp_path):
    archive = ProjectArchive(tmp_path / "projects.json")
    with pytest.raises(KeyError):
        archive.get("nope")
    assert archive.delete("nope") is False


def test_delete(tmp_path):
    archive = ProjectArchive(tmp_path / "projects.json")
    p = archive.upsert(Project(name="A"))
    assert archive.delete(p.id) is True
    assert archive.load() == []


def test_malformed_archive_names_the_file(tmp_path):
    path = tmp_path / "projects.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(ValueError, match="projects.json"):
        ProjectArchive(path).load()


def test_bad_record_reports_index(tmp_path):
    path = tmp_path / "projects.json"
    path.write_text(json.dumps([{"name": "ok"}, {"name": "bad", "projectType": "huge"}]), encoding="utf-8")
    with pytest.raises(ValueError, match=r"projects\.json\[1\]"):
        ProjectArchive(path).load()


@pytest.mark.parametrize("length", ["NaN", "Infinity", "-inf", "sNaN"])
def test_non_finite_dimension_reports_index(tmp_path, length):
    path = tmp_path / "projects.json"
    path.write_text(json.dumps([{"name": "x", "dimensions": {"l": length, "w": "3", "h": "2.5"}}]), encoding="utf-8")
    with pytest.raises(ValueError, match=r"projects\.json\[0\]"):
        ProjectArchive(path).load()


def test_catalog_falls_back_to_seed(repos):
    assert len(repos.catalog.load()) == 9
    repos.catalog.materials.json_path.parent.mkdir(parents=True, exist_ok=True)
    repos.catalog.materials.json_path.write_text("garbage", encoding="utf-8")
    assert [m.id for m in repos.catalog.load()][:2] == ["m1", "m2"]


def test_config_defaults_and_merge(repos):
    assert repos.config.load().vat_rate == Decimal("0.14")
    repos.config.json_path.parent.mkdir(parents=True, exist_ok=True)
    repos.config.json_path.write_text(json.dumps({"VAT_RATE": "0.05"}), encoding="utf-8")
    cfg = repos.config.load()
    assert cfg.vat_rate == Decimal("0.05")
    assert cfg.default_markup == Decimal("0.25")


def test_non_finite_config_rate_falls_back(repos):
    repos.config.json_path.parent.mkdir(parents=True, exist_ok=True)
    repos.config.json_path.write_text(json.dumps({"VAT_RATE": "Infinity"}), encoding="utf-8")
    with pytest.raises(ValueError, match="VAT_RATE"):
        repos.config.load()
    assert repos.config.load_or_default().vat_rate == Decimal("0.14")


def test_draft_slot_empty(repos):
    assert repos.draft.load() is None
    repos.draft.clear()


def test_templates_get_prefixed_ids(repos):
    tpl = repos.save_as_template(Project(id="p1", name="Std"))
    assert tpl.id.startswith("tpl-")
    assert repos.archive.load() == []


def test_project_json_uses_camel_case(tmp_path, priced_project):
    archive = ProjectArchive(tmp_path / "projects.json")
    archive.upsert(priced_project)
    raw = json.loads((tmp_path / "projects.json").read_text(encoding="utf-8"))[0]
    assert raw["clientName"] == "Acme Events"
    assert raw["groups"][0]["items"][0]["unitPrice"] == "10000"
    assert archive.get("p1") == priced_project


def test_system_state_backup(tmp_path):
    src = Repositories(tmp_path / "a")
    cfg = AppConfig.default()
    cfg.vat_rate = Decimal("0.2")
    cfg.app_name = "BoothCo"
    src.config.save(cfg)

    backup = export_system_state(src, tmp_path / "backup.json")
    assert json.loads(backup.read_text(encoding="utf-8"))["version"] == "4.1-PRO"

    dst = Repositories(tmp_path / "b")
    import_system_state(dst, backup)
    assert dst.config.load().app_name == "BoothCo"
    assert dst.config.load().vat_rate == Decimal("0.2")
    assert len(dst.catalog.load()) == 9


def test_import_rejects_foreign_file(repos, tmp_path):
    path = tmp_path / "other.json"
    path.write_text(json.dumps({"hello": 1}), encoding="utf-8")
    with pytest.raises(ValueError):
        import_system_state(repos, path)
    assert not repos.config.json_path.exists()
