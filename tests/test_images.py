import pytest
from PIL import Image

from booth_quote.images import ingest_group_images, ingest_line_item_image, open_image_ref, to_data_uri
from booth_quote.project_store import ProjectStore


@pytest.fixture
def pictures(tmp_path):
    paths = []
    for name, color in (("a.png", "red"), ("b.jpg", "blue")):
        p = tmp_path / name
        Image.new("RGB", (16, 12), color).save(p)
        paths.append(p)
    return paths


def test_data_uri_mime(pictures):
    assert to_data_uri(pictures[0]).startswith("data:image/png;base64,")
    assert to_data_uri(pictures[1]).startswith("data:image/jpeg;base64,")


def test_data_uri_rejects_non_image(tmp_path):
    p = tmp_path / "notes.txt"
    p.write_text("hello", encoding="utf-8")
    with pytest.raises(ValueError):
        to_data_uri(p)


def test_open_image_ref(pictures):
    img = open_image_ref(to_data_uri(pictures[0]))
    assert img.size == (16, 12)
    assert img.mode == "RGB"
    assert open_image_ref(str(pictures[1])).size == (16, 12)
    assert open_image_ref("data:image/png;base64,AAAA") is None
    assert open_image_ref("/definitely/not/here.png") is None


def test_ingest_skips_bad_files(tmp_path, catalog, pictures):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not a png")
    store = ProjectStore.blank(catalog)

    added = ingest_group_images(store, "default", pictures + [bad, tmp_path / "missing.png"])

    refs = store.project.groups[0].image_refs
    assert len(added) == 2
    # completion order, so compare as sets
    assert set(refs) == {to_data_uri(p) for p in pictures}


def test_ingest_line_item_image(catalog, pictures):
    store = ProjectStore.blank(catalog)
    item = store.add_item("default", catalog[0])
    uri = ingest_line_item_image(store, "default", item.id, pictures[0])
    assert item.image_ref == uri
