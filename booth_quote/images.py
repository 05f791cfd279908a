from __future__ import annotations

import base64
import binascii
import io
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, List, Optional

import requests
from PIL import Image, UnidentifiedImageError

from booth_quote.project_store import ProjectStore

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 15


def to_data_uri(path: Path) -> str:
    """Read an image file into a data: URI; raises ValueError if it is not an image."""
    raw = Path(path).read_bytes()
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format
    except UnidentifiedImageError as e:
        raise ValueError(f"{path} is not a readable image") from e
    mime = Image.MIME.get(fmt or "", "application/octet-stream")
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def _ref_bytes(ref: str) -> bytes:
    if ref.startswith("data:"):
        header, _, payload = ref.partition(",")
        if ";base64" not in header:
            raise ValueError("only base64 data URIs are supported")
        try:
            return base64.b64decode(payload, validate=False)
        except binascii.Error as e:
            raise ValueError(f"bad base64 payload: {e}") from e
    if ref.startswith(("http://", "https://")):
        resp = requests.get(ref, timeout=FETCH_TIMEOUT)
        resp.raise_for_status()
        return resp.content
    return Path(ref).read_bytes()


def open_image_ref(ref: str) -> Optional[Image.Image]:
    """Decode a data URI, URL or file path into an RGB image; None when unusable."""
    try:
        data = _ref_bytes(ref)
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, requests.RequestException) as e:
        logger.warning("Image reference skipped: %s", e)
        return None
    return img.convert("RGB")


def ingest_group_images(
    store: ProjectStore,
    group_id: str,
    paths: Iterable[Path],
    max_workers: int = 4,
) -> List[str]:
    """
    Read several files concurrently and append each to the group's images.

    Each file is an independent task; results are applied as they finish,
    so the resulting order follows completion, not the order of ``paths``.
    Unreadable files are logged and skipped.
    """
    added: List[str] = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(to_data_uri, Path(p)): p for p in paths}
        for fut in as_completed(futures):
            try:
                uri = fut.result()
            except (OSError, ValueError) as e:
                logger.warning("Skipping image %s: %s", futures[fut], e)
                continue
            store.add_group_image(group_id, uri)
            added.append(uri)
    logger.info("Group %s: %d image(s) added", group_id, len(added))
    return added


def ingest_line_item_image(store: ProjectStore, group_id: str, item_id: str, path: Path) -> str:
    uri = to_data_uri(path)
    store.set_line_item_image(group_id, item_id, uri)
    return uri
