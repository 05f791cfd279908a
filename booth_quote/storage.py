from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from booth_quote.config import (
    CATEGORIES_FILE,
    CATEGORY_COLORS_FILE,
    CONFIG_FILE,
    DRAFT_FILE,
    MATERIALS_FILE,
    PROJECTS_FILE,
    SEED_CATEGORIES,
    SEED_MATERIALS,
    SEED_TRANSPORT,
    TEMPLATES_FILE,
)
from booth_quote.models import AppConfig, Material, Project, TransportRule, new_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_STATE_VERSION = "4.1-PRO"


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON in {path}: {e}") from e


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


class JsonCollection(Generic[T]):
    """A list of records persisted as one JSON array."""

    def __init__(self, json_path: Path, parse: Callable[[Dict[str, Any]], T], dump: Callable[[T], Any]):
        self.json_path = json_path
        self._parse = parse
        self._dump = dump

    def exists(self) -> bool:
        return self.json_path.exists()

    def load(self) -> List[T]:
        if not self.json_path.exists():
            return []
        data = _read_json(self.json_path)
        if not isinstance(data, list):
            raise ValueError(f"{self.json_path} must contain a top-level JSON array.")
        out: List[T] = []
        for idx, row in enumerate(data):
            try:
                out.append(self._parse(row))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{self.json_path.name}[{idx}]: {e}") from e
        return out

    def save(self, records: List[T]) -> None:
        _write_json(self.json_path, [self._dump(r) for r in records])

    def load_or_default(self, default: Callable[[], List[T]]) -> List[T]:
        """Load, or fall back to ``default()`` when the file is missing or malformed."""
        if not self.json_path.exists():
            return default()
        try:
            return self.load()
        except ValueError as e:
            logger.warning("Discarding %s: %s", self.json_path, e)
            return default()


def _identity(x: Any) -> Any:
    return x


def _parse_str(x: Any) -> str:
    if not isinstance(x, str):
        raise ValueError(f"expected a string, got {x!r}")
    return x


class ProjectArchive:
    """Saved projects, upsert-by-id."""

    def __init__(self, json_path: Path, id_prefix: str = ""):
        self.collection = JsonCollection(json_path, Project.from_dict, Project.to_dict)
        self.id_prefix = id_prefix

    def load(self) -> List[Project]:
        return self.collection.load()

    def save(self, projects: List[Project]) -> None:
        self.collection.save(projects)

    def get(self, project_id: str) -> Project:
        for p in self.load():
            if p.id == project_id:
                return p
        raise KeyError(f"Project with id={project_id} not found")

    def upsert(self, project: Project) -> Project:
        """
        Replace the entry with the same id in place, otherwise append.
        A project without id gets a fresh one. Returns the stored copy.
        """
        stored = project.copy()
        if not stored.id:
            stored.id = new_id(self.id_prefix)

        projects = self.load()
        for idx, p in enumerate(projects):
            if p.id == stored.id:
                projects[idx] = stored
                logger.info("Archive: updated project %s (%s)", stored.id, stored.name)
                break
        else:
            projects.append(stored)
            logger.info("Archive: added project %s (%s)", stored.id, stored.name)

        self.save(projects)
        return stored.copy()

    def delete(self, project_id: str) -> bool:
        projects = self.load()
        kept = [p for p in projects if p.id != project_id]
        if len(kept) == len(projects):
            return False
        self.save(kept)
        logger.info("Archive: deleted project %s", project_id)
        return True


class DraftSlot:
    """Single current-draft slot (at most one unsaved project)."""

    def __init__(self, json_path: Path):
        self.json_path = json_path

    def load(self) -> Optional[Project]:
        if not self.json_path.exists():
            return None
        data = _read_json(self.json_path)
        if not isinstance(data, dict):
            raise ValueError(f"{self.json_path} must contain a JSON object.")
        return Project.from_dict(data)

    def save(self, project: Project) -> None:
        _write_json(self.json_path, project.to_dict())

    def clear(self) -> None:
        if self.json_path.exists():
            self.json_path.unlink()


class MaterialCatalog:
    """Materials, their category list and custom category colours."""

    def __init__(self, data_dir: Path):
        self.materials = JsonCollection(data_dir / MATERIALS_FILE, Material.from_dict, Material.to_dict)
        self.categories = JsonCollection(data_dir / CATEGORIES_FILE, _parse_str, _identity)
        self.colors_path = data_dir / CATEGORY_COLORS_FILE

    def load(self) -> List[Material]:
        return self.materials.load_or_default(seed_materials)

    def save(self, materials: List[Material]) -> None:
        self.materials.save(materials)

    def load_categories(self) -> List[str]:
        return self.categories.load_or_default(lambda: list(SEED_CATEGORIES))

    def save_categories(self, categories: List[str]) -> None:
        self.categories.save(categories)

    def load_colors(self) -> Dict[str, str]:
        if not self.colors_path.exists():
            return {}
        data = _read_json(self.colors_path)
        if not isinstance(data, dict):
            raise ValueError(f"{self.colors_path} must contain a JSON object.")
        return {str(k): str(v) for k, v in data.items()}

    def save_colors(self, colors: Dict[str, str]) -> None:
        _write_json(self.colors_path, colors)


class ConfigStore:
    def __init__(self, json_path: Path):
        self.json_path = json_path

    def load(self) -> AppConfig:
        if not self.json_path.exists():
            return AppConfig.default()
        data = _read_json(self.json_path)
        if not isinstance(data, dict):
            raise ValueError(f"{self.json_path} must contain a JSON object.")
        return AppConfig.from_dict(data)

    def load_or_default(self) -> AppConfig:
        try:
            return self.load()
        except ValueError as e:
            logger.warning("Discarding %s: %s", self.json_path, e)
            return AppConfig.default()

    def save(self, config: AppConfig) -> None:
        _write_json(self.json_path, config.to_dict())


def seed_materials() -> List[Material]:
    return [Material.from_dict(m) for m in SEED_MATERIALS]


def seed_transport() -> List[TransportRule]:
    return [TransportRule.from_dict(r) for r in SEED_TRANSPORT]


class Repositories:
    """All persisted collections under one data dir."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.archive = ProjectArchive(self.data_dir / PROJECTS_FILE)
        self.templates = ProjectArchive(self.data_dir / TEMPLATES_FILE, id_prefix="tpl-")
        self.draft = DraftSlot(self.data_dir / DRAFT_FILE)
        self.catalog = MaterialCatalog(self.data_dir)
        self.config = ConfigStore(self.data_dir / CONFIG_FILE)

    def save_as_template(self, project: Project) -> Project:
        tpl = project.copy()
        tpl.id = ""
        return self.templates.upsert(tpl)


def export_system_state(repos: Repositories, out_path: Path) -> Path:
    state = {
        "config": repos.config.load_or_default().to_dict(),
        "materials": [m.to_dict() for m in repos.catalog.load()],
        "categories": repos.catalog.load_categories(),
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "version": SYSTEM_STATE_VERSION,
    }
    _write_json(out_path, state)
    logger.info("System state exported to %s", out_path)
    return out_path


def import_system_state(repos: Repositories, in_path: Path) -> None:
    """Restore config + catalog from a backup. Validates everything before writing."""
    data = _read_json(in_path)
    if not isinstance(data, dict) or "config" not in data or "materials" not in data:
        raise ValueError(f"{in_path} is not a system backup (needs 'config' and 'materials').")

    config = AppConfig.from_dict(data["config"])
    raw_materials = data["materials"]
    if not isinstance(raw_materials, list):
        raise ValueError("'materials' must be a list.")
    materials = [Material.from_dict(m) for m in raw_materials]
    categories = [str(c) for c in data.get("categories") or []]

    repos.config.save(config)
    repos.catalog.save(materials)
    repos.catalog.save_categories(categories)
    logger.info("System state restored from %s (%d materials)", in_path, len(materials))
