from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Union

from booth_quote.config import (
    CUSTOM_MATERIAL_ID,
    DEFAULT_GROUP_NAME,
    SECTION_COLORS,
)
from booth_quote.models import (
    PROJECT_TYPES,
    AppConfig,
    CustomItem,
    Dimensions,
    LineItem,
    Material,
    Project,
    ProjectGroup,
    default_group,
    new_id,
    to_decimal,
)
from booth_quote.pricing import line_total, resolve_waste_factor
from booth_quote.storage import DraftSlot, ProjectArchive

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class GroupNotFound(LookupError):
    pass


class ItemNotFound(LookupError):
    pass


# Fields update_details() may touch: attribute -> converter
_DETAIL_FIELDS = {
    "name": str,
    "client_name": str,
    "selected_transport": str,
    "proposal_id": str,
    "proposal_date": str,
    "payment_terms": str,
    "validity_period": str,
    "notes": str,
    "primary_color": str,
    "custom_logo": str,
    "valid_until": str,
    "fit_to_page": bool,
}


def _today() -> str:
    return date.today().isoformat()


class ProjectStore:
    """
    Owns the in-memory project being edited.

    Every mutation keeps the group invariants (single -> exactly one group,
    bundle -> at least one) and recomputes line totals against the catalog
    as it is at the time of the edit. While the project is an unsaved draft
    (id == "") each mutation is mirrored into the draft slot, if one is set.
    """

    def __init__(self, project: Project, catalog: Iterable[Material], drafts: Optional[DraftSlot] = None):
        self.project = project
        self.catalog: List[Material] = list(catalog)
        self.drafts = drafts

    # ---------------------------
    # construction
    # ---------------------------

    @classmethod
    def blank(cls, catalog: Iterable[Material], drafts: Optional[DraftSlot] = None) -> "ProjectStore":
        return cls(Project(proposal_date=_today()), catalog, drafts)

    @classmethod
    def restore_draft(cls, catalog: Iterable[Material], drafts: DraftSlot) -> "ProjectStore":
        """Resume from the draft slot; a broken draft is discarded."""
        try:
            project = drafts.load()
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to load draft, starting blank: %s", e)
            project = None
        if project is None:
            return cls.blank(catalog, drafts)
        project.id = ""
        return cls(project, catalog, drafts)

    @classmethod
    def from_template(
        cls, template: Project, catalog: Iterable[Material], drafts: Optional[DraftSlot] = None
    ) -> "ProjectStore":
        p = template.copy()
        p.id = ""
        p.client_name = ""
        p.name = f"{template.name} (Copy)"
        p.proposal_date = _today()
        p.proposal_id = ""
        if drafts is not None:
            drafts.clear()
        store = cls(p, catalog, drafts)
        store._touch()
        return store

    def set_catalog(self, catalog: Iterable[Material]) -> None:
        self.catalog = list(catalog)

    # ---------------------------
    # lookup helpers
    # ---------------------------

    def _group(self, group_id: str) -> ProjectGroup:
        g = self.project.find_group(group_id)
        if g is None:
            raise GroupNotFound(f"Group id={group_id} not found")
        return g

    def _item(self, group_id: str, item_id: str) -> LineItem:
        g = self._group(group_id)
        for it in g.items:
            if it.id == item_id:
                return it
        raise ItemNotFound(f"Item id={item_id} not found in group {group_id}")

    def _recompute(self, item: LineItem) -> None:
        waste = resolve_waste_factor(item.material_id, self.catalog)
        item.total = line_total(item.quantity, item.unit_price, waste)

    def _touch(self) -> None:
        if self.drafts is not None and self.project.is_draft:
            self.drafts.save(self.project)

    def _next_color(self) -> str:
        used = {g.header_color for g in self.project.groups}
        for color in SECTION_COLORS:
            if color not in used:
                return color
        return SECTION_COLORS[len(self.project.groups) % len(SECTION_COLORS)]

    # ---------------------------
    # groups
    # ---------------------------

    def add_group(self, name: Optional[str] = None) -> Optional[ProjectGroup]:
        if self.project.project_type != "bundle":
            logger.info("add_group ignored: project type is %s", self.project.project_type)
            return None
        g = ProjectGroup(
            id=new_id("g"),
            name=name or f"New Component {len(self.project.groups) + 1}",
            header_color=self._next_color(),
        )
        self.project.groups.append(g)
        self._touch()
        return g

    def remove_group(self, group_id: str) -> bool:
        if len(self.project.groups) <= 1:
            logger.info("remove_group ignored: %s is the last group", group_id)
            return False
        self._group(group_id)
        self.project.groups = [g for g in self.project.groups if g.id != group_id]
        self._touch()
        return True

    def rename_group(self, group_id: str, name: str) -> None:
        self._group(group_id).name = name
        self._touch()

    def set_group_color(self, group_id: str, color: str) -> None:
        self._group(group_id).header_color = color
        self._touch()

    def set_project_type(self, kind: str) -> None:
        if kind not in PROJECT_TYPES:
            raise ValueError(f"Unknown project type {kind!r}")
        self.project.project_type = kind
        if kind == "single" and len(self.project.groups) > 1:
            dropped = len(self.project.groups) - 1
            self.project.groups = self.project.groups[:1]
            logger.info("Switched to single: dropped %d group(s)", dropped)
        self._touch()

    # ---------------------------
    # items
    # ---------------------------

    def _make_item(self, source: Union[Material, CustomItem]) -> LineItem:
        if isinstance(source, Material):
            item = LineItem(
                id=new_id(),
                material_id=source.id,
                name=source.name,
                quantity=Decimal("1"),
                unit=source.unit,
                unit_price=source.price,
                total=ZERO,
                category=source.category,
            )
            item.total = line_total(item.quantity, item.unit_price, source.waste_factor)
            return item

        qty = max(to_decimal(source.quantity, "quantity"), ZERO)
        return LineItem(
            id=new_id(),
            material_id=CUSTOM_MATERIAL_ID,
            name=source.name,
            quantity=qty,
            unit=source.unit,
            unit_price=ZERO,
            total=ZERO,
            category=source.category,
            image_ref=source.image_ref,
        )

    def add_item(self, group_id: str, source: Union[Material, CustomItem]) -> LineItem:
        g = self._group(group_id)
        item = self._make_item(source)
        g.items.append(item)
        self._touch()
        return item

    def add_items_bulk(self, group_id: str, material_ids: Iterable[str]) -> List[LineItem]:
        """One new item per selected material, in catalog order (not selection order)."""
        g = self._group(group_id)
        wanted = set(material_ids)
        added = [self._make_item(m) for m in self.catalog if m.id in wanted]
        g.items.extend(added)
        self._touch()
        return added

    def update_item_quantity(self, group_id: str, item_id: str, qty: Any) -> LineItem:
        it = self._item(group_id, item_id)
        it.quantity = max(to_decimal(qty, "quantity"), ZERO)
        self._recompute(it)
        self._touch()
        return it

    def update_item_unit_price(self, group_id: str, item_id: str, price: Any) -> LineItem:
        it = self._item(group_id, item_id)
        it.unit_price = max(to_decimal(price, "unit price"), ZERO)
        self._recompute(it)
        self._touch()
        return it

    def update_item_name(self, group_id: str, item_id: str, name: str) -> LineItem:
        it = self._item(group_id, item_id)
        it.name = name
        self._touch()
        return it

    def remove_item(self, group_id: str, item_id: str) -> None:
        g = self._group(group_id)
        self._item(group_id, item_id)
        g.items = [it for it in g.items if it.id != item_id]
        self._touch()

    # ---------------------------
    # images
    # ---------------------------

    def add_group_image(self, group_id: str, image_data: str) -> None:
        self._group(group_id).image_refs.append(image_data)
        self._touch()

    def remove_group_image(self, group_id: str, index: int) -> None:
        g = self._group(group_id)
        if not 0 <= index < len(g.image_refs):
            raise IndexError(f"Group {group_id} has no image #{index}")
        del g.image_refs[index]
        self._touch()

    def set_line_item_image(self, group_id: str, item_id: str, image_data: Optional[str]) -> None:
        self._item(group_id, item_id).image_ref = image_data or None
        self._touch()

    # ---------------------------
    # project details
    # ---------------------------

    def update_details(self, **fields: Any) -> None:
        """Edit metadata: name, client_name, dimensions, transport, document fields, scale."""
        p = self.project
        for key, value in fields.items():
            if key == "dimensions":
                p.dimensions = value if isinstance(value, Dimensions) else Dimensions.from_dict(value)
            elif key == "scale_percent":
                p.scale_percent = to_decimal(value, "scale_percent")
            elif key in _DETAIL_FIELDS:
                setattr(p, key, _DETAIL_FIELDS[key](value) if value is not None else None)
            else:
                raise AttributeError(f"Project has no editable field {key!r}")
        self._touch()

    def snapshot(self) -> Project:
        return self.project.copy()

    # ---------------------------
    # persistence
    # ---------------------------

    def commit(self, archive: ProjectArchive, config: AppConfig) -> Project:
        """
        Save into the archive (upsert by id) with the current rates and
        document defaults snapshotted onto the project; clears the draft slot.
        """
        p = self.project
        p.name = p.name or "Unnamed Project"
        p.markup = config.default_markup
        p.overhead = config.default_overhead
        p.payment_terms = p.payment_terms or config.default_payment_terms
        p.validity_period = p.validity_period or config.default_validity_period
        p.notes = p.notes or config.default_terms

        stored = archive.upsert(p)
        p.id = stored.id
        if self.drafts is not None:
            self.drafts.clear()
        return stored

    def reset(self) -> None:
        self.project = Project(proposal_date=_today(), groups=[default_group(DEFAULT_GROUP_NAME)])
        if self.drafts is not None:
            self.drafts.clear()


MUTATIONS = (
    "add_group",
    "remove_group",
    "rename_group",
    "set_group_color",
    "set_project_type",
    "add_item",
    "add_items_bulk",
    "update_item_quantity",
    "update_item_unit_price",
    "update_item_name",
    "remove_item",
    "add_group_image",
    "remove_group_image",
    "set_line_item_image",
    "update_details",
)


def apply_mutation(project: Project, catalog: Iterable[Material], op: str, **kwargs: Any) -> Project:
    """Apply one named store operation to a copy of ``project`` and return the copy."""
    if op not in MUTATIONS:
        raise ValueError(f"Unknown mutation {op!r}")
    store = ProjectStore(project.copy(), catalog)
    getattr(store, op)(**kwargs)
    return store.project
