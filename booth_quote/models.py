from __future__ import annotations
from copy import deepcopy
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
import uuid

from booth_quote.config import (
    CUSTOM_CATEGORY,
    CUSTOM_MATERIAL_ID,
    DEFAULT_CONFIG,
    DEFAULT_DIMENSIONS,
    DEFAULT_GROUP_NAME,
    DEFAULT_TRANSPORT_ID,
    FALLBACK_CATEGORY_COLOR,
    CATEGORY_COLORS,
    SECTION_COLORS,
)

PROJECT_TYPES = ("single", "bundle")


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:9]}"


def to_decimal(v: Any, what: str = "value") -> Decimal:
    """Parse int/float/str/Decimal into Decimal; floats go through str() to stay exact."""
    if isinstance(v, bool) or v is None:
        raise ValueError(f"{what}: expected a number, got {v!r}")
    if isinstance(v, Decimal):
        d = v
    elif isinstance(v, (int, float)):
        d = Decimal(str(v))
    else:
        try:
            d = Decimal(str(v).replace(" ", "").replace(",", "."))
        except InvalidOperation as e:
            raise ValueError(f"{what}: expected a number, got {v!r}") from e
    if not d.is_finite():
        raise ValueError(f"{what}: expected a finite number, got {v!r}")
    return d


def _num(v: Decimal) -> str:
    return format(v.normalize(), "f") if v == v.to_integral() else str(v)


def _require_dict(row: Any, what: str) -> Dict[str, Any]:
    if not isinstance(row, dict):
        raise ValueError(f"{what} must be an object (dict).")
    return row


@dataclass(frozen=True)
class Material:
    id: str
    name: str
    category: str
    unit: str
    price: Decimal
    waste_factor: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Material":
        row = _require_dict(row, "Material")
        missing = [k for k in ("id", "name", "category", "unit", "price") if k not in row]
        if missing:
            who = row.get("name", row.get("id", "?"))
            raise ValueError(f"Material {who} is missing keys: {missing}")
        return cls(
            id=str(row["id"]),
            name=str(row["name"]),
            category=str(row["category"]),
            unit=str(row["unit"]),
            price=to_decimal(row["price"], f"Material {row['id']} price"),
            waste_factor=to_decimal(row.get("wasteFactor", 0), f"Material {row['id']} wasteFactor"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "price": _num(self.price),
            "wasteFactor": _num(self.waste_factor),
        }


@dataclass(frozen=True)
class TransportRule:
    id: str
    type: str
    base_price: Decimal
    loading_fee: Decimal

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "TransportRule":
        row = _require_dict(row, "TransportRule")
        return cls(
            id=str(row["id"]),
            type=str(row.get("type", "")),
            base_price=to_decimal(row.get("basePrice", 0), f"Transport {row['id']} basePrice"),
            loading_fee=to_decimal(row.get("loadingFee", 0), f"Transport {row['id']} loadingFee"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "basePrice": _num(self.base_price),
            "loadingFee": _num(self.loading_fee),
        }


@dataclass(frozen=True)
class CategoryStyle:
    """Accent descriptor for a material category (hex colours)."""
    base: str
    surface: str
    border: str

    @classmethod
    def from_base(cls, color: str) -> "CategoryStyle":
        return cls(base=color, surface=f"{color}10", border=f"{color}40")


FALLBACK_CATEGORY_STYLE = CategoryStyle(base=FALLBACK_CATEGORY_COLOR, surface="#f5f3ff", border="#ddd6fe")


def category_style(category: str, overrides: Optional[Dict[str, str]] = None) -> CategoryStyle:
    if overrides and category in overrides:
        return CategoryStyle.from_base(overrides[category])
    if category in CATEGORY_COLORS:
        return CategoryStyle.from_base(CATEGORY_COLORS[category])
    return FALLBACK_CATEGORY_STYLE


@dataclass
class CustomItem:
    """Ad-hoc line item source (not in the catalog)."""
    name: str = "Custom Item"
    unit: str = "pcs"
    quantity: Decimal = Decimal("1")
    category: str = CUSTOM_CATEGORY
    image_ref: Optional[str] = None


@dataclass
class LineItem:
    id: str
    material_id: str
    name: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total: Decimal  # quantity * unit_price * (1 + waste)
    category: str
    image_ref: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "LineItem":
        row = _require_dict(row, "LineItem")
        item_id = str(row.get("id") or new_id())
        qty = to_decimal(row.get("quantity", 0), f"Item {item_id} quantity")
        price = to_decimal(row.get("unitPrice", 0), f"Item {item_id} unitPrice")
        total = row.get("total")
        return cls(
            id=item_id,
            material_id=str(row.get("materialId") or CUSTOM_MATERIAL_ID),
            name=str(row.get("name", "")),
            quantity=qty,
            unit=str(row.get("unit", "")),
            unit_price=price,
            total=to_decimal(total, f"Item {item_id} total") if total is not None else qty * price,
            category=str(row.get("category") or CUSTOM_CATEGORY),
            image_ref=row.get("imageRef") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "materialId": self.material_id,
            "name": self.name,
            "quantity": _num(self.quantity),
            "unit": self.unit,
            "unitPrice": _num(self.unit_price),
            "total": _num(self.total),
            "category": self.category,
        }
        if self.image_ref:
            d["imageRef"] = self.image_ref
        return d


@dataclass
class ProjectGroup:
    id: str
    name: str
    items: List[LineItem] = field(default_factory=list)
    image_refs: List[str] = field(default_factory=list)
    header_color: str = SECTION_COLORS[0]

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "ProjectGroup":
        row = _require_dict(row, "ProjectGroup")
        items = row.get("items", [])
        if not isinstance(items, list):
            raise ValueError(f"Group {row.get('name', '?')}: 'items' must be a list.")
        refs = row.get("imageRefs") or []
        return cls(
            id=str(row.get("id") or new_id("g")),
            name=str(row.get("name", "")),
            items=[LineItem.from_dict(it) for it in items],
            image_refs=[str(r) for r in refs],
            header_color=str(row.get("headerColor") or SECTION_COLORS[0]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "items": [it.to_dict() for it in self.items],
            "imageRefs": list(self.image_refs),
            "headerColor": self.header_color,
        }


@dataclass
class Dimensions:
    l: Decimal
    w: Decimal
    h: Decimal

    def __post_init__(self):
        for axis in ("l", "w", "h"):
            value = to_decimal(getattr(self, axis), f"dimension {axis}")
            if value <= 0:
                raise ValueError(f"dimension {axis} must be > 0, got {value}")
            setattr(self, axis, value)

    @classmethod
    def default(cls) -> "Dimensions":
        return cls(**DEFAULT_DIMENSIONS)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Dimensions":
        row = _require_dict(row, "dimensions")
        return cls(l=row.get("l"), w=row.get("w"), h=row.get("h"))

    def to_dict(self) -> Dict[str, str]:
        return {"l": _num(self.l), "w": _num(self.w), "h": _num(self.h)}


def default_group(name: str = DEFAULT_GROUP_NAME) -> ProjectGroup:
    return ProjectGroup(id="default", name=name, header_color=SECTION_COLORS[0])


# Optional document metadata: attribute name -> persisted key
_DOC_FIELDS = {
    "proposal_id": "proposalId",
    "proposal_date": "proposalDate",
    "payment_terms": "paymentTerms",
    "validity_period": "validityPeriod",
    "notes": "notes",
    "primary_color": "primaryColor",
    "custom_logo": "customLogo",
    "valid_until": "validUntil",
}


@dataclass
class Project:
    id: str = ""  # "" == unsaved draft
    name: str = ""
    client_name: str = ""
    project_type: str = "single"
    dimensions: Dimensions = field(default_factory=Dimensions.default)
    groups: List[ProjectGroup] = field(default_factory=lambda: [default_group()])
    selected_transport: str = DEFAULT_TRANSPORT_ID
    markup: Decimal = Decimal(DEFAULT_CONFIG["DEFAULT_MARKUP"])
    overhead: Decimal = Decimal(DEFAULT_CONFIG["DEFAULT_OVERHEAD"])
    proposal_id: Optional[str] = None
    proposal_date: Optional[str] = None
    payment_terms: Optional[str] = None
    validity_period: Optional[str] = None
    notes: Optional[str] = None
    primary_color: Optional[str] = None
    custom_logo: Optional[str] = None
    fit_to_page: bool = False
    scale_percent: Decimal = Decimal("100")
    valid_until: Optional[str] = None

    @property
    def is_draft(self) -> bool:
        return self.id == ""

    def find_group(self, group_id: str) -> Optional[ProjectGroup]:
        for g in self.groups:
            if g.id == group_id:
                return g
        return None

    def copy(self) -> "Project":
        return deepcopy(self)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Project":
        row = _require_dict(row, "Project")
        kind = row.get("projectType", "single")
        if kind not in PROJECT_TYPES:
            raise ValueError(f"Project {row.get('name', '?')}: unknown projectType {kind!r}")

        groups = row.get("groups")
        if groups is None or groups == []:
            groups_parsed = [default_group()]
        elif isinstance(groups, list):
            groups_parsed = [ProjectGroup.from_dict(g) for g in groups]
        else:
            raise ValueError(f"Project {row.get('name', '?')}: 'groups' must be a list.")

        dims = row.get("dimensions")
        p = cls(
            id=str(row.get("id") or ""),
            name=str(row.get("name", "")),
            client_name=str(row.get("clientName", "")),
            project_type=kind,
            dimensions=Dimensions.from_dict(dims) if dims else Dimensions.default(),
            groups=groups_parsed,
            selected_transport=str(row.get("selectedTransport") or DEFAULT_TRANSPORT_ID),
            markup=to_decimal(row.get("markup", DEFAULT_CONFIG["DEFAULT_MARKUP"]), "markup"),
            overhead=to_decimal(row.get("overhead", DEFAULT_CONFIG["DEFAULT_OVERHEAD"]), "overhead"),
            fit_to_page=bool(row.get("fitToPage", False)),
            scale_percent=to_decimal(row.get("scalePercent", 100) or 100, "scalePercent"),
        )
        for attr, key in _DOC_FIELDS.items():
            value = row.get(key)
            setattr(p, attr, str(value) if value not in (None, "") else None)
        return p

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "clientName": self.client_name,
            "projectType": self.project_type,
            "dimensions": self.dimensions.to_dict(),
            "groups": [g.to_dict() for g in self.groups],
            "selectedTransport": self.selected_transport,
            "markup": _num(self.markup),
            "overhead": _num(self.overhead),
            "fitToPage": self.fit_to_page,
            "scalePercent": _num(self.scale_percent),
        }
        for attr, key in _DOC_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                d[key] = value
        return d


@dataclass
class AppConfig:
    vat_rate: Decimal
    default_overhead: Decimal
    default_markup: Decimal
    app_name: str = DEFAULT_CONFIG["appName"]
    app_icon: str = DEFAULT_CONFIG["appIcon"]
    company_address: str = DEFAULT_CONFIG["companyAddress"]
    company_phone: str = DEFAULT_CONFIG["companyPhone"]
    company_email: str = DEFAULT_CONFIG["companyEmail"]
    company_website: str = DEFAULT_CONFIG["companyWebsite"]
    company_tax_id: str = DEFAULT_CONFIG["companyTaxId"]
    theme_color: str = DEFAULT_CONFIG["themeColor"]
    default_terms: str = DEFAULT_CONFIG["defaultTerms"]
    default_payment_terms: str = DEFAULT_CONFIG["defaultPaymentTerms"]
    default_validity_period: str = DEFAULT_CONFIG["defaultValidityPeriod"]

    _KEYS = {
        "app_name": "appName",
        "app_icon": "appIcon",
        "company_address": "companyAddress",
        "company_phone": "companyPhone",
        "company_email": "companyEmail",
        "company_website": "companyWebsite",
        "company_tax_id": "companyTaxId",
        "theme_color": "themeColor",
        "default_terms": "defaultTerms",
        "default_payment_terms": "defaultPaymentTerms",
        "default_validity_period": "defaultValidityPeriod",
    }

    @classmethod
    def default(cls) -> "AppConfig":
        return cls.from_dict(DEFAULT_CONFIG)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "AppConfig":
        row = _require_dict(row, "config")
        merged = {**DEFAULT_CONFIG, **row}
        kwargs = {attr: str(merged[key]) for attr, key in cls._KEYS.items()}
        return cls(
            vat_rate=to_decimal(merged["VAT_RATE"], "VAT_RATE"),
            default_overhead=to_decimal(merged["DEFAULT_OVERHEAD"], "DEFAULT_OVERHEAD"),
            default_markup=to_decimal(merged["DEFAULT_MARKUP"], "DEFAULT_MARKUP"),
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "VAT_RATE": _num(self.vat_rate),
            "DEFAULT_OVERHEAD": _num(self.default_overhead),
            "DEFAULT_MARKUP": _num(self.default_markup),
        }
        for attr, key in self._KEYS.items():
            d[key] = getattr(self, attr)
        return d


@dataclass(frozen=True)
class Totals:
    material_subtotal: Decimal
    transport_subtotal: Decimal
    direct_costs: Decimal
    overhead_rate: Decimal
    markup_rate: Decimal
    vat_rate: Decimal
    overhead_amount: Decimal
    profit_amount: Decimal
    subtotal_before_vat: Decimal
    vat_amount: Decimal
    grand_total: Decimal
