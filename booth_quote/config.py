from __future__ import annotations
import sys
from decimal import Decimal
from pathlib import Path

APP_NAME = "Booth Quote"

# PyInstaller (--onefile) unpacks resources into sys._MEIPASS
if getattr(sys, "frozen", False):
    BASE_DIR = Path(sys._MEIPASS) / "booth_quote"
else:
    BASE_DIR = Path(__file__).resolve().parent

ASSETS_DIR = BASE_DIR / "assets"


def _user_dir(folder: str, fallback: str) -> Path:
    preferred = Path.home() / "Documents" / folder
    try:
        preferred.mkdir(parents=True, exist_ok=True)
        return preferred
    except OSError:
        if getattr(sys, "frozen", False):
            fallback_dir = Path(sys.executable).resolve().parent / fallback
        else:
            fallback_dir = BASE_DIR / fallback
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir


def default_data_dir() -> Path:
    return _user_dir("BoothQuote_Data", "data")


def default_output_dir() -> Path:
    return _user_dir("BoothQuote_Output", "output")


# File names of the persisted collections inside the data dir
PROJECTS_FILE = "projects.json"
DRAFT_FILE = "draft.json"
TEMPLATES_FILE = "templates.json"
MATERIALS_FILE = "materials.json"
CATEGORIES_FILE = "categories.json"
CATEGORY_COLORS_FILE = "category_colors.json"
CONFIG_FILE = "config.json"

CUSTOM_MATERIAL_ID = "custom"
CUSTOM_CATEGORY = "Custom"
AI_CATEGORY = "AI Recommendation"
CURRENCY = "EGP"

# A4 portrait, millimetres
PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
PAGE_MARGIN_MM = 20.0

SCALE_MIN = 10
SCALE_MAX = 200
RASTER_DPI = 150

DEFAULT_DIMENSIONS = {"l": Decimal("3"), "w": Decimal("3"), "h": Decimal("2.5")}
DEFAULT_TRANSPORT_ID = "t1"
DEFAULT_GROUP_NAME = "Main Module"

SEED_MATERIALS = [
    {"id": "m1", "name": "MDF 18mm", "category": "Wood", "unit": "Sheet", "price": "850", "wasteFactor": "0.15"},
    {"id": "m2", "name": "MDF 12mm", "category": "Wood", "unit": "Sheet", "price": "600", "wasteFactor": "0.15"},
    {"id": "m3", "name": "Muski Wood", "category": "Wood", "unit": "m3", "price": "15500", "wasteFactor": "0.10"},
    {"id": "m4", "name": "Formica Standard", "category": "Finishing", "unit": "m2", "price": "420", "wasteFactor": "0.05"},
    {"id": "m5", "name": "Plastic Paint", "category": "Finishing", "unit": "m2", "price": "85", "wasteFactor": "0.05"},
    {"id": "m6", "name": "Banner Frontlit", "category": "Printing", "unit": "m2", "price": "110", "wasteFactor": "0.08"},
    {"id": "m7", "name": "Vinyl Sticker", "category": "Printing", "unit": "m2", "price": "190", "wasteFactor": "0.08"},
    {"id": "m8", "name": "LED Spotlight", "category": "Lighting", "unit": "Pcs", "price": "475", "wasteFactor": "0"},
    {"id": "m9", "name": "LED Strip", "category": "Lighting", "unit": "m", "price": "150", "wasteFactor": "0.02"},
]

SEED_CATEGORIES = ["Wood", "Finishing", "Printing", "Metal", "Lighting"]

SEED_TRANSPORT = [
    {"id": "t1", "type": "Quarter", "basePrice": "1000", "loadingFee": "400"},
    {"id": "t2", "type": "Half", "basePrice": "1800", "loadingFee": "600"},
]

CATEGORY_COLORS = {
    "Wood": "#92400e",
    "Finishing": "#065f46",
    "Printing": "#1e40af",
    "Metal": "#334155",
    "Lighting": "#ea580c",
    "Tools": "#be123c",
    CUSTOM_CATEGORY: "#4338ca",
    AI_CATEGORY: "#0891b2",
}
FALLBACK_CATEGORY_COLOR = "#3730a3"

SECTION_COLORS = [
    "#2563eb", "#7c3aed", "#db2777", "#dc2626", "#ea580c",
    "#d97706", "#65a30d", "#059669", "#0891b2", "#475569",
]

DEFAULT_PRIMARY_COLOR = "#34548a"

DEFAULT_CONFIG = {
    "VAT_RATE": "0.14",
    "DEFAULT_OVERHEAD": "0.10",
    "DEFAULT_MARKUP": "0.25",
    "appName": "ExhibiPrice",
    "appIcon": "E",
    "companyAddress": "Industrial Zone, 5th Settlement, New Cairo, Egypt",
    "companyPhone": "+20 123 456 789",
    "companyEmail": "info@exhibiprice.com",
    "companyWebsite": "www.exhibiprice.com",
    "companyTaxId": "Tax ID: 123-456-789",
    "themeColor": "#1d4ed8",
    "defaultTerms": (
        "1. Production materials remain company property unless purchased.\n"
        "2. Design ownership is reserved by the company."
    ),
    "defaultPaymentTerms": "50% Down Payment, 50% on Delivery",
    "defaultValidityPeriod": "15 Days",
}

# AI suggestion endpoint (optional, disabled when empty)
SUGGEST_ENDPOINT_ENV = "BOOTH_QUOTE_SUGGEST_URL"
SUGGEST_API_KEY_ENV = "BOOTH_QUOTE_SUGGEST_KEY"
SUGGEST_TIMEOUT = 30
