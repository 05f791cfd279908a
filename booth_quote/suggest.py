"""AI material suggestions: HTTP adapter plus the store-side glue."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urljoin

import requests

from booth_quote.config import AI_CATEGORY, SUGGEST_API_KEY_ENV, SUGGEST_ENDPOINT_ENV, SUGGEST_TIMEOUT
from booth_quote.models import CustomItem, Dimensions, LineItem, to_decimal
from booth_quote.project_store import ProjectStore

logger = logging.getLogger(__name__)


class SuggestionError(Exception):
    """Base exception for suggestion client errors."""


class SuggestionConnectionError(SuggestionError):
    """Raised when the suggestion service cannot be reached."""


class SuggestionAPIError(SuggestionError):
    """Raised when the suggestion service answers with an error or junk."""


@dataclass(frozen=True)
class Suggestion:
    name: str
    quantity: Decimal
    unit: str
    reason: str = ""

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Suggestion":
        name = str(row.get("name") or "").strip()
        if not name:
            raise ValueError("suggestion without a name")
        return cls(
            name=name,
            quantity=max(to_decimal(row.get("quantity", 1), "quantity"), Decimal("0")),
            unit=str(row.get("unit") or "pcs"),
            reason=str(row.get("reason") or ""),
        )


class SuggestionProvider(Protocol):
    def suggest(self, dimensions: Dimensions, event_type: str) -> List[Dict[str, Any]]:
        ...


def build_prompt(dimensions: Dimensions, event_type: str) -> str:
    return (
        "Suggest a list of materials for an exhibition booth with dimensions:\n"
        f"Length: {dimensions.l}m, Width: {dimensions.w}m, Height: {dimensions.h}m.\n"
        f"Event Type: {event_type}\n"
        "Target Market: Egypt (Local materials like MDF, Muski, Banner, Vinyl).\n"
        "Answer with a JSON array of objects with name, quantity, unit and reason."
    )


class HttpSuggestionProvider:
    """Posts the prompt to a JSON endpoint that answers with a list of suggestions."""

    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout: int = SUGGEST_TIMEOUT):
        self.endpoint = endpoint.rstrip("/") + "/"
        self.timeout = timeout
        self.session = requests.Session()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.session.headers.update(headers)

    @classmethod
    def from_env(cls) -> Optional["HttpSuggestionProvider"]:
        endpoint = os.environ.get(SUGGEST_ENDPOINT_ENV, "").strip()
        if not endpoint:
            return None
        return cls(endpoint, api_key=os.environ.get(SUGGEST_API_KEY_ENV) or None)

    def suggest(self, dimensions: Dimensions, event_type: str) -> List[Dict[str, Any]]:
        url = urljoin(self.endpoint, "suggest")
        payload = {
            "prompt": build_prompt(dimensions, event_type),
            "dimensions": {"l": str(dimensions.l), "w": str(dimensions.w), "h": str(dimensions.h)},
            "eventType": event_type,
        }
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise SuggestionConnectionError(f"Request to {url} timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise SuggestionConnectionError(f"Failed to connect to {url}: {e}") from e
        except requests.exceptions.HTTPError as e:
            raise SuggestionAPIError(f"API error: {e.response.status_code} - {e.response.text[:200]}") from e
        except requests.exceptions.InvalidJSONError as e:
            raise SuggestionAPIError(f"Response from {url} is not JSON: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SuggestionConnectionError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise SuggestionAPIError(f"Response from {url} is not JSON: {e}") from e

        if isinstance(data, dict):
            data = data.get("items", data.get("suggestions"))
        if not isinstance(data, list):
            raise SuggestionAPIError(f"Expected a list of suggestions from {url}")
        return data


class StaticSuggestionProvider:
    """Canned answers, for offline use and tests."""

    def __init__(self, rows: List[Dict[str, Any]]):
        self.rows = list(rows)

    def suggest(self, dimensions: Dimensions, event_type: str) -> List[Dict[str, Any]]:
        return list(self.rows)


def suggest_items(provider: SuggestionProvider, dimensions: Dimensions, event_type: str) -> List[Suggestion]:
    """Single attempt; any failure gives an empty list. Malformed rows are skipped."""
    try:
        rows = provider.suggest(dimensions, event_type)
    except SuggestionError as e:
        logger.error("Suggestion request failed: %s", e)
        return []
    except Exception as e:
        logger.exception("Suggestion provider crashed: %s", e)
        return []

    out: List[Suggestion] = []
    for row in rows:
        try:
            out.append(Suggestion.from_dict(row))
        except (AttributeError, ValueError) as e:
            logger.warning("Skipping suggestion %r: %s", row, e)
    return out


def apply_suggestions(
    store: ProjectStore,
    group_id: str,
    provider: SuggestionProvider,
    event_type: str = "Exhibition Booth",
) -> List[LineItem]:
    """Add each suggestion to the group as an unpriced custom item."""
    suggestions = suggest_items(provider, store.project.dimensions, event_type)
    added = [
        store.add_item(group_id, CustomItem(name=s.name, unit=s.unit, quantity=s.quantity, category=AI_CATEGORY))
        for s in suggestions
    ]
    logger.info("Added %d suggested item(s) to group %s", len(added), group_id)
    return added
