"""Attribute catalogue retrieval and on-demand value creation."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from connectors.inventory.client import api_get, api_send_logged, unwrap_items
from services.attribute_selection import AttributeCatalog, AttributeSelectionStore
from services.normalizers import coerce_int


_LOGGER = logging.getLogger(__name__)


def fetch_attributes(session: requests.Session, base_url: str) -> List[Dict[str, Any]]:
    """Return raw ``{id, name, values}`` items from the attribute source."""

    payload = api_get(session, base_url, "/attributes")
    items = [item for item in unwrap_items(payload) if isinstance(item, dict)]
    _LOGGER.debug("fetch_attributes returned %d items", len(items))
    return items


def load_attribute_catalog(session: requests.Session, base_url: str) -> AttributeCatalog:
    return AttributeCatalog.from_items(fetch_attributes(session, base_url))


def create_attribute_value(
    session: requests.Session,
    base_url: str,
    attribute_id: int,
    value: str,
) -> Optional[int]:
    """Create ``value`` under ``attribute_id`` and return the new value id."""

    path = f"/attributes/{quote(str(attribute_id), safe='')}/values"
    status, ctype, body, resp = api_send_logged(
        session, base_url, "POST", path, json_body={"value": value}
    )
    if status >= 400 or "application/json" not in (ctype or ""):
        _LOGGER.warning(
            "Creating value %r for attribute %s failed: HTTP %s %s",
            value,
            attribute_id,
            status,
            (body or "")[:200],
        )
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        return None
    return coerce_int(data.get("id"))


def ensure_attribute_values(
    session: requests.Session,
    base_url: str,
    catalog: AttributeCatalog,
    selection: AttributeSelectionStore,
) -> List[Tuple[int, str]]:
    """Create catalogue entries for draft values the server does not know yet.

    New ids are registered in ``catalog``. Returns the values that could not
    be created.
    """

    failed: List[Tuple[int, str]] = []
    for attribute_id, values in selection.axes():
        for value in values:
            if catalog.value_id(attribute_id, value) is not None:
                continue
            value_id = create_attribute_value(session, base_url, attribute_id, value)
            if value_id is None:
                failed.append((attribute_id, value))
                continue
            catalog.register_value(attribute_id, value_id, value)
    return failed
