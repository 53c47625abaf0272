"""Client helpers for inventory REST API requests."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from utils.http import api_get as _api_get
from utils.http import api_send_logged as _api_send_logged

INVENTORY_API_TOKEN: str = os.environ.get("INVENTORY_API_TOKEN", "")
INVENTORY_API_BASE_URL: str = os.environ.get("INVENTORY_API_BASE_URL", "")


def _with_query(path: str, params: Optional[Dict[str, Any]] = None) -> str:
    if not params:
        return path
    query = urlencode(params, doseq=True)
    if not query:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{query}"


def _token_value() -> Optional[str]:
    token = INVENTORY_API_TOKEN.strip()
    return token or None


def api_get(
    session: requests.Session,
    base_url: str,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 30,
) -> Any:
    """Perform a GET request to an inventory REST endpoint with auth headers."""

    return _api_get(
        session,
        base_url,
        _with_query(path, params),
        headers=headers,
        timeout=timeout,
        token=_token_value(),
    )


def api_send_logged(
    session: requests.Session,
    base_url: str,
    method: str,
    path: str,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 30,
) -> Tuple[int, Optional[str], str, requests.Response]:
    """Perform a write request returning response metadata without raising."""

    return _api_send_logged(
        session,
        base_url,
        method,
        path,
        json_body=json_body,
        headers=headers,
        timeout=timeout,
        token=_token_value(),
    )


def unwrap_items(payload: Any) -> list:
    """Return the item list from a bare list or a ``{"data": [...]}`` resource."""

    if isinstance(payload, dict):
        items = payload.get("data")
        if items is None:
            items = payload.get("items")
    else:
        items = payload
    if not isinstance(items, list):
        return []
    return items
