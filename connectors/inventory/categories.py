"""Utilities for retrieving inventory categories."""
from __future__ import annotations

from typing import List

import requests

from connectors.inventory.client import api_get
from services.category_path import Category, CategoryPathResolver, normalize_categories


def fetch_all_categories(
    session: requests.Session,
    base_url: str,
    per_page: int = 100,
) -> List[Category]:
    """Return the flattened category list from the category source.

    The endpoint answers with a plain list, a ``{"data": [...]}`` resource
    or a grouping keyed by parent id; all of them are normalised here.
    """

    payload = api_get(session, base_url, "/categories", params={"per_page": per_page})
    return normalize_categories(payload)


def load_category_resolver(
    session: requests.Session,
    base_url: str,
) -> CategoryPathResolver:
    return CategoryPathResolver(fetch_all_categories(session, base_url))
