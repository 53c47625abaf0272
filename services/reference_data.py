"""Parallel loading of the wizard's reference data (categories, attributes)."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import requests

from connectors.inventory.attributes import load_attribute_catalog
from connectors.inventory.categories import load_category_resolver
from services.attribute_selection import AttributeCatalog
from services.category_path import CategoryPathResolver


_LOGGER = logging.getLogger(__name__)


@dataclass
class ReferenceData:
    categories: CategoryPathResolver = field(default_factory=CategoryPathResolver)
    catalog: AttributeCatalog = field(default_factory=AttributeCatalog)
    errors: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ReferenceData":
        """State while loads are outstanding: empty option lists, no errors."""

        return cls()


def load_reference_data(
    session: requests.Session,
    base_url: str,
    max_workers: int = 2,
    progress_cb: Optional[Callable[[str], None]] = None,
) -> ReferenceData:
    """Load categories and attributes concurrently.

    Results are applied as each load finishes, in whatever order that is. A
    failing load leaves its part empty and records a message under
    ``errors`` instead of raising.
    """

    data = ReferenceData.empty()
    loaders = {
        "categories": load_category_resolver,
        "attributes": load_attribute_catalog,
    }
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(loader, session, base_url): name
            for name, loader in loaders.items()
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                result = future.result()
            except Exception as exc:
                _LOGGER.exception("Loading %s failed", name)
                data.errors[name] = f"Could not load {name}: {exc}"
                continue
            if name == "categories":
                data.categories = result
            else:
                data.catalog = result
            if progress_cb:
                progress_cb(name)
    return data
