"""Per-draft attribute selection and the read-only attribute catalogue."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from services.normalizers import clean_text, coerce_int
from services.variants import KEY_SEPARATOR, PAIR_SEPARATOR


_LOGGER = logging.getLogger(__name__)


class AttributeSelectionStore:
    """Track active attributes and their ordered, deduplicated value lists.

    Activation order is significant: it fixes the attribute order used for
    variant keys and for the Cartesian product downstream. Mutators return
    ``True`` only when the store actually changed.
    """

    def __init__(self) -> None:
        self._selected: List[int] = []
        self._values: Dict[int, List[str]] = {}

    def toggle_attribute(
        self,
        attribute_id: int,
        active: bool,
        seed_values: Optional[Iterable[Any]] = None,
    ) -> bool:
        if active:
            if attribute_id in self._values:
                return False
            self._selected.append(attribute_id)
            self._values[attribute_id] = []
            for raw in seed_values or []:
                self.add_value(attribute_id, raw)
            return True

        if attribute_id not in self._values:
            return False
        self._selected.remove(attribute_id)
        del self._values[attribute_id]
        return True

    def add_value(self, attribute_id: int, raw_value: Any) -> bool:
        values = self._values.get(attribute_id)
        if values is None:
            _LOGGER.debug("add_value ignored for inactive attribute %s", attribute_id)
            return False
        value = clean_text(raw_value)
        if not value or value in values:
            return False
        # Values never contain variant-key separators.
        if KEY_SEPARATOR in value or PAIR_SEPARATOR in value:
            _LOGGER.debug("add_value rejected %r for attribute %s", value, attribute_id)
            return False
        values.append(value)
        return True

    def remove_value(self, attribute_id: int, value: str) -> bool:
        values = self._values.get(attribute_id)
        if not values or value not in values:
            return False
        values.remove(value)
        return True

    def clear(self) -> bool:
        if not self._selected:
            return False
        self._selected.clear()
        self._values.clear()
        return True

    def is_active(self, attribute_id: int) -> bool:
        return attribute_id in self._values

    @property
    def selected_attribute_ids(self) -> List[int]:
        return list(self._selected)

    @property
    def attribute_values(self) -> Dict[int, List[str]]:
        return {attr_id: list(self._values[attr_id]) for attr_id in self._selected}

    def values_for(self, attribute_id: int) -> List[str]:
        return list(self._values.get(attribute_id, []))

    def axes(self) -> List[Tuple[int, List[str]]]:
        """Return ``(attribute_id, values)`` pairs in activation order."""

        return [(attr_id, list(self._values[attr_id])) for attr_id in self._selected]

    def potential_variant_count(self) -> int:
        if not self._selected:
            return 0
        count = 1
        for attr_id in self._selected:
            size = len(self._values[attr_id])
            if size == 0:
                return 0
            count *= size
        return count


@dataclass
class CatalogAttribute:
    id: int
    name: str
    values: List[Tuple[int, str]] = field(default_factory=list)


class AttributeCatalog:
    """Globally defined attributes as returned by the attribute source."""

    def __init__(self, attributes: Iterable[CatalogAttribute] = ()):
        self._attributes: Dict[int, CatalogAttribute] = {}
        for attribute in attributes:
            self._attributes[attribute.id] = attribute

    @classmethod
    def from_items(cls, items: Any) -> "AttributeCatalog":
        """Build a catalogue from raw ``{id, name, values}`` items.

        Items without a usable integer id are skipped; so are values without
        an id or with blank text.
        """

        attributes: List[CatalogAttribute] = []
        for item in items or []:
            if not isinstance(item, Mapping):
                continue
            attr_id = coerce_int(item.get("id"))
            if attr_id is None:
                _LOGGER.debug("Skipping attribute without id: %r", item)
                continue
            values: List[Tuple[int, str]] = []
            seen: set[str] = set()
            for raw_value in item.get("values") or []:
                if not isinstance(raw_value, Mapping):
                    continue
                value_id = coerce_int(raw_value.get("id"))
                text = clean_text(raw_value.get("value"))
                if value_id is None or not text or text in seen:
                    continue
                seen.add(text)
                values.append((value_id, text))
            attributes.append(
                CatalogAttribute(id=attr_id, name=clean_text(item.get("name")), values=values)
            )
        return cls(attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __contains__(self, attribute_id: object) -> bool:
        return attribute_id in self._attributes

    def attributes(self) -> List[CatalogAttribute]:
        return list(self._attributes.values())

    def name_for(self, attribute_id: int) -> str:
        attribute = self._attributes.get(attribute_id)
        if attribute is None or not attribute.name:
            return f"Attribute {attribute_id}"
        return attribute.name

    def default_values(self, attribute_id: int) -> List[str]:
        attribute = self._attributes.get(attribute_id)
        if attribute is None:
            return []
        return [text for _value_id, text in attribute.values]

    def value_id(self, attribute_id: int, value: str) -> Optional[int]:
        attribute = self._attributes.get(attribute_id)
        if attribute is None:
            return None
        for value_id, text in attribute.values:
            if text == value:
                return value_id
        return None

    def register_value(self, attribute_id: int, value_id: int, value: str) -> None:
        """Record a value created on the server after the catalogue loaded."""

        attribute = self._attributes.setdefault(
            attribute_id, CatalogAttribute(id=attribute_id, name="")
        )
        if self.value_id(attribute_id, value) is None:
            attribute.values.append((value_id, value))
