"""Variant generation and reconciliation for attribute combinations."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from services.normalizers import clean_text, format_price, parse_price


_LOGGER = logging.getLogger(__name__)

KEY_SEPARATOR = "|"
PAIR_SEPARATOR = ":"
SINGLE_VARIANT_KEY = "single"

Axis = Tuple[int, Sequence[str]]


@dataclass(frozen=True)
class VariantOption:
    attribute_id: int
    value: str


@dataclass
class VariantDraft:
    key: str
    options: List[VariantOption] = field(default_factory=list)
    sku: str = ""
    price: Any = ""


def variant_key(options: Iterable[VariantOption]) -> str:
    """Return the stable identity of a combination, e.g. ``"1:Red|2:S"``."""

    return KEY_SEPARATOR.join(
        f"{option.attribute_id}{PAIR_SEPARATOR}{option.value}" for option in options
    )


def can_generate(axes: Sequence[Axis]) -> bool:
    """True when at least one attribute is active and each has a value."""

    return bool(axes) and all(len(values) > 0 for _attr_id, values in axes)


def expected_count(axes: Sequence[Axis]) -> int:
    if not can_generate(axes):
        return 0
    count = 1
    for _attr_id, values in axes:
        count *= len(values)
    return count


def iter_combinations(axes: Sequence[Axis]) -> Iterable[List[VariantOption]]:
    """Yield option lists with the last attribute varying fastest."""

    if not can_generate(axes):
        return
    columns = [
        [VariantOption(attribute_id=attr_id, value=value) for value in values]
        for attr_id, values in axes
    ]
    for combination in itertools.product(*columns):
        yield list(combination)


def reconcile(
    fresh: Iterable[VariantDraft], previous: Optional[Iterable[VariantDraft]]
) -> List[VariantDraft]:
    """Carry ``sku`` and ``price`` over from ``previous`` drafts by exact key."""

    carried = {draft.key: draft for draft in previous or []}
    result: List[VariantDraft] = []
    for draft in fresh:
        old = carried.get(draft.key)
        if old is not None:
            draft.sku = old.sku
            draft.price = old.price
        result.append(draft)
    return result


def generate_variants(
    axes: Sequence[Axis], previous: Optional[Iterable[VariantDraft]] = None
) -> List[VariantDraft]:
    """Return the full variant list for ``axes`` reconciled with ``previous``.

    Ordering follows the Cartesian iteration order, never the previous list.
    An empty list is returned when no attribute is active or one of them
    has no values.
    """

    fresh = [
        VariantDraft(key=variant_key(options), options=options)
        for options in iter_combinations(axes)
    ]
    result = reconcile(fresh, previous)
    _LOGGER.debug("Generated %d variants over %d attributes", len(result), len(axes))
    return result


def single_variant(previous: Optional[Iterable[VariantDraft]] = None) -> List[VariantDraft]:
    """Return the one-row variant list of a non-variable product."""

    return reconcile([VariantDraft(key=SINGLE_VARIANT_KEY)], previous)


def auto_sku(product_name: str, draft: VariantDraft, index: int) -> str:
    prefix = clean_text(product_name)[:3].upper()
    if not draft.options:
        return f"{prefix}001"
    parts = "".join(option.value[:2].upper() for option in draft.options)
    return f"{prefix}-{parts}-{index + 1:03d}"


def fill_auto_skus(
    drafts: List[VariantDraft], product_name: str, overwrite: bool = False
) -> int:
    """Fill empty SKUs (all SKUs when ``overwrite``); return how many changed."""

    changed = 0
    for index, draft in enumerate(drafts):
        if draft.sku.strip() and not overwrite:
            continue
        sku = auto_sku(product_name, draft, index)
        if sku != draft.sku:
            draft.sku = sku
            changed += 1
    return changed


def apply_bulk_price(drafts: List[VariantDraft], price: Any) -> None:
    parsed = parse_price(price)
    if parsed is None:
        raise ValueError("Enter a valid price")
    if parsed < 0:
        raise ValueError("Price must not be negative")
    text = format_price(parsed)
    for draft in drafts:
        draft.price = text


def find_draft(drafts: Iterable[VariantDraft], key: str) -> Optional[VariantDraft]:
    for draft in drafts:
        if draft.key == key:
            return draft
    return None


def update_draft(
    drafts: Iterable[VariantDraft],
    key: str,
    *,
    sku: Optional[str] = None,
    price: Any = None,
) -> bool:
    draft = find_draft(drafts, key)
    if draft is None:
        return False
    if sku is not None:
        draft.sku = str(sku)
    if price is not None:
        draft.price = price
    return True
