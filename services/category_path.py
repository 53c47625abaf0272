"""Category tree normalisation and stage-by-stage path resolution."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from services.normalizers import clean_text, coerce_int


_LOGGER = logging.getLogger(__name__)

BREADCRUMB_SEPARATOR = " > "


@dataclass(eq=False)
class Category:
    id: int
    name: str = ""
    parent_id: Optional[int] = None
    children: List["Category"] = field(default_factory=list)
    description: Optional[str] = None

    def __repr__(self) -> str:
        return f"Category(id={self.id!r}, name={self.name!r}, parent_id={self.parent_id!r})"


@dataclass
class CategoryStage:
    level: int
    parent: Optional[Category]
    options: List[Category]
    selected_id: Optional[int] = None


def _is_usable(node: object) -> bool:
    return isinstance(node, Category) and isinstance(node.id, int) and not isinstance(node.id, bool)


def _iter_raw_nodes(raw: Any) -> Iterable[Tuple[Any, Optional[int], bool]]:
    """Yield ``(node, group_parent_id, has_group_key)`` from any accepted shape."""

    if raw is None:
        return
    if isinstance(raw, Category):
        yield raw, None, False
        return
    if isinstance(raw, Mapping):
        if "data" in raw and not ("id" in raw and "name" in raw):
            yield from _iter_raw_nodes(raw.get("data"))
            return
        if "id" in raw:
            yield raw, None, False
            return
        for key, group in raw.items():
            key_text = clean_text(key)
            group_parent = None if key_text in ("", "null", "None") else coerce_int(key_text)
            if isinstance(group, (list, tuple)):
                for node in group:
                    yield node, group_parent, True
            elif isinstance(group, Mapping):
                yield group, group_parent, True
        return
    if isinstance(raw, (list, tuple)):
        for node in raw:
            yield node, None, False


def _build_node(raw: Mapping[str, Any], fallback_parent: Optional[int]) -> Optional[Category]:
    cat_id = coerce_int(raw.get("id"))
    if cat_id is None:
        _LOGGER.debug("Dropping category without usable id: %r", raw.get("name"))
        return None
    if "parent_id" in raw:
        parent_id = coerce_int(raw.get("parent_id"))
    else:
        parent_id = fallback_parent
    description = raw.get("description")
    return Category(
        id=cat_id,
        name=clean_text(raw.get("name")),
        parent_id=parent_id,
        description=description if isinstance(description, str) else None,
    )


def normalize_categories(raw: Any) -> List[Category]:
    """Normalise any category source payload into one flat list.

    Accepts ``None``, a list of nodes, a grouping keyed by parent id, a
    ``{"data": ...}`` wrapper, or ready ``Category`` objects. Nested
    ``children`` are flattened into the list while each node keeps its
    children. Nodes whose children were not populated get them linked from
    the ``parent_id`` references of the other nodes.
    """

    flat: List[Category] = []
    seen: set[int] = set()
    stack: List[Tuple[Any, Optional[int], Optional[Category]]] = []
    for node, group_parent, _keyed in _iter_raw_nodes(raw):
        stack.append((node, group_parent, None))
    stack.reverse()

    nested_parents: set[int] = set()
    while stack:
        raw_node, fallback_parent, holder = stack.pop()
        if isinstance(raw_node, Category):
            node = Category(
                id=raw_node.id,
                name=raw_node.name or "",
                parent_id=raw_node.parent_id,
                description=raw_node.description,
            )
            raw_children: list = list(raw_node.children or [])
        elif isinstance(raw_node, Mapping):
            node = _build_node(raw_node, fallback_parent)
            if node is None:
                continue
            children_value = raw_node.get("children")
            raw_children = list(children_value) if isinstance(children_value, (list, tuple)) else []
        else:
            continue
        if not _is_usable(node):
            continue
        if node.id in seen:
            _LOGGER.debug("Duplicate category id %s ignored", node.id)
            continue
        seen.add(node.id)
        flat.append(node)
        if holder is not None:
            holder.children.append(node)
        if raw_children:
            nested_parents.add(node.id)
        for child in reversed(raw_children):
            stack.append((child, node.id, node))

    by_id = {node.id: node for node in flat}
    for node in flat:
        if node.parent_id is None or node.parent_id in nested_parents:
            continue
        parent = by_id.get(node.parent_id)
        if parent is not None and parent is not node:
            parent.children.append(node)
    return flat


class CategoryPathResolver:
    """Resolve root-to-node paths and per-level options over a category forest."""

    def __init__(self, categories: Any = None):
        if categories is None:
            nodes: List[Category] = []
        elif isinstance(categories, list) and all(isinstance(c, Category) for c in categories):
            nodes = categories
        else:
            nodes = normalize_categories(categories)
        self._lookup: Dict[int, Category] = {}
        self._index(nodes)
        heads = {self._walk_up(node, warn=False)[0] for node in self._lookup.values()}
        self._roots = [node for node in self._lookup.values() if node.id in heads]

    def _index(self, nodes: List[Category]) -> None:
        stack: List[Category] = list(reversed(nodes))
        while stack:
            node = stack.pop()
            if not _is_usable(node):
                continue
            if node.id in self._lookup:
                if self._lookup[node.id] is not node:
                    _LOGGER.debug("Category id %s seen twice; keeping first", node.id)
                continue
            self._lookup[node.id] = node
            for child in reversed(node.children or []):
                stack.append(child)

    def __len__(self) -> int:
        return len(self._lookup)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._lookup

    @property
    def roots(self) -> List[Category]:
        """Nodes that start some ``path_for`` result: parentless, orphaned or cyclic."""

        return list(self._roots)

    def get(self, category_id: Optional[int]) -> Optional[Category]:
        if category_id is None:
            return None
        return self._lookup.get(category_id)

    def is_reachable(self, category_id: Optional[int]) -> bool:
        return category_id is not None and category_id in self._lookup

    def path_for(self, category_id: Optional[int]) -> List[int]:
        """Return ids from the effective root down to ``category_id``.

        Walking stops at a node without parent, at an orphan (parent id not
        loaded) which then acts as the root, or at a repeated id.
        """

        node = self.get(category_id)
        if node is None:
            return []
        return self._walk_up(node, warn=True)

    def _walk_up(self, node: Category, warn: bool) -> List[int]:
        path = [node.id]
        visited = {node.id}
        while node.parent_id is not None:
            parent_id = node.parent_id
            if parent_id in visited:
                if warn:
                    _LOGGER.warning("Category cycle detected at id %s", parent_id)
                break
            parent = self._lookup.get(parent_id)
            if parent is None:
                if warn:
                    _LOGGER.warning(
                        "Category %s references missing parent %s; treating it as root",
                        node.id,
                        parent_id,
                    )
                break
            path.insert(0, parent_id)
            visited.add(parent_id)
            node = parent
        return path

    @staticmethod
    def _options(nodes: Optional[List[Category]]) -> List[Category]:
        return [node for node in nodes or [] if _is_usable(node)]

    def stages(self, path: List[int]) -> List[CategoryStage]:
        stages = [
            CategoryStage(
                level=0,
                parent=None,
                options=self._options(self._roots),
                selected_id=path[0] if path else None,
            )
        ]
        for index, selected_id in enumerate(path):
            node = self._lookup.get(selected_id)
            if node is None:
                break
            options = self._options(node.children)
            if not options:
                break
            stages.append(
                CategoryStage(
                    level=index + 1,
                    parent=node,
                    options=options,
                    selected_id=path[index + 1] if index + 1 < len(path) else None,
                )
            )
        return stages

    def select(
        self, path: List[int], level: int, category_id: Optional[int]
    ) -> Tuple[List[int], Optional[int]]:
        """Apply a selection at ``level`` and return ``(new_path, category_id)``.

        ``None`` means "no selection at this level": the path is truncated to
        ``level`` entries and the category falls back to the parent stage's
        selection (or to no category at level 0).
        """

        level = max(0, min(level, len(path)))
        if category_id is None:
            new_path = list(path[:level])
            return new_path, (new_path[-1] if new_path else None)
        new_path = list(path[:level]) + [category_id]
        return new_path, category_id

    def breadcrumb(self, category_id: Optional[int]) -> str:
        names = []
        for cat_id in self.path_for(category_id):
            node = self._lookup[cat_id]
            names.append(node.name or f"#{cat_id}")
        return BREADCRUMB_SEPARATOR.join(names)
