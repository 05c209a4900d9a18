from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


def flatten_nodes(tree: Optional[Iterable[Any]]) -> list[dict[str, Any]]:
    """Flatten a nested node tree into a pre-order list.

    Each emitted node is a shallow copy with `children` removed. Nested nodes
    get `parent_id` set to the id of the node they were nested under; the
    nesting wins over any `parent_id` the child already carried. Top-level
    nodes keep their own `parent_id`.

    A node object seen twice, or an id already emitted, is a structural error
    (e.g. a cyclic `children` reference) and is skipped with its subtree.
    """

    if not tree:
        return []

    out: list[dict[str, Any]] = []
    emitted: set[str] = set()
    seen: set[int] = set()

    # Explicit stack keeps deep plans clear of the recursion limit.
    # Entries are (node, parent_id, nested).
    stack: list[tuple[Any, Any, bool]] = [(raw, None, False) for raw in reversed(list(tree))]
    while stack:
        raw, parent_id, nested = stack.pop()
        if not isinstance(raw, dict):
            if raw is not None:
                logger.debug("skipping non-object node entry: %r", raw)
            continue

        if id(raw) in seen:
            logger.warning("node %r is nested more than once; skipping repeat", raw.get("id"))
            continue
        seen.add(id(raw))

        nid = raw.get("id")
        if nid is not None:
            key = str(nid)
            if key in emitted:
                logger.warning("node %s appears more than once in the tree; skipping repeat", key)
                continue
            emitted.add(key)

        node = {k: v for k, v in raw.items() if k != "children"}
        if nested:
            node["parent_id"] = parent_id
        out.append(node)

        children = raw.get("children")
        if isinstance(children, list) and children:
            stack.extend((child, nid, True) for child in reversed(children))

    return out


def is_nested(collection: Optional[Iterable[Any]]) -> bool:
    """True iff any top-level node carries a non-empty `children` list."""
    if not collection:
        return False
    return any(
        isinstance(n, dict) and isinstance(n.get("children"), list) and len(n["children"]) > 0
        for n in collection
    )


def normalize_collection(collection: Optional[Iterable[Any]]) -> list[dict[str, Any]]:
    """Return a flat node list for either a flat or a nested fetch response."""
    if not collection:
        return []
    items = list(collection)
    if is_nested(items):
        flat = flatten_nodes(items)
        logger.debug("flattened nested collection: %d top-level -> %d nodes", len(items), len(flat))
        return flat
    return [{k: v for k, v in n.items() if k != "children"} for n in items if isinstance(n, dict)]
