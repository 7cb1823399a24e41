"""Tolerant readers over the generic attributed tree.

Report definitions in the wild are inconsistent: the root may carry a
namespace prefix, collections may be wrapped one level deeper than usual,
and any repeatable node shows up as a single dict when it occurs once and a
list when it occurs more than once.  The helpers here absorb that variance
so the extractor can stay declarative.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from jrxml.tree import ATTR_PREFIX, TEXT_KEY

DEFAULT_MAX_DEPTH = 6

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def local_name(key: str) -> str:
    """Strip a namespace prefix: ``jr:band`` -> ``band``."""
    return key.rsplit(":", 1)[-1]


def _is_child_key(key: Any) -> bool:
    return isinstance(key, str) and not key.startswith((ATTR_PREFIX, TEXT_KEY))


def _alias_matches(key: str, name: str) -> bool:
    """Case-insensitive match of *name* inside *key* at identifier boundaries.

    ``jr:field``, ``FIELD`` and ``ns_field`` match ``field``; ``textField``
    and ``sortField`` do not.
    """
    lkey = key.lower()
    lname = name.lower()
    if lkey == lname or local_name(lkey) == lname:
        return True

    start = lkey.find(lname)
    while start != -1:
        end = start + len(lname)
        before = lkey[start - 1] if start > 0 else ""
        after = lkey[end] if end < len(lkey) else ""
        if not before.isalnum() and not after.isalnum():
            return True
        start = lkey.find(lname, start + 1)
    return False


def resolve(
    node: Any,
    names: str | Iterable[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Any:
    """Find the value stored under any of *names* in *node*.

    Each level is tried as: exact key, then alias match (prefix or case
    variance), then a depth-first descent into child nodes.  The descent
    stops after *max_depth* levels; ``max_depth=0`` restricts the lookup to
    the direct children of *node*.

    Returns ``None`` when nothing matches.
    """
    if isinstance(names, str):
        names = (names,)
    return _resolve(node, tuple(names), max_depth, 0)


def _resolve(node: Any, names: tuple[str, ...], max_depth: int, depth: int) -> Any:
    if depth > max_depth:
        return None

    if isinstance(node, list):
        for item in node:
            found = _resolve(item, names, max_depth, depth)
            if found is not None:
                return found
        return None

    if not isinstance(node, dict):
        return None

    for name in names:
        if name in node:
            return node[name]

    keys = [k for k in node if _is_child_key(k)]
    for name in names:
        for key in keys:
            if _alias_matches(key, name):
                return node[key]

    for key in keys:
        child = node[key]
        if isinstance(child, (dict, list)):
            found = _resolve(child, names, max_depth, depth + 1)
            if found is not None:
                return found
    return None


def resolve_root(tree: dict[str, Any], name: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[dict]:
    """Locate the report root; only a dict counts as a root node.

    Top-level keys also match on a plain case-insensitive substring, so a
    root named ``JasperReportDef`` is still found.  Deeper levels use the
    stricter rules of :func:`resolve`.
    """
    found = resolve(tree, name, 0)
    if found is None:
        lname = name.lower()
        found = next(
            (
                value
                for key, value in tree.items()
                if _is_child_key(key) and lname in key.lower() and isinstance(value, dict)
            ),
            None,
        )
    if found is None:
        found = resolve(tree, name, max_depth)
    if isinstance(found, list):
        found = next((item for item in found if isinstance(item, dict)), None)
    return found if isinstance(found, dict) else None


def as_list(value: Any) -> list:
    """Normalize a repeatable node: absent -> [], single -> [single]."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def to_int(value: Any, default: int) -> int:
    """Parse a leading integer from *value*, else return *default*.

    ``"12"`` and ``"12.5"`` both give 12; ``None``, ``""`` and ``"abc"``
    give *default*.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return default
    match = _LEADING_INT_RE.match(value)
    if match is None:
        return default
    return int(match.group(1))


def attr(node: Any, name: str) -> Optional[str]:
    """Return attribute *name* of *node*, or ``None``."""
    if isinstance(node, dict):
        value = node.get(ATTR_PREFIX + name)
        if isinstance(value, str):
            return value
    return None


def text_of(value: Any) -> Optional[str]:
    """Return the text content of a leaf or attributed node."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        text = value.get(TEXT_KEY, "")
        return text if isinstance(text, str) else ""
    if isinstance(value, list):
        return text_of(value[0]) if value else None
    return str(value)
