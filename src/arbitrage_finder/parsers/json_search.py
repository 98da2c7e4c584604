"""Embedded-JSON helpers shared by the marketplace parsers.

Search pages often ship their results as JSON inside <script> tags
(Next.js __NEXT_DATA__, window.__STATE__ assignments, ...). These helpers pull
those blobs out and walk them looking for listing-shaped objects.

The walks use an explicit stack instead of recursion, and visit nodes in
document order, so the output order is stable for a given payload.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator

logger = logging.getLogger(__name__)


SCRIPT_PATTERN = re.compile(r"<script[^>]*>([\s\S]*?)</script>", re.IGNORECASE)
NEXT_DATA_PATTERNS = (
    re.compile(r"<script[^>]*id=[\"']__NEXT_DATA__[\"'][^>]*>([\s\S]*?)</script>", re.IGNORECASE),
    re.compile(
        r"<script\s+type=[\"']application/json[\"'][^>]*id=[\"']__NEXT_DATA__[\"'][^>]*>([\s\S]*?)</script>",
        re.IGNORECASE,
    ),
)
ASSIGNMENT_PATTERN = re.compile(r"(?:window\.\w+|var\s+\w+|const\s+\w+)\s*=\s*(\{[\s\S]*\});?")

# Field names that make an object look like a listing
URL_FIELDS = ("vipUrl", "url", "href", "link", "itemId", "id")
TITLE_FIELDS = ("title", "subject", "description", "name")
PRICE_FIELDS = ("priceInfo", "price", "priceCents", "amount")


def is_truthy(value: Any) -> bool:
    """Truthiness as seen by the page's own scripts: empty containers count as present."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value == value and value != 0
    if isinstance(value, str):
        return value != ""
    return True


def first_truthy(obj: dict, *keys: str) -> Any:
    """Return the first present, truthy field of a dict (or None)."""
    for key in keys:
        value = obj.get(key)
        if is_truthy(value):
            return value
    return None


def get_path(data: Any, path: str) -> Any:
    """Look up a dotted path ("props.pageProps.ads") without raising."""
    current = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def first_populated_array(data: Any, paths: tuple[str, ...]) -> tuple[list, str | None]:
    """Return the first non-empty list found along the given paths."""
    for path in paths:
        value = get_path(data, path)
        if isinstance(value, list) and value:
            return value, path
    return [], None


def iter_scripts(html: str) -> Iterator[str]:
    """Yield the stripped body of every <script> block."""
    for match in SCRIPT_PATTERN.finditer(html):
        yield match.group(1).strip()


def find_next_data(html: str) -> str | None:
    """Return the raw __NEXT_DATA__ payload, if present."""
    for pattern in NEXT_DATA_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def load_json(text: str) -> Any:
    """Parse strict JSON, returning None for malformed payloads.

    NaN, Infinity and -Infinity are not JSON and make the whole payload malformed.
    """
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug(f"Malformed embedded JSON: {e}")
        return None


def load_script_json(script: str) -> Any:
    """Parse a script body as JSON, or as a `var x = {...}` style assignment."""
    data = load_json(script)
    if data is not None:
        return data
    match = ASSIGNMENT_PATTERN.search(script)
    if match:
        return load_json(match.group(1))
    return None


def is_listing_like(obj: dict) -> bool:
    """An object is listing-like if it has a URL-like, a title-like and a price-like field."""
    return (
        first_truthy(obj, *URL_FIELDS) is not None
        and first_truthy(obj, *TITLE_FIELDS) is not None
        and first_truthy(obj, *PRICE_FIELDS) is not None
    )


def find_listing_like_objects(data: Any) -> list[dict]:
    """Collect every listing-like object held in an array, anywhere in the tree.

    Objects are reported in document order (pre-order); a listing nested
    inside another listing is reported after its parent.
    """
    found: list[dict] = []
    # (node, is_array_element)
    stack: list[tuple[Any, bool]] = [(data, False)]

    while stack:
        node, in_array = stack.pop()
        if isinstance(node, dict):
            if in_array and is_listing_like(node):
                found.append(node)
            children = [(value, False) for value in node.values()]
        elif isinstance(node, list):
            children = [(item, True) for item in node if isinstance(item, (dict, list))]
        else:
            continue
        stack.extend(reversed(children))

    return found


ADS_CONTAINER_KEYS = frozenset({"ads", "listings", "results"})


class _ContainerHit:
    """Stack marker for an ads container found under a known key."""

    __slots__ = ("value",)

    def __init__(self, value: list):
        self.value = value


def find_ads_array(data: Any, max_depth: int = 10) -> list:
    """Find the first array that looks like a list of ads.

    Matches an array whose first element has both `subject` and `price`, or a
    non-empty array stored under an `ads`/`listings`/`results` key. The walk
    is depth-first in document order and bounded by `max_depth`; a container
    key is only taken once every earlier sibling has been searched.
    """
    stack: list[tuple[Any, int]] = [(data, 0)]

    while stack:
        node, depth = stack.pop()
        if isinstance(node, _ContainerHit):
            return node.value
        if depth > max_depth:
            continue

        if isinstance(node, list):
            head = node[0] if node else None
            if isinstance(head, dict) and is_truthy(head.get("subject")) and is_truthy(head.get("price")):
                return node
            children: list[Any] = list(node)
        elif isinstance(node, dict):
            children = []
            for key, value in node.items():
                if key in ADS_CONTAINER_KEYS and isinstance(value, list) and value:
                    children.append(_ContainerHit(value))
                    break
                children.append(value)
        else:
            continue

        stack.extend((child, depth + 1) for child in reversed(children))

    return []
