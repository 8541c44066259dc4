"""Key construction and parsing.

Every record lives under a ``/``-delimited key that alternates namespace
labels and identifiers and ends with a leaf name::

    document/{name}/index
    contact/{id}/index
    chat/{cid}/index
    chat/{cid}/message/{mid}/index
    chat/{cid}/message/{mid}/content

Identifiers are used verbatim. Making them safe for a particular medium is
the engine's job.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import MalformedKey

WILDCARD = "*"


class Namespace(str, Enum):
    DOCUMENT = "document"
    CONTACT = "contact"
    CHAT = "chat"
    MESSAGE = "message"
    CONTENT = "content"


@dataclass(frozen=True)
class _Shape:
    template: str
    fields: Tuple[str, ...]
    # Only document names may span several segments.
    multi_segment: bool = False

    def regex(self) -> re.Pattern:
        part = "(.+)" if self.multi_segment else "([^/]+)"
        literal = re.escape(self.template.replace("{}", "\0"))
        return re.compile("^" + literal.replace("\0", part) + r"\Z", re.DOTALL)


_SHAPES = {
    Namespace.DOCUMENT: _Shape("document/{}/index", ("name",), multi_segment=True),
    Namespace.CONTACT: _Shape("contact/{}/index", ("id",)),
    Namespace.CHAT: _Shape("chat/{}/index", ("cid",)),
    Namespace.MESSAGE: _Shape("chat/{}/message/{}/index", ("cid", "mid")),
    Namespace.CONTENT: _Shape("chat/{}/message/{}/content", ("cid", "mid")),
}

_PATTERNS = {ns: shape.regex() for ns, shape in _SHAPES.items()}


@dataclass(frozen=True)
class Key:
    """A parsed key: its namespace and identifiers in template order."""

    namespace: Namespace
    ids: Tuple[str, ...]

    def __str__(self) -> str:
        return build(self.namespace, *self.ids)


def _check_id(namespace: Namespace, value: str) -> str:
    if not isinstance(value, str) or not value:
        raise MalformedKey(f"{namespace.value}: identifier must be a non-empty string, got {value!r}")
    if "/" in value and not _SHAPES[namespace].multi_segment:
        raise MalformedKey(f"{namespace.value}: identifier {value!r} must not contain '/'")
    if value.endswith("/") or value.startswith("/") or "//" in value:
        raise MalformedKey(f"{namespace.value}: identifier {value!r} has an empty segment")
    return value


def build(namespace: Namespace | str, *ids: str) -> str:
    """Build the key for ``namespace`` from its identifiers."""
    ns = Namespace(namespace)
    shape = _SHAPES[ns]
    if len(ids) != len(shape.fields):
        raise MalformedKey(f"{ns.value} expects {len(shape.fields)} identifier(s) {shape.fields}, got {len(ids)}")
    return shape.template.format(*(_check_id(ns, i) for i in ids))


def parse(key: str) -> Key:
    """Recover namespace and identifiers from a key produced by :func:`build`."""
    if isinstance(key, str):
        for ns, rx in _PATTERNS.items():
            m = rx.match(key)
            if m:
                return Key(ns, m.groups())
    raise MalformedKey(f"unrecognised key {key!r}")


def try_parse(key: str) -> Key | None:
    try:
        return parse(key)
    except MalformedKey:
        return None


def pattern(namespace: Namespace | str, *ids: Optional[str]) -> str:
    """Scan pattern for ``namespace``; ``None`` and omitted trailing ids become ``*``."""
    ns = Namespace(namespace)
    shape = _SHAPES[ns]
    if len(ids) > len(shape.fields):
        raise MalformedKey(f"{ns.value} expects at most {len(shape.fields)} identifier(s), got {len(ids)}")
    parts = [WILDCARD if i is None else _check_id(ns, i) for i in ids]
    parts += [WILDCARD] * (len(shape.fields) - len(parts))
    if shape.multi_segment and parts[-1] == WILDCARD:
        # The name may span segments, so match the whole subtree.
        return shape.template.split("{}", 1)[0] + WILDCARD
    return shape.template.format(*parts)


def prefix(namespace: Namespace | str, *ids: str) -> str:
    """The subtree owned by a record, ending in ``/``.

    ``prefix('chat', cid)`` is ``chat/{cid}/`` and covers the chat record
    and every message and content key beneath it.
    """
    key = build(namespace, *ids)
    return key[: key.rindex("/") + 1]


def matches(glob: str, key: str) -> bool:
    """Match ``key`` against a glob where ``*`` is the only metacharacter."""
    return glob_regex(glob).match(key) is not None


def glob_regex(glob: str) -> re.Pattern:
    # '*' spans '/' as Redis KEYS does; callers re-filter through parse().
    return re.compile("^" + ".*".join(re.escape(p) for p in glob.split(WILDCARD)) + r"\Z", re.DOTALL)


def literal_prefix(glob: str) -> str:
    """Everything before the first wildcard."""
    return glob.split(WILDCARD, 1)[0]
