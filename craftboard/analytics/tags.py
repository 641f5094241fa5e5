"""Tag extraction from markdown.

Tag grammar: ``#`` followed by one or more ``/``-separated segments of word
characters and hyphens (``#work/project-x``). Extracted tags are lower-cased
and de-duplicated in order of first occurrence.

Also here:
- filter_allowed_lines: keep only lines carrying an allowed tag
- segment: split text into text/tag runs for rendering
- tag_hue: stable chart colour per tag
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set

TAG_RE = re.compile(r"#([\w-]+(?:/[\w-]+)*)")
SEGMENT_RE = re.compile(r"(?P<pre>[*_]*)#(?P<tag>[\w-]+(?:/[\w-]+)*)(?P<post>[*_]*)")

TAG_HUE_PALETTE = [
    210,  # blue
    0,    # red
    120,  # green
    300,  # magenta
    60,   # yellow
    180,  # cyan
    330,  # pink
    90,   # lime
    240,  # indigo
    30,   # orange
    270,  # violet
    150,  # teal
]


def normalize_tag(tag: str) -> str:
    return (tag or "").strip().lstrip("#").lower()


def _dedupe(tags: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for t in tags:
        if t and t not in seen:
            seen.add(t)
            out.append(t)
    return out


def _scoped_re(pattern: str) -> re.Pattern:
    # The scope must match a whole first segment: #work matches #work/x, not #workshop.
    return re.compile(rf"#({re.escape(pattern)}(?:/[\w-]+)*)(?![\w-])", re.IGNORECASE)


def extract_tags(text: str, pattern: Optional[str] = None) -> List[str]:
    """Extract tags from text, optionally only those under ``pattern``."""
    if not text:
        return []
    scope = normalize_tag(pattern or "")
    regex = _scoped_re(scope) if scope else TAG_RE
    return _dedupe(m.group(1).lower() for m in regex.finditer(text))


def filter_allowed_lines(text: str, allowed_tags: Iterable[str], separator: str = "\n") -> str:
    allowed = {normalize_tag(t) for t in allowed_tags}
    kept = [
        line for line in (text or "").splitlines()
        if any(tag in allowed for tag in extract_tags(line))
    ]
    return separator.join(kept)


@dataclass(frozen=True)
class Segment:
    type: str               # "text" | "tag"
    text: str
    tag: Optional[str] = None


def _split_emphasis(pre: str, raw_tag: str, post: str):
    """Trailing underscores close a ``_``-opened emphasis, they are not part of the tag."""
    if "_" in pre:
        stripped = raw_tag.rstrip("_")
        if stripped and not stripped.endswith("/"):
            return stripped, raw_tag[len(stripped):] + post
    return raw_tag, post


def segment(text: str, allowed_tags: Optional[Iterable[str]] = None) -> List[Segment]:
    """Split text into text and tag runs, left to right.

    Emphasis markers hugging an allowed tag (``**#tag**``, ``_#tag_``) are
    absorbed into the tag run. A tag outside ``allowed_tags`` stays as plain
    text, wrappers included. ``allowed_tags=None`` allows every tag.
    """
    allowed = None if allowed_tags is None else {normalize_tag(t) for t in allowed_tags}
    out: List[Segment] = []
    buf: List[str] = []

    def flush():
        if buf:
            out.append(Segment("text", "".join(buf)))
            buf.clear()

    pos = 0
    for m in SEGMENT_RE.finditer(text or ""):
        if m.start() > pos:
            buf.append(text[pos:m.start()])
        raw_tag, _post = _split_emphasis(m.group("pre"), m.group("tag"), m.group("post"))
        tag = raw_tag.lower()
        if allowed is not None and tag not in allowed:
            buf.append(m.group(0))
        else:
            flush()
            out.append(Segment("tag", f"#{raw_tag}", tag))
        pos = m.end()
    if pos < len(text or ""):
        buf.append(text[pos:])
    flush()
    return out


def _stable_hash(s: str) -> int:
    h = 0
    for ch in s:
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    return h - (1 << 32) if h & 0x80000000 else h


def tag_hue(tag: str, tag_list: Sequence[str]) -> int:
    """Palette hue by position in ``tag_list``; hash-derived hue for unknown tags."""
    try:
        idx = list(tag_list).index(tag)
    except ValueError:
        return abs(_stable_hash(tag)) % 360
    return TAG_HUE_PALETTE[idx % len(TAG_HUE_PALETTE)]
