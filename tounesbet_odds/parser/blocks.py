"""
Marker-based block extraction over raw HTML.

The site's markup is irregular (unclosed rows, nested fragments returned by
XHR endpoints), so parsers segment documents by scanning for repeating
markers instead of building a DOM. Everything pattern-specific lives in the
page parsers; this module only knows how to cut and clean.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Union

from .normalize import decode_entities

PatternLike = Union[str, Pattern[str]]

_TAG = re.compile(r"<[^>]*>")
_WS = re.compile(r"\s+")
_OPEN_TAG = re.compile(r"^<[^>]*>")
MATCH_ID = re.compile(r"""data-matchid=["'](\d+)["']""", re.I)


def compile_pattern(pattern: PatternLike) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern, re.I | re.S)
    return pattern


@dataclass
class Section:
    """A header match and the markup running up to the next header."""
    header: str
    body: str
    groups: tuple


def split_blocks(html: str, marker: PatternLike) -> list[str]:
    """
    Cut `html` at every occurrence of `marker`.

    Each block runs from one marker to the next; the last one runs to the end
    of the document. Markup before the first marker is dropped.
    """
    starts = [m.start() for m in compile_pattern(marker).finditer(html)]
    if not starts:
        return []
    starts.append(len(html))
    return [html[starts[i]:starts[i + 1]] for i in range(len(starts) - 1)]


def split_sections(html: str, header: PatternLike) -> list[Section]:
    """Like split_blocks, keeping each header's own match text and groups."""
    matches = list(compile_pattern(header).finditer(html))
    sections = []
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(html)
        sections.append(Section(header=m.group(0), body=html[m.start():end], groups=m.groups()))
    return sections


def find_all(html: str, pattern: PatternLike) -> list[re.Match]:
    return list(compile_pattern(pattern).finditer(html))


def scope(html: str, pattern: PatternLike, group: int = 0) -> str:
    """Narrow to the first region matching `pattern`, or the whole document."""
    m = compile_pattern(pattern).search(html)
    return m.group(group) if m else html


def extract_attr(tag: str, name: str) -> Optional[str]:
    """Value of a single- or double-quoted attribute in an opening tag."""
    m = re.search(rf"""{re.escape(name)}=(?:"([^"]*)"|'([^']*)')""", tag, re.I)
    if not m:
        return None
    return m.group(1) if m.group(1) is not None else m.group(2)


def open_tag(fragment: str) -> str:
    m = _OPEN_TAG.match(fragment)
    return m.group(0) if m else ""


def inner_html(fragment: str, tag_name: str) -> str:
    """Content of `<tag ...>content</tag>` without the outer tags."""
    body = _OPEN_TAG.sub("", fragment, count=1)
    return re.sub(rf"</{re.escape(tag_name)}>\s*$", "", body, flags=re.I)


def clean_text(fragment: str) -> str:
    """Drop tags, decode entities and collapse whitespace."""
    return _WS.sub(" ", decode_entities(_TAG.sub(" ", fragment))).strip()


def find_text(html: str, pattern: PatternLike, group: int = 1) -> Optional[str]:
    """Cleaned text of a capture group, or None when absent or blank."""
    m = compile_pattern(pattern).search(html)
    if not m or m.group(group) is None:
        return None
    return clean_text(m.group(group)) or None


def match_id(fragment: str) -> Optional[str]:
    m = MATCH_ID.search(fragment)
    return m.group(1) if m else None


def has_match_rows(html: str) -> bool:
    return bool(MATCH_ID.search(html)) or "matchestablebody" in html.lower()
