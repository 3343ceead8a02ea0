from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Optional


_FEAT_CONTENT_PATTERN = re.compile(r"\s*[\(\[](feat\.?|ft\.?|featuring|with)\s[^\)\]]*[\)\]]", re.IGNORECASE)
_FEAT_TAIL_PATTERN = re.compile(r"\s+(feat\.?|ft\.|featuring)\s.*$", re.IGNORECASE)
_QUOTE_PATTERN = re.compile(r"[\"“”]")
_CODE_SEPARATORS_PATTERN = re.compile(r"[\s\-_.]")
_MULTISPACE_PATTERN = re.compile(r"\s+")


def _strip_control_chars(text: str) -> str:
    normalized = unicodedata.normalize("NFKC", text)
    return "".join(c for c in normalized if unicodedata.category(c)[0] != "C")


def clean_search_text(value: Optional[str]) -> str:
    """Prepare a title or artist for a catalog text query.

    Featured-artist credits are dropped because catalogs format them differently
    ("Song (feat. X)" vs "Song [with X]"). Double quotes are removed so the value
    can be embedded in a quoted field filter.
    """
    value = _strip_control_chars(value or "")
    value = _FEAT_CONTENT_PATTERN.sub("", value)
    value = _FEAT_TAIL_PATTERN.sub("", value)
    value = _QUOTE_PATTERN.sub(" ", value)
    return _MULTISPACE_PATTERN.sub(" ", value).strip()


def normalize_external_code(code: Optional[str]) -> Optional[str]:
    """Canonical form of an ISRC/UPC: uppercase, without separators. Empty becomes None."""
    if not code:
        return None
    normalized = _CODE_SEPARATORS_PATTERN.sub("", str(code)).upper()
    return normalized or None


def primary_artist(artists: Iterable[str]) -> str:
    for artist in artists or []:
        if artist:
            return artist
    return ""
