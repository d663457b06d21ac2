from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional, Sequence

from .entities import TrackRef


_FEAT_PATTERN = re.compile(r"\s*\b(feat\.?|ft\.?|featuring)\s.*$", re.IGNORECASE)
_PARENS_CHARS_PATTERN = re.compile(r"[\(\)\[\]\{\}]")
_PARENS_CONTENT_PATTERN = re.compile(r"\s*[\(\[\{][^\)\]\}]*[\)\]\}]\s*")
_DASH_SUFFIX_PATTERN = re.compile(
    r"\s+-\s+.*\b(remaster(ed)?|live|edit|version|mix|mono|stereo)\b.*$", re.IGNORECASE
)
# Keep all unicode word characters and spaces; strip punctuation/symbols. Then remove underscores separately.
_NON_WORD_SPACE_PATTERN = re.compile(r"[^\w\s]", re.UNICODE)
_MULTISPACE_PATTERN = re.compile(r"\s+")


def _strip_diacritics(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def normalize_string(value: Optional[str]) -> str:
    value = value or ""
    value = _strip_diacritics(value)
    value = value.lower()
    value = value.replace("&", " and ")
    value = _DASH_SUFFIX_PATTERN.sub("", value)
    # Remove parenthetical/bracketed content entirely
    while True:
        new_value = _PARENS_CONTENT_PATTERN.sub(" ", value)
        if new_value == value:
            break
        value = new_value
    value = _FEAT_PATTERN.sub("", value)
    value = _PARENS_CHARS_PATTERN.sub(" ", value)
    value = _NON_WORD_SPACE_PATTERN.sub(" ", value)
    value = value.replace("_", " ")
    value = _MULTISPACE_PATTERN.sub(" ", value).strip()
    return value


def normalize_artist(name: Optional[str]) -> str:
    """Normalize an artist name, dropping a leading article."""
    norm = normalize_string(name)
    if norm.startswith("the "):
        return norm[4:]
    return norm


def split_artists(value: Optional[str]) -> List[str]:
    """Split a comma-joined artist string as shown by catalog UIs."""
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def primary_artist(artists: Sequence[str], fallback: Optional[str] = None) -> str:
    """Take the first listed artist as canonical."""
    for artist in artists or ():
        if artist and artist.strip():
            return artist.strip()
    parts = split_artists(fallback)
    return parts[0] if parts else ""


def artists_match(source_artist: str, candidate_artists: Iterable[str]) -> bool:
    source_n = normalize_artist(source_artist)
    if not source_n:
        return False
    return any(normalize_artist(a) == source_n for a in candidate_artists if a)


def titles_equal(a: str, b: str) -> bool:
    a_n, b_n = normalize_string(a), normalize_string(b)
    return bool(a_n) and a_n == b_n


def titles_overlap(a: str, b: str) -> bool:
    """True when one normalized title contains the other."""
    a_n, b_n = normalize_string(a), normalize_string(b)
    if not a_n or not b_n:
        return False
    return a_n in b_n or b_n in a_n


def build_query(track: TrackRef) -> str:
    """Free-text search query: title plus primary artist."""
    return f"{track.title.strip()} {primary_artist(track.artists, track.artist)}".strip()


def build_track_key(track: TrackRef) -> str:
    """Key used to dedupe tracks within one catalog, preferring the catalog id."""
    if track.external_id:
        return f"id:{track.external_id}"
    title_n = normalize_string(track.title)
    artist_n = normalize_artist(primary_artist(track.artists, track.artist))
    return f"meta:{title_n}::{artist_n}"
