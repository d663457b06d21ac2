import hashlib
from typing import Iterable, List, Sequence, Set, Tuple, TypeVar

from app.domain.entities import TrackRef
from app.domain.normalization import build_track_key

T = TypeVar("T")


def dedupe_preserving_order(track_ids: Iterable[str]) -> List[str]:
    """Drop repeated and empty ids, keeping the first occurrence."""
    seen: Set[str] = set()
    result = []
    for track_id in track_ids:
        if not track_id or track_id in seen:
            continue
        seen.add(track_id)
        result.append(track_id)
    return result


def filter_new_ids(track_ids: Sequence[str], existing_ids: Iterable[str]) -> Tuple[List[str], int]:
    """Split ids into those not yet present in the destination and a duplicate count.

    Repeats inside ``track_ids`` count as duplicates too, so the caller never
    writes the same track twice in one call.
    """
    existing = {str(i) for i in existing_ids if i}
    new_ids = [i for i in dedupe_preserving_order(track_ids) if i not in existing]
    return new_ids, len(track_ids) - len(new_ids)


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive chunks of at most ``size``."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def calculate_snapshot_hash(tracks: List[TrackRef]) -> str:
    """Stable, order-independent hash of a set of tracks.

    Used as a correlation value in logs so re-runs of the same job are easy to
    spot.
    """
    if not tracks:
        return hashlib.sha256(b"empty_snapshot").hexdigest()

    track_keys = sorted(build_track_key(track) for track in tracks)
    snapshot_str = "\n".join(track_keys)
    return hashlib.sha256(snapshot_str.encode('utf-8')).hexdigest()
