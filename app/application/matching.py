import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.domain.entities import MatchCandidate, TrackRef
from app.domain.normalization import artists_match, primary_artist, titles_equal, titles_overlap
from app.domain.ports import CatalogAdapter


logger = logging.getLogger(__name__)

EXACT_SCORE = 1.0
PARTIAL_TITLE_SCORE = 0.7
ARTIST_ONLY_SCORE = 0.3


@dataclass
class MatchResult:
    """Result of matching one source track against a destination catalog."""

    source: TrackRef
    candidate: Optional[MatchCandidate]
    reason: str

    @property
    def matched(self) -> Optional[TrackRef]:
        return self.candidate.track_ref if self.candidate else None

    @property
    def confidence(self) -> float:
        return self.candidate.confidence_score if self.candidate else 0.0


def score_candidate(source: TrackRef, candidate: TrackRef) -> float:
    """Score a destination track against the source by title and primary artist.

    Only the first listed artist on each side counts, so a cover or a
    collaboration led by someone else does not qualify. Returns 0.0 when the
    candidate does not qualify at all.
    """
    artist = primary_artist(source.artists, source.artist)
    if not artists_match(artist, [primary_artist(candidate.artists, candidate.artist)]):
        return 0.0
    if titles_equal(source.title, candidate.title):
        return EXACT_SCORE
    if titles_overlap(source.title, candidate.title):
        return PARTIAL_TITLE_SCORE
    return ARTIST_ONLY_SCORE


class TrackMatcher:
    """Resolves a source track to at most one destination track.

    Candidates come from the destination catalog's search in its own relevance
    order. Each is scored 1.0 (same title and artist), 0.7 (one title contains
    the other, same artist) or 0.3 (same artist only); the best score wins and
    the provider's order breaks ties. Nothing is returned unless the best score
    is strictly above ``min_confidence``.

    The matcher only ever calls ``search`` on the adapter.
    """

    def __init__(self,
                 min_confidence: float = 0.3,
                 duration_tiebreak: bool = False,
                 duration_tolerance_ms: int = 2000):
        """Initialize the matcher.

        Args:
            min_confidence: Score a candidate must exceed to be accepted
            duration_tiebreak: Prefer, among equal scores, candidates whose
                duration is within tolerance of the source
            duration_tolerance_ms: Allowed duration difference for the tiebreak
        """
        self.min_confidence = min_confidence
        self.duration_tiebreak = duration_tiebreak
        self.duration_tolerance_ms = duration_tolerance_ms

    def match(self, source: TrackRef, destination: CatalogAdapter) -> MatchResult:
        """Search the destination for ``source`` and pick the best candidate."""
        if not source.title.strip() or not primary_artist(source.artists, source.artist):
            return MatchResult(source=source, candidate=None, reason="insufficient_metadata")

        candidates = destination.search(source)
        return self.find_best_match(source, [c.track_ref for c in candidates])

    def find_best_match(self, source: TrackRef, candidates: List[TrackRef]) -> MatchResult:
        """Select the best scoring candidate, or report not found."""
        if not candidates:
            return MatchResult(source=source, candidate=None, reason="not_found")

        scored = []
        for rank, candidate in enumerate(candidates):
            score = score_candidate(source, candidate)
            if score > 0.0:
                scored.append((score, rank, candidate))

        if not scored:
            return MatchResult(source=source, candidate=None, reason="not_found")

        best_score = max(score for score, _, _ in scored)
        best = [entry for entry in scored if entry[0] == best_score]
        if self.duration_tiebreak and source.duration_ms:
            best.sort(key=lambda entry: (not self._duration_close(source, entry[2]), entry[1]))

        score, _, chosen = best[0]
        if score <= self.min_confidence:
            logger.debug(f"Best candidate for '{source.title}' scored {score:.2f}, below acceptance")
            return MatchResult(source=source, candidate=None, reason="low_confidence")

        reason = "exact_match" if score >= EXACT_SCORE else "partial_title"
        return MatchResult(
            source=source,
            candidate=MatchCandidate(track_ref=chosen, confidence_score=score),
            reason=reason,
        )

    def _duration_close(self, source: TrackRef, candidate: TrackRef) -> bool:
        if not source.duration_ms or not candidate.duration_ms:
            return False
        return abs(source.duration_ms - candidate.duration_ms) <= self.duration_tolerance_ms


def match_statistics(results: List[MatchResult]) -> Dict[str, Any]:
    """Counts of matched and unmatched tracks, broken down by reason."""
    total = len(results)
    by_reason: Dict[str, int] = {}
    for result in results:
        by_reason[result.reason] = by_reason.get(result.reason, 0) + 1

    matched = sum(1 for r in results if r.candidate is not None)
    return {
        "total": total,
        "matched": matched,
        "not_found": total - matched,
        "match_rate": round(matched / total, 3) if total else 0.0,
        "by_reason": by_reason,
    }
