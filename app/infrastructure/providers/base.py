import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, TypeVar

from app.application.idempotency import chunked, filter_new_ids
from app.crosscutting.config import Settings
from app.domain.entities import AddResult, DestinationTarget, TargetKind, TrackRef
from app.domain.errors import (
    NotFound, ProviderError, RateLimited, Unauthorized, UnknownProviderError, WriteError,
)


logger = logging.getLogger(__name__)

T = TypeVar('T')


class BaseCatalog:
    """Shared plumbing for catalog adapters.

    Subclasses implement the provider calls and ``_classify`` (provider
    exception to error taxonomy). Every provider call goes through ``_call``,
    which retries rate limiting with exponential backoff and lets any other
    failure propagate immediately.

    Destination contents read for dedup are cached for the adapter's lifetime
    (one request) and extended after every successful batch, so a job with many
    write chunks reads each target once.
    """

    name = 'catalog'
    add_batch_limit = 100
    likes_batch_limit = 50

    def __init__(self, settings: Optional[Settings] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings or Settings()
        self.page_size = self.settings.page_size
        self._sleep = sleep
        self._playlist_ids: Dict[str, Set[str]] = {}
        self._liked_cache: Optional[Set[str]] = None

    def _classify(self, error: Exception) -> ProviderError:
        raise NotImplementedError

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        attempts = max(1, self.settings.rate_limit_attempts)
        for attempt in range(attempts):
            try:
                return fn()
            except ProviderError:
                raise
            except Exception as e:
                error = self._classify(e)
                if not isinstance(error, RateLimited):
                    raise error from e
                if attempt + 1 >= attempts:
                    logger.error(f"{self.name}: {operation} still rate limited after {attempts} attempts")
                    raise error from e
                delay_ms = max(error.retry_after_ms, self.settings.backoff_base_ms * (2 ** attempt))
                logger.warning(f"{self.name}: {operation} rate limited, retrying in {delay_ms}ms "
                               f"(attempt {attempt + 1}/{attempts})")
                self._sleep(delay_ms / 1000.0)
        raise UnknownProviderError(f"{self.name}: {operation} made no attempt", provider=self.name)

    def _write(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a mutation; rejections other than auth and missing resources become WriteError."""
        try:
            return self._call(operation, fn)
        except (Unauthorized, NotFound, WriteError):
            raise
        except ProviderError as e:
            raise WriteError(f"{self.name}: {operation} rejected: {e}", provider=self.name,
                             status=e.status, cause=e) from e

    def fetch_all_tracks(self, playlist_id: str) -> List[TrackRef]:
        tracks: List[TrackRef] = []
        page = 0
        while True:
            result = self.fetch_tracks(playlist_id, page)
            tracks.extend(result.tracks)
            if not result.has_more:
                return tracks
            page += 1

    def fetch_all_liked(self) -> List[TrackRef]:
        tracks: List[TrackRef] = []
        offset = 0
        while True:
            result = self.fetch_liked(self.page_size, offset)
            tracks.extend(result.tracks)
            if not result.has_more or not result.tracks:
                return tracks
            offset += len(result.tracks)

    def add_tracks(self, target: DestinationTarget, track_ids: Sequence[str]) -> AddResult:
        if target.kind == TargetKind.FAVORITES:
            return self.add_to_likes(track_ids)
        if target.kind == TargetKind.NEW_PLAYLIST:
            raise ValueError("NewPlaylist targets must be created before adding tracks")
        return self.add_to_playlist(target.playlist_id, track_ids)

    def add_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> AddResult:
        """Add tracks that the playlist does not already contain."""
        if not track_ids:
            return AddResult(added=0, duplicates=0, errors=0)
        known = self._known_playlist_ids(playlist_id)
        new_ids, duplicates = filter_new_ids(track_ids, known)
        added = 0
        for batch in chunked(new_ids, self.add_batch_limit):
            self._write('add_tracks', lambda batch=batch: self._add_playlist_batch(playlist_id, batch))
            known.update(batch)
            added += len(batch)
        logger.info(f"{self.name}: added {added} tracks to playlist {playlist_id}, skipped {duplicates} duplicates")
        return AddResult(added=added, duplicates=duplicates, errors=0)

    def add_to_likes(self, track_ids: Sequence[str]) -> AddResult:
        """Like tracks that are not liked yet."""
        if not track_ids:
            return AddResult(added=0, duplicates=0, errors=0)
        existing = self._liked_ids(track_ids)
        new_ids, duplicates = filter_new_ids(track_ids, existing)
        added = 0
        for batch in chunked(new_ids, self.likes_batch_limit):
            self._write('add_to_likes', lambda batch=batch: self._add_likes_batch(batch))
            if self._liked_cache is not None:
                self._liked_cache.update(batch)
            added += len(batch)
        logger.info(f"{self.name}: liked {added} tracks, skipped {duplicates} already liked")
        return AddResult(added=added, duplicates=duplicates, errors=0)

    def _known_playlist_ids(self, playlist_id: str) -> Set[str]:
        """Ids in the playlist, read from the provider on first use."""
        if playlist_id not in self._playlist_ids:
            self._playlist_ids[playlist_id] = {
                t.external_id for t in self.fetch_all_tracks(playlist_id) if t.external_id
            }
        return self._playlist_ids[playlist_id]

    def _created_playlist(self, playlist_id: str) -> str:
        """Record a playlist this adapter just created; it starts empty."""
        self._playlist_ids[playlist_id] = set()
        return playlist_id

    def _deleted_playlist(self, playlist_id: str) -> None:
        self._playlist_ids.pop(playlist_id, None)

    def _add_playlist_batch(self, playlist_id: str, track_ids: List[str]) -> None:
        raise NotImplementedError

    def _add_likes_batch(self, track_ids: List[str]) -> None:
        raise NotImplementedError

    def _liked_ids(self, track_ids: Sequence[str]) -> Iterable[str]:
        """Ids among ``track_ids`` that the user already likes.

        The default reads the whole library once; adapters with a cheap
        membership check override this.
        """
        if self._liked_cache is None:
            self._liked_cache = {t.external_id for t in self.fetch_all_liked() if t.external_id}
        return self._liked_cache
