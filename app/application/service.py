import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from app.application.matching import TrackMatcher
from app.application.merge import PlaylistMergeEngine
from app.application.pipeline import AUTH_FAILED, MigrationOrchestrator
from app.crosscutting.config import Settings
from app.domain.entities import (
    DestinationTarget, JobState, LikedPage, MergeJob, MergeResult, MigrationResult, Playlist, TrackRef,
)
from app.domain.errors import NotFound, ProviderError, Unauthorized
from app.domain.ports import CatalogAdapter
from app.infrastructure.providers.factory import Credential, build_adapter


logger = logging.getLogger(__name__)


def tracks_from_json(items: Iterable[Dict[str, Any]]) -> List[TrackRef]:
    """Convert ``{name, artist, album}`` items into TrackRefs, keeping order."""
    tracks = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("each track must be an object with name, artist and album")
        tracks.append(TrackRef(
            title=str(item.get('name') or item.get('title') or ''),
            artist=str(item.get('artist') or ''),
            album=str(item.get('album') or ''),
            external_id=item.get('id') or None,
        ))
    return tracks


def _failed(error: str, target: Optional[DestinationTarget] = None) -> MigrationResult:
    return MigrationResult(
        success=False,
        total_tracks=0,
        migrated=0,
        not_found=0,
        not_found_tracks=[],
        destination_playlist_id=target.playlist_id if target else None,
        destination_playlist_name=target.name if target else None,
        error=error,
        state=JobState.FAILED,
    )


class MigrationService:
    """Boundary operations. Each call builds fresh adapters from the caller's credentials."""

    def __init__(self, settings: Optional[Settings] = None,
                 adapter_factory: Callable[..., CatalogAdapter] = build_adapter):
        self.settings = settings or Settings()
        self._adapter_factory = adapter_factory

    def _adapter(self, credential: Credential) -> CatalogAdapter:
        return self._adapter_factory(credential, settings=self.settings)

    def _orchestrator(self, source: Optional[CatalogAdapter], destination: CatalogAdapter) -> MigrationOrchestrator:
        matcher = TrackMatcher(
            min_confidence=self.settings.min_confidence,
            duration_tiebreak=self.settings.duration_tiebreak,
        )
        return MigrationOrchestrator(source, destination, matcher=matcher, settings=self.settings)

    def migrate_playlist(self, source_credential: Credential, destination_credential: Credential,
                         source_playlist_id: str, destination_name: str,
                         cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        target = DestinationTarget.new_playlist(destination_name)
        try:
            source = self._adapter(source_credential)
            destination = self._adapter(destination_credential)
        except Unauthorized as e:
            logger.error(f"Credential rejected: {e}")
            return _failed(f"{AUTH_FAILED}: {e}", target)
        return self._orchestrator(source, destination).migrate_playlist(
            source_playlist_id, destination_name, cancel_event)

    def migrate_tracks(self, destination_credential: Credential, tracks: List[TrackRef],
                       target: DestinationTarget, source_credential: Optional[Credential] = None,
                       cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        """Migrate a caller-supplied list; the source credential is only checked, never read from."""
        try:
            source = self._adapter(source_credential) if source_credential is not None else None
            destination = self._adapter(destination_credential)
        except Unauthorized as e:
            logger.error(f"Credential rejected: {e}")
            return _failed(f"{AUTH_FAILED}: {e}", target)
        return self._orchestrator(source, destination).migrate_tracks(tracks, target, cancel_event)

    def migrate_liked(self, source_credential: Credential, destination_credential: Credential,
                      target: DestinationTarget,
                      cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        try:
            source = self._adapter(source_credential)
            destination = self._adapter(destination_credential)
        except Unauthorized as e:
            logger.error(f"Credential rejected: {e}")
            return _failed(f"{AUTH_FAILED}: {e}", target)
        return self._orchestrator(source, destination).migrate_liked(target, cancel_event)

    def merge_playlists(self, credential: Credential, source_playlist_id: str,
                        target_playlist_id: str) -> MergeResult:
        try:
            adapter = self._adapter(credential)
        except Unauthorized as e:
            return MergeResult(success=False, tracks_added=0, tracks_skipped=0, source_deleted=False,
                               error=f"{AUTH_FAILED}: {e}")
        return PlaylistMergeEngine(adapter).merge(MergeJob(source_playlist_id, target_playlist_id))

    def delete_playlist(self, credential: Credential, playlist_id: str) -> Tuple[bool, str]:
        try:
            self._adapter(credential).delete_playlist(playlist_id)
        except Unauthorized as e:
            return False, f"Not allowed to delete playlist: {e}"
        except NotFound as e:
            return False, f"Playlist not found: {e}"
        except ProviderError as e:
            return False, f"Could not delete playlist: {e}"
        return True, f"Playlist {playlist_id} deleted"

    def list_playlists(self, credential: Credential) -> List[Playlist]:
        return self._adapter(credential).fetch_playlists()

    def list_playlist_tracks(self, credential: Credential, playlist_id: str) -> List[TrackRef]:
        return self._adapter(credential).fetch_all_tracks(playlist_id)

    def list_liked(self, credential: Credential, limit: int = 50, offset: int = 0) -> LikedPage:
        return self._adapter(credential).fetch_liked(limit, offset)
