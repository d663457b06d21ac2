import logging
import uuid
from typing import List, Set

from app.crosscutting.logging import CorrelationContext
from app.domain.entities import DestinationTarget, MergeJob, MergeResult
from app.domain.errors import ProviderError
from app.domain.ports import CatalogAdapter


logger = logging.getLogger(__name__)


class PlaylistMergeEngine:
    """Merges one playlist into another on the same catalog, then deletes the source.

    The additive step is never rolled back: when the final delete fails the
    result still reports the added tracks with ``source_deleted`` false.
    """

    def __init__(self, adapter: CatalogAdapter):
        self.adapter = adapter

    def merge(self, job: MergeJob) -> MergeResult:
        if job.source_playlist_id == job.target_playlist_id:
            return MergeResult(success=False, tracks_added=0, tracks_skipped=0, source_deleted=False,
                               error="Source and target playlists must be different")

        with CorrelationContext(job_id=uuid.uuid4().hex[:12], playlist_id=job.source_playlist_id, stage='merging'):
            try:
                source_tracks = self.adapter.fetch_all_tracks(job.source_playlist_id)
                target_tracks = self.adapter.fetch_all_tracks(job.target_playlist_id)
            except ProviderError as e:
                logger.error(f"Could not read playlists for merge: {e}")
                return MergeResult(success=False, tracks_added=0, tracks_skipped=0, source_deleted=False,
                                   error=f"Could not read playlists: {e}")

            seen: Set[str] = {t.external_id for t in target_tracks if t.external_id}
            to_add: List[str] = []
            skipped = 0
            for track in source_tracks:
                if not track.external_id or track.external_id in seen:
                    skipped += 1
                    continue
                seen.add(track.external_id)
                to_add.append(track.external_id)

            logger.info(f"Merging {len(source_tracks)} tracks into {job.target_playlist_id}: "
                        f"{len(to_add)} new, {skipped} already present")

            added = 0
            if to_add:
                try:
                    result = self.adapter.add_tracks(DestinationTarget.existing_playlist(job.target_playlist_id), to_add)
                except ProviderError as e:
                    logger.error(f"Merge add step failed, source playlist kept: {e}")
                    return MergeResult(success=False, tracks_added=0, tracks_skipped=skipped, source_deleted=False,
                                       error=f"Could not add tracks to target playlist: {e}")
                added = result.added
                # The target may have gained tracks since it was read.
                skipped += result.duplicates

            try:
                self.adapter.delete_playlist(job.source_playlist_id)
            except ProviderError as e:
                logger.warning(f"Merged {added} tracks but could not delete source playlist: {e}")
                return MergeResult(success=True, tracks_added=added, tracks_skipped=skipped, source_deleted=False,
                                   error=f"Tracks merged but source playlist was not deleted: {e}")

            logger.info(f"Merge complete: added={added}, skipped={skipped}, source deleted")
            return MergeResult(success=True, tracks_added=added, tracks_skipped=skipped, source_deleted=True)
