import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence

from app.application.aggregation import aggregate_outcomes, final_state
from app.application.idempotency import calculate_snapshot_hash, chunked
from app.application.matching import MatchResult, TrackMatcher, match_statistics
from app.crosscutting.config import Settings
from app.crosscutting.logging import CorrelationContext, log_error, log_job_complete, log_job_start, log_with_fields
from app.domain.entities import (
    DestinationTarget, JobState, MigrationJob, MigrationResult, TargetKind, TrackOutcome, TrackRef, TrackStatus,
)
from app.domain.errors import JobError, NotFound, ProviderError, Unauthorized
from app.domain.ports import CatalogAdapter


logger = logging.getLogger(__name__)

PENDING_WRITE = "pending_write"
CANCELLED = "cancelled"
AUTH_FAILED = "Authentication failed"


class ProgressTracker:
    """Counts matched tracks across worker threads and logs periodic progress."""

    def __init__(self, total_tracks: int, progress_interval_sec: int = 60):
        self.total_tracks = total_tracks
        self.processed_tracks = 0
        self.matched_tracks = 0
        self.progress_interval_sec = progress_interval_sec
        self.start_time = time.time()
        self.last_progress_time = self.start_time
        self._lock = threading.Lock()

    def update(self, match_result: Optional[MatchResult]) -> None:
        with self._lock:
            self.processed_tracks += 1
            if match_result is not None and match_result.candidate is not None:
                self.matched_tracks += 1

            current_time = time.time()
            # Log progress every 10 tracks or every progress_interval_sec
            if (self.processed_tracks % 10 == 0 or
                    current_time - self.last_progress_time >= self.progress_interval_sec):
                elapsed_sec = current_time - self.start_time
                progress_pct = (self.processed_tracks / self.total_tracks) * 100 if self.total_tracks else 100.0
                logger.info(f"Progress: {self.processed_tracks}/{self.total_tracks} tracks ({progress_pct:.1f}%) "
                            f"matched in {elapsed_sec:.1f}s. Found: {self.matched_tracks}")
                self.last_progress_time = current_time


class MigrationOrchestrator:
    """Runs migration jobs from a source catalog into a destination catalog.

    A job moves through PENDING -> MATCHING -> WRITING -> COMPLETED or
    PARTIALLY_FAILED; job-level failures end in FAILED with ``success`` false.
    Matching fans out over a bounded thread pool and only reads from the
    destination. Writing is serialized and chunked; a rejected chunk only
    downgrades its own tracks.

    Adapters carry one user's credentials, so an orchestrator is built per job.
    """

    def __init__(self,
                 source: Optional[CatalogAdapter],
                 destination: CatalogAdapter,
                 matcher: Optional[TrackMatcher] = None,
                 settings: Optional[Settings] = None,
                 job_id: Optional[str] = None):
        self.source = source
        self.destination = destination
        self.settings = settings or Settings()
        self.matcher = matcher or TrackMatcher(
            min_confidence=self.settings.min_confidence,
            duration_tiebreak=self.settings.duration_tiebreak,
        )
        self.job_id = job_id or uuid.uuid4().hex[:12]

    def migrate_playlist(self, source_playlist_id: str, destination_name: str,
                         cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        """Copy a whole source playlist into a new destination playlist."""
        target = DestinationTarget.new_playlist(destination_name)
        with CorrelationContext(job_id=self.job_id, playlist_id=source_playlist_id, stage='scanning'):
            try:
                tracks = self._require_source().fetch_all_tracks(source_playlist_id)
            except ProviderError as e:
                return self._failed_before_matching("Could not read source playlist", e, target)
            logger.info(f"Read {len(tracks)} tracks from source playlist {source_playlist_id}")
        return self.run(MigrationJob(source_items=tracks, destination_target=target), cancel_event)

    def migrate_liked(self, target: DestinationTarget,
                      cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        """Copy the whole source liked-tracks list, paging by offset."""
        source = self._require_source()
        tracks: List[TrackRef] = []
        with CorrelationContext(job_id=self.job_id, stage='scanning'):
            try:
                offset = 0
                while True:
                    page = source.fetch_liked(source.page_size, offset)
                    tracks.extend(page.tracks)
                    if not page.has_more or not page.tracks:
                        break
                    offset += len(page.tracks)
            except ProviderError as e:
                return self._failed_before_matching("Could not read source liked tracks", e, target)
            logger.info(f"Read {len(tracks)} liked tracks from source")
        return self.run(MigrationJob(source_items=tracks, destination_target=target), cancel_event)

    def migrate_tracks(self, tracks: Sequence[TrackRef], target: DestinationTarget,
                       cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        """Migrate a caller-supplied selection of tracks."""
        return self.run(MigrationJob(source_items=list(tracks), destination_target=target), cancel_event)

    def run(self, job: MigrationJob, cancel_event: Optional[threading.Event] = None) -> MigrationResult:
        """Match and write every track of ``job``; never raises for per-track failures."""
        cancel_event = cancel_event or threading.Event()
        target = job.destination_target
        log_job_start(logger, self.job_id,
                      source_provider=getattr(self.source, 'name', 'caller'),
                      target_provider=getattr(self.destination, 'name', 'unknown'),
                      target=target.kind.value, track_count=len(job.source_items),
                      snapshot_hash=calculate_snapshot_hash(job.source_items))

        if not job.source_items:
            job.state = JobState.COMPLETED
            log_job_complete(logger, self.job_id, total_tracks=0)
            return aggregate_outcomes([], success=True, destination_playlist_name=target.name,
                                      destination_playlist_id=target.playlist_id, state=job.state)

        try:
            job.state = JobState.MATCHING
            with CorrelationContext(job_id=self.job_id, stage=job.state.value):
                self._match_all(job, cancel_event)

            job.state = JobState.WRITING
            with CorrelationContext(job_id=self.job_id, stage=job.state.value):
                playlist_id, write_errors = self._write_all(job, cancel_event)
        except JobError as e:
            job.state = JobState.FAILED
            log_error(logger, "Migration job failed", e, job_id=self.job_id)
            outcomes = self._settle(job, TrackStatus.WRITE_FAILED, str(e))
            return aggregate_outcomes(outcomes, success=False, error=str(e),
                                      destination_playlist_name=target.name,
                                      destination_playlist_id=target.playlist_id, state=job.state)

        outcomes = self._settle(job, TrackStatus.WRITE_FAILED, CANCELLED)
        result = self._finish(job, outcomes, playlist_id, write_errors, cancel_event.is_set())
        log_job_complete(logger, self.job_id, total_tracks=result.total_tracks,
                         migrated=result.migrated, not_found=result.not_found,
                         write_failed=result.write_failed, state=job.state.value)
        return result

    def _require_source(self) -> CatalogAdapter:
        if self.source is None:
            raise ValueError("this job needs a source catalog adapter")
        return self.source

    def _failed_before_matching(self, what: str, error: ProviderError, target: DestinationTarget) -> MigrationResult:
        message = f"{AUTH_FAILED}: {error}" if isinstance(error, Unauthorized) else f"{what}: {error}"
        logger.error(message)
        return aggregate_outcomes([], success=False, error=message,
                                  destination_playlist_name=target.name,
                                  destination_playlist_id=target.playlist_id, state=JobState.FAILED)

    @staticmethod
    def _write_failure_prefix(error: ProviderError) -> str:
        # 403 on the target means the credential works but the playlist is off limits
        if isinstance(error, Unauthorized) and error.status != 403:
            return AUTH_FAILED
        return "Destination target unreachable"

    def _match_all(self, job: MigrationJob, cancel_event: threading.Event) -> None:
        """Fill ``job.results`` by index; raises JobError when the destination rejects the credential."""
        stop = threading.Event()
        auth_failures: List[Unauthorized] = []
        matched: List[Optional[MatchResult]] = [None] * len(job.source_items)
        progress = ProgressTracker(len(job.source_items))

        def match_one(index: int) -> None:
            track = job.source_items[index]
            if stop.is_set() or cancel_event.is_set():
                job.results[index] = TrackOutcome(source=track, status=TrackStatus.NOT_FOUND, reason=CANCELLED)
                return
            with CorrelationContext(job_id=self.job_id, stage=JobState.MATCHING.value):
                try:
                    result = self.matcher.match(track, self.destination)
                except Unauthorized as e:
                    auth_failures.append(e)
                    stop.set()
                    job.results[index] = TrackOutcome(source=track, status=TrackStatus.NOT_FOUND, reason=str(e))
                    return
                except Exception as e:
                    logger.error(f"Error matching track {index} ({track.title}): {e}")
                    job.results[index] = TrackOutcome(source=track, status=TrackStatus.NOT_FOUND,
                                                      reason=f"search_failed: {e}")
                    progress.update(None)
                    return

            matched[index] = result
            if result.candidate is not None:
                job.results[index] = TrackOutcome(source=track, status=TrackStatus.MIGRATED,
                                                  matched=result.matched, reason=PENDING_WRITE)
            else:
                job.results[index] = TrackOutcome(source=track, status=TrackStatus.NOT_FOUND, reason=result.reason)
            progress.update(result)

        workers = max(1, min(self.settings.match_workers, len(job.source_items)))
        logger.info(f"Matching {len(job.source_items)} tracks with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='match') as pool:
            # list() drains the iterator so worker exceptions surface here
            list(pool.map(match_one, range(len(job.source_items))))
        log_with_fields(logger, "INFO", "Matching finished",
                        match_statistics([r for r in matched if r is not None]))

        if auth_failures:
            raise JobError(f"{AUTH_FAILED}: destination rejected credentials: {auth_failures[0]}")

    def _write_all(self, job: MigrationJob, cancel_event: threading.Event):
        """Write matched tracks to the destination target in serialized chunks."""
        target = job.destination_target
        pending = [i for i, o in enumerate(job.results)
                   if o is not None and o.status == TrackStatus.MIGRATED and o.reason == PENDING_WRITE]
        write_errors: List[str] = []
        if not pending or cancel_event.is_set():
            return target.playlist_id, write_errors

        playlist_id = target.playlist_id
        write_target = target
        if target.kind == TargetKind.NEW_PLAYLIST:
            try:
                playlist_id = self.destination.create_playlist(target.name)
            except ProviderError as e:
                raise JobError(f"Could not create destination playlist '{target.name}': {e}")
            write_target = DestinationTarget.existing_playlist(playlist_id)

        for chunk in chunked(pending, self.settings.write_chunk_size):
            if cancel_event.is_set():
                logger.warning("Migration cancelled, skipping remaining writes")
                break
            track_ids = [job.results[i].matched.external_id for i in chunk]
            try:
                result = self.destination.add_tracks(write_target, track_ids)
            except (Unauthorized, NotFound) as e:
                raise JobError(f"{self._write_failure_prefix(e)}: {e}")
            except ProviderError as e:
                logger.warning(f"Write of {len(chunk)} tracks rejected: {e}")
                write_errors.append(str(e))
                for i in chunk:
                    job.results[i] = replace(job.results[i], status=TrackStatus.WRITE_FAILED, reason=str(e))
                continue
            if result.errors:
                logger.warning(f"Destination reported {result.errors} errors for a chunk of {len(chunk)}")
            for i in chunk:
                job.results[i] = replace(job.results[i], reason=None)
        return playlist_id, write_errors

    def _settle(self, job: MigrationJob, unwritten_status: TrackStatus, reason: str) -> List[TrackOutcome]:
        """Resolve outcomes still waiting on a write."""
        outcomes = []
        for index, outcome in enumerate(job.results):
            if outcome is None:
                outcome = TrackOutcome(source=job.source_items[index], status=TrackStatus.NOT_FOUND, reason=CANCELLED)
            elif outcome.status == TrackStatus.MIGRATED and outcome.reason == PENDING_WRITE:
                outcome = replace(outcome, status=unwritten_status, reason=reason)
            outcomes.append(outcome)
        job.results = outcomes
        return outcomes

    def _finish(self, job: MigrationJob, outcomes: List[TrackOutcome], playlist_id: Optional[str],
                write_errors: List[str], cancelled: bool) -> MigrationResult:
        target = job.destination_target
        migrated = sum(1 for o in outcomes if o.status == TrackStatus.MIGRATED)
        write_failed = sum(1 for o in outcomes if o.status == TrackStatus.WRITE_FAILED)
        job.state = final_state(outcomes)

        error = None
        if cancelled:
            error = "Migration cancelled before completion"
        elif write_failed:
            error = f"{write_failed} matched tracks could not be written: {write_errors[0] if write_errors else 'unknown error'}"

        success = migrated > 0
        if not success:
            job.state = JobState.FAILED
            if error is None:
                error = f"No tracks could be matched on {getattr(self.destination, 'name', 'destination')}"

        return aggregate_outcomes(
            outcomes,
            success=success,
            destination_playlist_id=playlist_id,
            destination_playlist_name=target.name,
            error=error,
            state=job.state,
        )
