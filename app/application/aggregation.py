from typing import Optional, Sequence

from app.domain.entities import JobState, MigrationResult, TrackOutcome, TrackStatus


def aggregate_outcomes(outcomes: Sequence[TrackOutcome],
                       success: bool = True,
                       destination_playlist_id: Optional[str] = None,
                       destination_playlist_name: Optional[str] = None,
                       error: Optional[str] = None,
                       state: Optional[JobState] = None) -> MigrationResult:
    """Fold per-track outcomes into a MigrationResult.

    Pure function: counts and track lists follow the order of ``outcomes``.
    """
    not_found_tracks = [o.source for o in outcomes if o.status == TrackStatus.NOT_FOUND]
    write_failed_tracks = [o.source for o in outcomes if o.status == TrackStatus.WRITE_FAILED]
    migrated = sum(1 for o in outcomes if o.status == TrackStatus.MIGRATED)

    return MigrationResult(
        success=success,
        total_tracks=len(outcomes),
        migrated=migrated,
        not_found=len(not_found_tracks),
        not_found_tracks=not_found_tracks,
        destination_playlist_id=destination_playlist_id,
        destination_playlist_name=destination_playlist_name,
        error=error,
        write_failed=len(write_failed_tracks),
        write_failed_tracks=write_failed_tracks,
        state=state,
    )


def final_state(outcomes: Sequence[TrackOutcome]) -> JobState:
    """COMPLETED when every track migrated, PARTIALLY_FAILED otherwise."""
    if all(o.status == TrackStatus.MIGRATED for o in outcomes):
        return JobState.COMPLETED
    return JobState.PARTIALLY_FAILED
