from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TrackRef:
    """A track as known on one catalog, described by its textual metadata.

    ``external_id`` belongs to the catalog the track was read from and is never
    compared across catalogs.
    """

    title: str = ""
    artist: str = ""
    album: str = ""
    external_id: Optional[str] = None
    duration_ms: Optional[int] = None
    artists: Tuple[str, ...] = ()

    def __post_init__(self):
        if isinstance(self.artists, list):
            object.__setattr__(self, 'artists', tuple(self.artists))
        if not self.artists and self.artist:
            object.__setattr__(self, 'artists', (self.artist,))
        if not self.artist and self.artists:
            object.__setattr__(self, 'artist', self.artists[0])

    def to_json(self) -> Dict[str, Any]:
        """Serialize to the boundary shape used by the front-end."""
        return {
            "name": self.title,
            "artist": self.artist,
            "album": self.album,
        }


@dataclass(frozen=True)
class MatchCandidate:
    """Destination track proposed by a catalog search, with its match score."""

    track_ref: TrackRef
    confidence_score: float = 0.0


@dataclass(frozen=True)
class Playlist:
    """Playlist as listed by a catalog."""

    id: str
    name: str
    track_count: int = 0
    owner_id: str = ""
    description: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tracks_total": self.track_count,
            "owner": self.owner_id,
        }


@dataclass(frozen=True)
class TracksPage:
    """One page of playlist tracks."""

    tracks: List[TrackRef]
    has_more: bool


@dataclass(frozen=True)
class LikedPage:
    """One offset-based page of liked tracks."""

    tracks: List[TrackRef]
    total: int
    has_more: bool


class TargetKind(str, Enum):
    FAVORITES = "favorites"
    NEW_PLAYLIST = "new_playlist"
    EXISTING_PLAYLIST = "existing_playlist"


@dataclass(frozen=True)
class DestinationTarget:
    """Where matched tracks get written: favorites, a new playlist or an existing one."""

    kind: TargetKind
    name: Optional[str] = None
    playlist_id: Optional[str] = None

    def __post_init__(self):
        if self.kind == TargetKind.NEW_PLAYLIST and not self.name:
            raise ValueError("NewPlaylist target requires a playlist name")
        if self.kind == TargetKind.EXISTING_PLAYLIST and not self.playlist_id:
            raise ValueError("ExistingPlaylist target requires a playlist id")

    @classmethod
    def favorites(cls) -> "DestinationTarget":
        return cls(kind=TargetKind.FAVORITES)

    @classmethod
    def new_playlist(cls, name: str) -> "DestinationTarget":
        return cls(kind=TargetKind.NEW_PLAYLIST, name=name)

    @classmethod
    def existing_playlist(cls, playlist_id: str) -> "DestinationTarget":
        return cls(kind=TargetKind.EXISTING_PLAYLIST, playlist_id=playlist_id)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DestinationTarget":
        """Build a target from a selector such as ``{"type": "new_playlist", "name": "X"}``."""
        if not isinstance(data, dict):
            raise ValueError("target must be an object")
        kind = TargetKind(data.get("type", ""))
        if kind == TargetKind.FAVORITES:
            return cls.favorites()
        if kind == TargetKind.NEW_PLAYLIST:
            return cls.new_playlist(data.get("name", ""))
        return cls.existing_playlist(data.get("playlist_id", ""))


class TrackStatus(str, Enum):
    """Final status of one source track in a migration."""

    MIGRATED = "migrated"
    NOT_FOUND = "not_found"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class TrackOutcome:
    """Result for exactly one source track."""

    source: TrackRef
    status: TrackStatus
    matched: Optional[TrackRef] = None
    reason: Optional[str] = None


class JobState(str, Enum):
    PENDING = "pending"
    MATCHING = "matching"
    WRITING = "writing"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass
class MigrationJob:
    """A single migration request, owned by the orchestrator call that created it."""

    source_items: List[TrackRef]
    destination_target: DestinationTarget
    results: List[Optional[TrackOutcome]] = field(default_factory=list)
    state: JobState = JobState.PENDING

    def __post_init__(self):
        if not self.results:
            self.results = [None] * len(self.source_items)


@dataclass(frozen=True)
class MigrationResult:
    """Aggregate report for a migration job.

    ``write_failed`` and ``write_failed_tracks`` distinguish tracks that matched
    but were rejected by the destination from tracks that could not be matched.
    """

    success: bool
    total_tracks: int
    migrated: int
    not_found: int
    not_found_tracks: List[TrackRef] = field(default_factory=list)
    destination_playlist_id: Optional[str] = None
    destination_playlist_name: Optional[str] = None
    error: Optional[str] = None
    write_failed: int = 0
    write_failed_tracks: List[TrackRef] = field(default_factory=list)
    state: Optional[JobState] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "total_tracks": self.total_tracks,
            "migrated": self.migrated,
            "not_found": self.not_found,
            "not_found_tracks": [t.to_json() for t in self.not_found_tracks],
            "write_failed": self.write_failed,
            "write_failed_tracks": [t.to_json() for t in self.write_failed_tracks],
        }
        if self.destination_playlist_id is not None:
            data["playlist_id"] = self.destination_playlist_id
        if self.destination_playlist_name is not None:
            data["playlist_name"] = self.destination_playlist_name
        if self.error is not None:
            data["error"] = self.error
        if self.state is not None:
            data["state"] = self.state.value
        return data


@dataclass(frozen=True)
class MergeJob:
    """Merge ``source_playlist_id`` into ``target_playlist_id`` on the same catalog."""

    source_playlist_id: str
    target_playlist_id: str


@dataclass(frozen=True)
class MergeResult:
    success: bool
    tracks_added: int
    tracks_skipped: int
    source_deleted: bool
    error: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "tracks_added": self.tracks_added,
            "tracks_skipped": self.tracks_skipped,
            "source_deleted": self.source_deleted,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class AddResult:
    """Result of a batch add operation to a playlist or to likes."""

    added: int
    duplicates: int
    errors: int
