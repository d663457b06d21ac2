from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .entities import AddResult, DestinationTarget, LikedPage, MatchCandidate, Playlist, TrackRef, TracksPage


class CatalogAdapter(Protocol):
    """Port defining the capability set of one music catalog.

    Implementations hold the credential of a single user and map provider-specific
    responses and failures into domain entities and the error taxonomy.
    """

    name: str
    page_size: int

    def fetch_playlists(self) -> List[Playlist]:
        """Return every playlist of the current user, or raise."""

    def fetch_tracks(self, playlist_id: str, page: int) -> TracksPage:
        """Return one page (0-based) of tracks for the playlist."""

    def fetch_all_tracks(self, playlist_id: str) -> List[TrackRef]:
        """Page through the playlist until the provider reports no more tracks."""

    def fetch_liked(self, limit: int, offset: int) -> LikedPage:
        """Return liked tracks starting at offset."""

    def search(self, query: TrackRef) -> List[MatchCandidate]:
        """Search by metadata, in provider relevance order. Never mutates state."""

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        """Create a playlist and return its id."""

    def add_tracks(self, target: DestinationTarget, track_ids: Sequence[str]) -> AddResult:
        """Add tracks to the target; tracks already present are skipped."""

    def add_to_likes(self, track_ids: Sequence[str]) -> AddResult:
        """Add tracks to the user's likes; tracks already liked are skipped."""

    def delete_playlist(self, playlist_id: str) -> None:
        """Delete a playlist owned by the current user."""
