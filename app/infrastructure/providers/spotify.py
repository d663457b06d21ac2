import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import spotipy
from spotipy.exceptions import SpotifyException
from requests.exceptions import RequestException

from app.crosscutting.config import Settings
from app.domain.entities import LikedPage, MatchCandidate, Playlist, TrackRef, TracksPage
from app.domain.errors import ProviderError, Unauthorized, UnknownProviderError, classify_status
from app.domain.normalization import primary_artist
from app.infrastructure.providers.base import BaseCatalog

logger = logging.getLogger(__name__)


class SpotifyCatalog(BaseCatalog):
    """Spotify catalog adapter backed by spotipy.

    One instance wraps one user's access token and must not be shared between
    jobs.
    """

    name = 'spotify'
    add_batch_limit = 100
    likes_batch_limit = 50

    def __init__(self, access_token: str, settings: Optional[Settings] = None, client=None, **kwargs):
        """Initialize Spotify adapter.

        Args:
            access_token: Spotify OAuth access token
            settings: Engine settings (page size, retry budget, search limit)
            client: Pre-built spotipy client, mainly for tests
        """
        super().__init__(settings, **kwargs)
        if not access_token and client is None:
            raise Unauthorized("spotify: missing access token", provider=self.name)
        # spotipy retries 429 on its own by default; the adapter owns that policy.
        self._client = client or spotipy.Spotify(
            auth=access_token,
            requests_timeout=15,
            retries=0,
            status_retries=0,
        )
        self._user_id: Optional[str] = None

    def _classify(self, error: Exception) -> ProviderError:
        if isinstance(error, SpotifyException):
            headers = error.headers or {}
            return classify_status(error.http_status, self.name, error.msg,
                                   retry_after=headers.get('Retry-After'))
        if isinstance(error, RequestException):
            response = getattr(error, 'response', None)
            status = getattr(response, 'status_code', None)
            return classify_status(status, self.name, str(error))
        return UnknownProviderError(f"{self.name}: {error}", provider=self.name)

    def _current_user_id(self) -> str:
        if self._user_id is None:
            me = self._call('current_user', self._client.current_user)
            self._user_id = me['id']
        return self._user_id

    def _to_track_ref(self, spotify_track: Optional[Dict[str, Any]]) -> Optional[TrackRef]:
        """Convert a Spotify track object.

        Local files come back with ``id: None`` but keep their metadata, so they
        are returned without an external id and can still be matched elsewhere.
        Removed tracks (no object, or no name) are skipped.
        """
        if not spotify_track or not (spotify_track.get('id') or spotify_track.get('name')):
            return None
        artists = tuple(a.get('name', '') for a in spotify_track.get('artists') or [] if a.get('name'))
        album = spotify_track.get('album') or {}
        return TrackRef(
            title=spotify_track.get('name', ''),
            artist=primary_artist(artists),
            album=album.get('name', '') or '',
            external_id=spotify_track.get('id'),
            duration_ms=spotify_track.get('duration_ms'),
            artists=artists,
        )

    def _items_to_tracks(self, items: Iterable[Dict[str, Any]]) -> List[TrackRef]:
        tracks = []
        for item in items or []:
            track = self._to_track_ref(item.get('track'))
            if track:
                tracks.append(track)
        return tracks

    def fetch_playlists(self) -> List[Playlist]:
        playlists = []
        offset = 0
        while True:
            page = self._call('fetch_playlists', lambda offset=offset: self._client.current_user_playlists(
                limit=self.page_size, offset=offset))
            items = page.get('items') or []
            for item in items:
                playlists.append(Playlist(
                    id=item['id'],
                    name=item.get('name', ''),
                    track_count=(item.get('tracks') or {}).get('total', 0),
                    owner_id=(item.get('owner') or {}).get('id', ''),
                    description=item.get('description') or None,
                ))
            if not page.get('next') or not items:
                return playlists
            offset += len(items)

    def fetch_tracks(self, playlist_id: str, page: int) -> TracksPage:
        offset = page * self.page_size
        result = self._call('fetch_tracks', lambda: self._client.playlist_items(
            playlist_id,
            limit=self.page_size,
            offset=offset,
            additional_types=('track',),
        ))
        items = result.get('items') or []
        return TracksPage(tracks=self._items_to_tracks(items), has_more=bool(result.get('next')) and bool(items))

    def fetch_liked(self, limit: int, offset: int) -> LikedPage:
        result = self._call('fetch_liked', lambda: self._client.current_user_saved_tracks(
            limit=limit, offset=offset))
        items = result.get('items') or []
        total = int(result.get('total', 0))
        return LikedPage(
            tracks=self._items_to_tracks(items),
            total=total,
            has_more=bool(items) and offset + len(items) < total,
        )

    def search(self, query: TrackRef) -> List[MatchCandidate]:
        artist = primary_artist(query.artists, query.artist)
        queries = [
            f'track:"{query.title}" artist:"{artist}"',
            f'{query.title} {artist}',
        ]
        for q in queries:
            logger.debug(f"Searching spotify: {q} (market={self.settings.market})")
            result = self._call('search', lambda q=q: self._client.search(
                q, type='track', limit=self.settings.search_limit, market=self.settings.market))
            items = ((result or {}).get('tracks') or {}).get('items') or []
            candidates = [MatchCandidate(track_ref=t) for t in map(self._to_track_ref, items) if t and t.external_id]
            if candidates:
                return candidates
        return []

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        user_id = self._current_user_id()
        result = self._write('create_playlist', lambda: self._client.user_playlist_create(
            user_id, name, public=False, description=description or ''))
        logger.info(f"Created spotify playlist '{name}' ({result['id']})")
        return self._created_playlist(result['id'])

    def _add_playlist_batch(self, playlist_id: str, track_ids: List[str]) -> None:
        self._client.playlist_add_items(playlist_id, track_ids)

    def _add_likes_batch(self, track_ids: List[str]) -> None:
        self._client.current_user_saved_tracks_add(track_ids)

    def _liked_ids(self, track_ids: Sequence[str]) -> List[str]:
        liked = []
        unique = list(dict.fromkeys(i for i in track_ids if i))
        for i in range(0, len(unique), self.likes_batch_limit):
            batch = unique[i:i + self.likes_batch_limit]
            flags = self._call('liked_contains', lambda batch=batch: self._client.current_user_saved_tracks_contains(batch))
            liked.extend(track_id for track_id, flag in zip(batch, flags) if flag)
        return liked

    def delete_playlist(self, playlist_id: str) -> None:
        playlist = self._call('get_playlist', lambda: self._client.playlist(playlist_id, fields='id,owner(id)'))
        owner = (playlist.get('owner') or {}).get('id')
        if owner != self._current_user_id():
            raise Unauthorized(f"spotify: playlist {playlist_id} is not owned by the current user",
                               provider=self.name, status=403)
        # Spotify has no hard delete; unfollowing an owned playlist removes it from the library.
        self._write('delete_playlist', lambda: self._client.current_user_unfollow_playlist(playlist_id))
        self._deleted_playlist(playlist_id)
        logger.info(f"Deleted spotify playlist {playlist_id}")
