import logging
from typing import Any, Dict, List, Optional

import tidalapi
from tidalapi.exceptions import AuthenticationError, ObjectNotFound, TooManyRequests
from requests.exceptions import HTTPError, RequestException

from app.crosscutting.config import Settings
from app.domain.entities import LikedPage, MatchCandidate, Playlist, TrackRef, TracksPage
from app.domain.errors import NotFound, ProviderError, RateLimited, Unauthorized, UnknownProviderError, classify_status
from app.domain.normalization import build_query
from app.infrastructure.providers.base import BaseCatalog

logger = logging.getLogger(__name__)


class TidalCatalog(BaseCatalog):
    """TIDAL catalog adapter backed by tidalapi.

    The adapter consumes an already authorized OAuth session (device-code
    login happens outside the engine) and does not refresh or persist it.
    """

    name = 'tidal'
    add_batch_limit = 50
    likes_batch_limit = 50

    def __init__(self, token_type: str = 'Bearer', access_token: str = '',
                 refresh_token: Optional[str] = None, settings: Optional[Settings] = None,
                 session=None, **kwargs):
        """Initialize TIDAL adapter.

        Args:
            token_type: OAuth token type, usually 'Bearer'
            access_token: TIDAL OAuth access token
            refresh_token: Optional refresh token, handed to tidalapi unchanged
            settings: Engine settings
            session: Pre-built tidalapi session, mainly for tests
        """
        super().__init__(settings, **kwargs)
        if session is None:
            if not access_token:
                raise Unauthorized("tidal: missing access token", provider=self.name)
            session = tidalapi.Session()
            try:
                loaded = session.load_oauth_session(token_type, access_token, refresh_token)
            except Exception as e:
                raise self._classify(e) from e
            if not loaded:
                raise Unauthorized("tidal: session could not be loaded", provider=self.name, status=401)
        self._session = session
        self._user_playlists: Dict[str, Any] = {}

    def _classify(self, error: Exception) -> ProviderError:
        status = None
        if isinstance(error, (HTTPError, RequestException)):
            status = getattr(getattr(error, 'response', None), 'status_code', None)
        elif isinstance(error, TooManyRequests):
            return RateLimited(retry_after_ms=int(getattr(error, 'retry_after', 1) or 1) * 1000,
                               message=f"{self.name}: {error}", provider=self.name)
        elif isinstance(error, ObjectNotFound):
            return NotFound(f"{self.name}: {error}", provider=self.name, status=404)
        elif isinstance(error, AuthenticationError):
            return Unauthorized(f"{self.name}: {error}", provider=self.name, status=401)
        if status is None:
            return UnknownProviderError(f"{self.name}: {error}", provider=self.name)
        headers = getattr(error.response, 'headers', None) or {}
        return classify_status(status, self.name, str(error), retry_after=headers.get('Retry-After'))

    def _to_track_ref(self, tidal_track) -> Optional[TrackRef]:
        if tidal_track is None or getattr(tidal_track, 'id', None) is None:
            return None
        artists = tuple(a.name for a in (getattr(tidal_track, 'artists', None) or []) if getattr(a, 'name', None))
        if not artists and getattr(tidal_track, 'artist', None) is not None:
            artists = (tidal_track.artist.name,)
        album = getattr(tidal_track, 'album', None)
        duration = getattr(tidal_track, 'duration', None)
        return TrackRef(
            title=tidal_track.name or '',
            artist=artists[0] if artists else '',
            album=getattr(album, 'name', '') or '',
            external_id=str(tidal_track.id),
            duration_ms=int(duration) * 1000 if duration else None,
            artists=artists,
        )

    def _to_track_refs(self, tidal_tracks) -> List[TrackRef]:
        return [t for t in map(self._to_track_ref, tidal_tracks or []) if t]

    def _user_playlist(self, playlist_id: str):
        """Resolve a playlist the current user owns and may mutate."""
        if playlist_id not in self._user_playlists:
            playlist = self._call('get_playlist', lambda: self._session.playlist(playlist_id).factory())
            if not isinstance(playlist, tidalapi.UserPlaylist):
                raise Unauthorized(f"tidal: playlist {playlist_id} is not owned by the current user",
                                   provider=self.name, status=403)
            self._user_playlists[playlist_id] = playlist
        return self._user_playlists[playlist_id]

    def fetch_playlists(self) -> List[Playlist]:
        playlists = self._call('fetch_playlists', lambda: self._session.user.playlists())
        return [
            Playlist(
                id=str(p.id),
                name=p.name or '',
                track_count=getattr(p, 'num_tracks', 0) or 0,
                owner_id=str(getattr(getattr(p, 'creator', None), 'id', '') or ''),
                description=getattr(p, 'description', None),
            )
            for p in playlists
        ]

    def fetch_tracks(self, playlist_id: str, page: int) -> TracksPage:
        playlist = self._call('get_playlist', lambda: self._session.playlist(playlist_id))
        return self._playlist_page(playlist, page * self.page_size)

    def fetch_all_tracks(self, playlist_id: str) -> List[TrackRef]:
        playlist = self._call('get_playlist', lambda: self._session.playlist(playlist_id))
        tracks: List[TrackRef] = []
        offset = 0
        while True:
            result = self._playlist_page(playlist, offset)
            tracks.extend(result.tracks)
            if not result.has_more:
                return tracks
            offset += self.page_size

    def _playlist_page(self, playlist, offset: int) -> TracksPage:
        tracks = self._call('fetch_tracks', lambda: playlist.tracks(limit=self.page_size, offset=offset))
        total = getattr(playlist, 'num_tracks', 0) or 0
        return TracksPage(
            tracks=self._to_track_refs(tracks),
            has_more=bool(tracks) and offset + len(tracks) < total,
        )

    def fetch_liked(self, limit: int, offset: int) -> LikedPage:
        favorites = self._session.user.favorites
        total = self._call('liked_count', favorites.get_tracks_count)
        return self._liked_page(limit, offset, int(total or 0))

    def fetch_all_liked(self) -> List[TrackRef]:
        favorites = self._session.user.favorites
        total = int(self._call('liked_count', favorites.get_tracks_count) or 0)
        tracks: List[TrackRef] = []
        offset = 0
        while True:
            result = self._liked_page(self.page_size, offset, total)
            tracks.extend(result.tracks)
            if not result.has_more:
                return tracks
            offset += self.page_size

    def _liked_page(self, limit: int, offset: int, total: int) -> LikedPage:
        favorites = self._session.user.favorites
        tracks = self._call('fetch_liked', lambda: favorites.tracks(limit=limit, offset=offset))
        return LikedPage(
            tracks=self._to_track_refs(tracks),
            total=total,
            has_more=bool(tracks) and offset + len(tracks) < total,
        )

    def search(self, query: TrackRef) -> List[MatchCandidate]:
        text = build_query(query)
        logger.debug(f"Searching tidal: {text}")
        result = self._call('search', lambda: self._session.search(
            text, models=[tidalapi.Track], limit=self.settings.search_limit))
        tracks = (result or {}).get('tracks') or []
        return [MatchCandidate(track_ref=t) for t in self._to_track_refs(tracks)]

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        playlist = self._write('create_playlist', lambda: self._session.user.create_playlist(name, description or ''))
        playlist_id = str(playlist.id)
        self._user_playlists[playlist_id] = playlist
        logger.info(f"Created tidal playlist '{name}' ({playlist_id})")
        return self._created_playlist(playlist_id)

    def _add_playlist_batch(self, playlist_id: str, track_ids: List[str]) -> None:
        self._user_playlist(playlist_id).add(track_ids)

    def _add_likes_batch(self, track_ids: List[str]) -> None:
        self._session.user.favorites.add_track(track_ids)

    def delete_playlist(self, playlist_id: str) -> None:
        playlist = self._user_playlist(playlist_id)
        self._write('delete_playlist', playlist.delete)
        self._user_playlists.pop(playlist_id, None)
        self._deleted_playlist(playlist_id)
        logger.info(f"Deleted tidal playlist {playlist_id}")
