import json
from unittest.mock import Mock

from app.application.service import MigrationService
from app.crosscutting.config import Settings
from app.domain.entities import TrackRef
from app.infrastructure.providers.factory import SpotifyCredential, TidalCredential
from app.interfaces.http import HTTPServer
from app.tests.fakes import FakeCatalog


SPOTIFY = {'provider': 'spotify', 'access_token': 'spotify-token'}
TIDAL = {'provider': 'tidal', 'access_token': 'tidal-token'}


class TestMigrationEndToEnd:
    """HTTP request through the service and orchestrator down to in-memory catalogs."""

    def setup_method(self):
        self.spotify = FakeCatalog()
        self.tidal = FakeCatalog(catalog=[
            TrackRef(title="Song A", artist="Artist X", album="One", external_id="tA"),
            TrackRef(title="Other", artist="Someone", album="", external_id="tO"),
        ])
        adapters = {
            SpotifyCredential('spotify-token'): self.spotify,
            TidalCredential(access_token='tidal-token'): self.tidal,
        }
        factory = Mock(side_effect=lambda credential, settings=None: adapters[credential])
        service = MigrationService(Settings(backoff_base_ms=0), adapter_factory=factory)
        self.client = HTTPServer(service=service).app.test_client()

    def post(self, path, body):
        response = self.client.post(path, data=json.dumps(body), content_type='application/json')
        return response.status_code, json.loads(response.data)

    def test_playlist_migration_reports_unmatched_tracks(self):
        self.spotify.add_playlist('src', [
            TrackRef(title="Song A", artist="Artist X", album="One", external_id="sA"),
            TrackRef(title="Song B", artist="Artist Y", album="Two", external_id="sB"),
        ])

        status, data = self.post('/migrate_playlist', {
            'source_credential': SPOTIFY,
            'destination_credential': TIDAL,
            'playlist_id': 'src',
            'playlist_name': 'Road Trip',
        })

        assert status == 200
        assert data['success'] is True
        assert (data['total_tracks'], data['migrated'], data['not_found']) == (2, 1, 1)
        assert data['not_found_tracks'] == [{'name': 'Song B', 'artist': 'Artist Y', 'album': 'Two'}]
        assert [t.external_id for t in self.tidal.playlists[data['playlist_id']]] == ['tA']
        assert self.spotify.mutation_calls() == []

    def test_rerun_into_existing_playlist_adds_nothing(self):
        self.spotify.add_playlist('src', [TrackRef(title="Song A", artist="Artist X", external_id="sA")])
        self.tidal.add_playlist('dst', [])
        body = {
            'destination_credential': TIDAL,
            'source_credential': SPOTIFY,
            'tracks': [{'name': 'Song A', 'artist': 'Artist X', 'album': ''}],
            'target': {'type': 'existing_playlist', 'playlist_id': 'dst'},
        }

        self.post('/migrate_tracks', body)
        status, data = self.post('/migrate_tracks', body)

        assert status == 200
        assert data['migrated'] == 1
        assert len(self.tidal.playlists['dst']) == 1

    def test_merge_then_list(self):
        self.tidal.add_playlist('A', [TrackRef(title="x", artist="y", external_id="t1"),
                                      TrackRef(title="z", artist="y", external_id="t2")], name='A')
        self.tidal.add_playlist('B', [TrackRef(title="z", artist="y", external_id="t2")], name='B')

        status, data = self.post('/merge_playlists', {
            'credential': TIDAL, 'source_playlist_id': 'A', 'target_playlist_id': 'B',
        })
        _, listing = self.post('/fetch_playlists', {'credential': TIDAL})

        assert status == 200
        assert (data['tracks_added'], data['tracks_skipped'], data['source_deleted']) == (1, 1, True)
        assert [p['id'] for p in listing['playlists']] == ['B']
