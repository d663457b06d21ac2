import os
import logging
from typing import Any, Dict, Optional, Tuple
from datetime import datetime
from flask import Flask, request, jsonify

from app.application.pipeline import AUTH_FAILED
from app.application.service import MigrationService, tracks_from_json
from app.crosscutting.config import Settings
from app.domain.entities import DestinationTarget, MigrationResult
from app.domain.errors import NotFound, ProviderError, Unauthorized
from app.infrastructure.providers.factory import credential_from_json


class BadRequest(Exception):
    """Malformed request body."""


class HTTPServer:
    """HTTP boundary for Crossfade: migration, merge, delete and browse endpoints."""

    def __init__(self, host: str = 'localhost', port: int = 5000, debug: bool = False,
                 service: Optional[MigrationService] = None):
        """Initialize HTTP server."""
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        # Version info
        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self.service = service or MigrationService(Settings.from_env())

        self._setup_errors()
        self._setup_routes()

    def _body(self) -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise BadRequest("request body must be a JSON object")
        return data

    @staticmethod
    def _require(data: Dict[str, Any], *keys: str) -> None:
        missing = [k for k in keys if data.get(k) in (None, '')]
        if missing:
            raise BadRequest(f"missing field(s): {', '.join(missing)}")

    @staticmethod
    def _migration_response(result: MigrationResult) -> Tuple[Any, int]:
        if result.success:
            return jsonify(result.to_json()), 200
        status = 401 if (result.error or '').startswith(AUTH_FAILED) else 502
        return jsonify(result.to_json()), status

    def _setup_errors(self) -> None:
        """Map exceptions raised by handlers to ``{success: false, error}`` responses."""

        @self.app.errorhandler(BadRequest)
        def bad_request(e):
            return jsonify({'success': False, 'error': str(e)}), 400

        @self.app.errorhandler(ValueError)
        def invalid_value(e):
            return jsonify({'success': False, 'error': str(e)}), 400

        @self.app.errorhandler(Unauthorized)
        def unauthorized(e):
            self.logger.warning(f"Unauthorized: {e}")
            return jsonify({'success': False, 'error': str(e)}), 401

        @self.app.errorhandler(NotFound)
        def not_found(e):
            return jsonify({'success': False, 'error': str(e)}), 404

        @self.app.errorhandler(ProviderError)
        def provider_error(e):
            self.logger.error(f"Provider error: {e}")
            return jsonify({'success': False, 'error': str(e)}), 502

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'Crossfade HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'migrate_playlist': '/migrate_playlist',
                    'migrate_tracks': '/migrate_tracks',
                    'migrate_liked': '/migrate_liked',
                    'merge_playlists': '/merge_playlists',
                    'delete_playlist': '/delete_playlist',
                    'fetch_playlists': '/fetch_playlists',
                    'playlist_tracks': '/playlist_tracks',
                    'liked_songs': '/liked_songs',
                }
            }), 200

        @self.app.route('/migrate_playlist', methods=['POST'])
        def migrate_playlist():
            data = self._body()
            self._require(data, 'source_credential', 'destination_credential', 'playlist_id', 'playlist_name')
            result = self.service.migrate_playlist(
                credential_from_json(data['source_credential']),
                credential_from_json(data['destination_credential']),
                data['playlist_id'],
                data['playlist_name'],
            )
            return self._migration_response(result)

        @self.app.route('/migrate_tracks', methods=['POST'])
        def migrate_tracks():
            data = self._body()
            self._require(data, 'destination_credential', 'target')
            if not isinstance(data.get('tracks'), list):
                raise BadRequest("tracks must be a list")
            source = data.get('source_credential')
            result = self.service.migrate_tracks(
                credential_from_json(data['destination_credential']),
                tracks_from_json(data['tracks']),
                DestinationTarget.from_json(data['target']),
                source_credential=credential_from_json(source) if source else None,
            )
            return self._migration_response(result)

        @self.app.route('/migrate_liked', methods=['POST'])
        def migrate_liked():
            data = self._body()
            self._require(data, 'source_credential', 'destination_credential')
            target = DestinationTarget.from_json(data.get('target') or {'type': 'favorites'})
            result = self.service.migrate_liked(
                credential_from_json(data['source_credential']),
                credential_from_json(data['destination_credential']),
                target,
            )
            return self._migration_response(result)

        @self.app.route('/merge_playlists', methods=['POST'])
        def merge_playlists():
            data = self._body()
            self._require(data, 'credential', 'source_playlist_id', 'target_playlist_id')
            if data['source_playlist_id'] == data['target_playlist_id']:
                raise BadRequest("source and target playlists must be different")
            result = self.service.merge_playlists(
                credential_from_json(data['credential']),
                data['source_playlist_id'],
                data['target_playlist_id'],
            )
            if result.success:
                return jsonify(result.to_json()), 200
            status = 401 if (result.error or '').startswith(AUTH_FAILED) else 502
            return jsonify(result.to_json()), status

        @self.app.route('/delete_playlist', methods=['POST'])
        def delete_playlist():
            data = self._body()
            self._require(data, 'credential', 'playlist_id')
            success, message = self.service.delete_playlist(
                credential_from_json(data['credential']), data['playlist_id'])
            if success:
                return jsonify({'success': True, 'message': message}), 200
            return jsonify({'success': False, 'error': message}), 502

        @self.app.route('/fetch_playlists', methods=['POST'])
        def fetch_playlists():
            data = self._body()
            playlists = self.service.list_playlists(credential_from_json(data.get('credential')))
            return jsonify({'success': True, 'playlists': [p.to_json() for p in playlists]}), 200

        @self.app.route('/playlist_tracks', methods=['POST'])
        def playlist_tracks():
            data = self._body()
            self._require(data, 'playlist_id')
            tracks = self.service.list_playlist_tracks(
                credential_from_json(data.get('credential')), data['playlist_id'])
            return jsonify({'success': True, 'tracks': [t.to_json() for t in tracks]}), 200

        @self.app.route('/liked_songs', methods=['POST'])
        def liked_songs():
            data = self._body()
            try:
                limit = int(data.get('limit', 50))
                offset = int(data.get('offset', 0))
            except (TypeError, ValueError):
                raise BadRequest("limit and offset must be integers")
            page = self.service.list_liked(credential_from_json(data.get('credential')), limit, offset)
            return jsonify({
                'success': True,
                'tracks': [t.to_json() for t in page.tracks],
                'total': page.total,
                'has_more': page.has_more,
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting Crossfade HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(service: Optional[MigrationService] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(service=service)
    return server.app
