import argparse
import json
import sys
import logging
import signal
import threading
import time
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from app.application.service import MigrationService
from app.crosscutting.config import ConfigError, SecretManager, Settings
from app.crosscutting.logging import setup_logging
from app.domain.entities import DestinationTarget
from app.domain.errors import ProviderError
from app.infrastructure.providers.factory import Credential, SpotifyCredential, TidalCredential

PROVIDERS = ['spotify', 'tidal']

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_USAGE = 2

# Commands that only touch local credential storage
LOCAL_COMMANDS = ('login', 'status', 'logout')


class CLI:
    """Command Line Interface for Crossfade."""

    def __init__(self, secrets: Optional[SecretManager] = None, service: Optional[MigrationService] = None):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self.secrets = secrets
        self.service = service
        self.cancel_event = threading.Event()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='crossfade',
            description='Migrate tracks and playlists between music catalogs'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='WARNING',
            help='Set logging level'
        )
        parser.add_argument(
            '--config-dir',
            default=None,
            help='Directory holding tokens.json and .env (default: ~/.crossfade)'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        playlist_parser = subparsers.add_parser('migrate-playlist', help='Copy a playlist into a new playlist')
        playlist_parser.add_argument('--from', dest='source', choices=PROVIDERS, default='spotify',
                                     help='Source catalog (default: spotify)')
        playlist_parser.add_argument('--to', dest='target', choices=PROVIDERS, default='tidal',
                                     help='Destination catalog (default: tidal)')
        playlist_parser.add_argument('--playlist-id', required=True, help='Source playlist ID')
        playlist_parser.add_argument('--name', required=True, help='Name of the destination playlist')

        liked_parser = subparsers.add_parser('migrate-liked', help='Migrate liked tracks')
        liked_parser.add_argument('--from', dest='source', choices=PROVIDERS, default='spotify',
                                  help='Source catalog (default: spotify)')
        liked_parser.add_argument('--to', dest='target', choices=PROVIDERS, default='tidal',
                                  help='Destination catalog (default: tidal)')
        liked_parser.add_argument('--mode', choices=['favorites', 'new', 'existing'], default='favorites',
                                  help='Destination: favorites, a new playlist or an existing playlist')
        liked_parser.add_argument('--name', help='Playlist name when mode=new')
        liked_parser.add_argument('--playlist-id', help='Playlist ID when mode=existing')

        merge_parser = subparsers.add_parser('merge', help='Merge one playlist into another and delete it')
        merge_parser.add_argument('--provider', choices=PROVIDERS, required=True, help='Catalog holding both playlists')
        merge_parser.add_argument('--source-id', required=True, help='Playlist to merge and delete')
        merge_parser.add_argument('--target-id', required=True, help='Playlist receiving the tracks')

        delete_parser = subparsers.add_parser('delete', help='Delete an owned playlist')
        delete_parser.add_argument('--provider', choices=PROVIDERS, required=True, help='Catalog holding the playlist')
        delete_parser.add_argument('--playlist-id', required=True, help='Playlist ID')

        list_parser = subparsers.add_parser('playlists', help='List available playlists')
        list_parser.add_argument('--provider', choices=PROVIDERS, required=True, help='Provider to list playlists from')

        login_parser = subparsers.add_parser('login', help='Store an access token for a catalog')
        login_parser.add_argument('--provider', choices=PROVIDERS, required=True, help='Catalog the token belongs to')
        login_parser.add_argument('--access-token', required=True, help='OAuth access token')
        login_parser.add_argument('--token-type', default='Bearer', help='TIDAL token type (default: Bearer)')
        login_parser.add_argument('--refresh-token', help='TIDAL refresh token')

        subparsers.add_parser('status', help='Show which catalog credentials are configured')
        subparsers.add_parser('logout', help='Remove stored tokens')

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP interface')
        serve_parser.add_argument('--host', default='localhost', help='Bind address (default: localhost)')
        serve_parser.add_argument('--port', type=int, default=5000, help='Port (default: 5000)')
        serve_parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Cancel the running job on SIGINT/SIGTERM; in-flight provider calls finish."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, cancelling after in-flight calls...")
            self.cancel_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Log total execution time."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        """Validate CLI arguments."""
        if hasattr(args, 'source') and hasattr(args, 'target'):
            if args.source == args.target:
                raise ValueError("Source and destination catalogs must be different")
        if args.command == 'migrate-liked':
            if args.mode == 'new' and not args.name:
                raise ValueError("--name is required when --mode new")
            if args.mode == 'existing' and not args.playlist_id:
                raise ValueError("--playlist-id is required when --mode existing")
        if args.command == 'merge' and args.source_id == args.target_id:
            raise ValueError("Source and target playlists must be different")

    def _credential(self, provider: str) -> Credential:
        """Load the stored credential for ``provider``."""
        if provider == 'spotify':
            token = self.secrets.get_spotify_token()
            if not token:
                raise ConfigError("SPOTIFY_ACCESS_TOKEN is not configured")
            return SpotifyCredential(access_token=token)
        session = self.secrets.get_tidal_session()
        if not session:
            raise ConfigError("TIDAL_ACCESS_TOKEN is not configured")
        return TidalCredential(
            access_token=session['access_token'],
            token_type=session.get('token_type') or 'Bearer',
            refresh_token=session.get('refresh_token'),
        )

    def _liked_target(self, args: argparse.Namespace) -> DestinationTarget:
        if args.mode == 'new':
            return DestinationTarget.new_playlist(args.name)
        if args.mode == 'existing':
            return DestinationTarget.existing_playlist(args.playlist_id)
        return DestinationTarget.favorites()

    def _print(self, data: Dict[str, Any]) -> None:
        print(json.dumps(data, indent=2, ensure_ascii=False))

    def _migrate_playlist(self, args: argparse.Namespace) -> int:
        result = self.service.migrate_playlist(
            self._credential(args.source), self._credential(args.target),
            args.playlist_id, args.name, cancel_event=self.cancel_event)
        self._print(result.to_json())
        return EXIT_OK if result.success else EXIT_JOB_FAILED

    def _migrate_liked(self, args: argparse.Namespace) -> int:
        result = self.service.migrate_liked(
            self._credential(args.source), self._credential(args.target),
            self._liked_target(args), cancel_event=self.cancel_event)
        self._print(result.to_json())
        return EXIT_OK if result.success else EXIT_JOB_FAILED

    def _merge(self, args: argparse.Namespace) -> int:
        result = self.service.merge_playlists(self._credential(args.provider), args.source_id, args.target_id)
        self._print(result.to_json())
        return EXIT_OK if result.success else EXIT_JOB_FAILED

    def _delete(self, args: argparse.Namespace) -> int:
        success, message = self.service.delete_playlist(self._credential(args.provider), args.playlist_id)
        self._print({'success': success, 'message': message})
        return EXIT_OK if success else EXIT_JOB_FAILED

    def _list_playlists(self, args: argparse.Namespace) -> int:
        playlists = self.service.list_playlists(self._credential(args.provider))
        self._print({'success': True, 'playlists': [p.to_json() for p in playlists]})
        return EXIT_OK

    def _login(self, args: argparse.Namespace) -> int:
        if args.provider == 'spotify':
            self.secrets.save_spotify_token(args.access_token)
        else:
            self.secrets.save_tidal_session(args.token_type, args.access_token, args.refresh_token)
        self._print({'success': True, 'message': f"Stored {args.provider} credentials in {self.secrets.tokens_file}"})
        return EXIT_OK

    def _status(self, args: argparse.Namespace) -> int:
        status = self.secrets.validate_configuration()
        self._print({'success': all(status.values()), 'credentials': status})
        return EXIT_OK

    def _logout(self, args: argparse.Namespace) -> int:
        self.secrets.clear_tokens()
        self._print({'success': True, 'message': 'Stored tokens removed'})
        return EXIT_OK

    def _serve(self, args: argparse.Namespace) -> int:
        from app.interfaces.http import HTTPServer
        HTTPServer(host=args.host, port=args.port, debug=args.debug, service=self.service).run()
        return EXIT_OK

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return EXIT_USAGE

        setup_logging(args.log_level)

        commands = {
            'migrate-playlist': self._migrate_playlist,
            'migrate-liked': self._migrate_liked,
            'merge': self._merge,
            'delete': self._delete,
            'playlists': self._list_playlists,
            'serve': self._serve,
            'login': self._login,
            'status': self._status,
            'logout': self._logout,
        }

        try:
            self._validate_arguments(args)
            if self.secrets is None:
                self.secrets = SecretManager(args.config_dir)
            if args.command in LOCAL_COMMANDS:
                return commands[args.command](args)
            if self.service is None:
                self.service = MigrationService(Settings.from_env())
            if args.command != 'serve':
                self._setup_signal_handlers()
            return commands[args.command](args)
        except (ValueError, ConfigError) as e:
            logger.error(f"Invalid usage: {e}")
            print(f"error: {e}", file=sys.stderr)
            return EXIT_USAGE
        except ProviderError as e:
            logger.error(f"Provider error: {e}")
            self._print({'success': False, 'error': str(e)})
            return EXIT_JOB_FAILED
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    sys.exit(CLI().run())


if __name__ == '__main__':
    main()
