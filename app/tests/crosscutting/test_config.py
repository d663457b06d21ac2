import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from app.crosscutting.config import ConfigError, SecretManager, Settings


class TestSettings:
    """Tests for engine settings loaded from the environment."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.page_size == 50
        assert settings.match_workers == 4
        assert settings.write_chunk_size == 50
        assert settings.rate_limit_attempts == 3
        assert settings.backoff_base_ms == 500
        assert settings.min_confidence == 0.3
        assert settings.duration_tiebreak is False
        assert settings.search_limit == 10
        assert settings.market == 'US'

    def test_overrides(self):
        settings = Settings.from_env({
            'CROSSFADE_MATCH_WORKERS': '8',
            'CROSSFADE_WRITE_CHUNK': '20',
            'CROSSFADE_BACKOFF_BASE_MS': '0',
            'CROSSFADE_MIN_CONFIDENCE': '0.2',
            'CROSSFADE_DURATION_TIEBREAK': '1',
            'CROSSFADE_MARKET': 'DE',
        })

        assert settings.match_workers == 8
        assert settings.write_chunk_size == 20
        assert settings.backoff_base_ms == 0
        assert settings.min_confidence == 0.2
        assert settings.duration_tiebreak is True
        assert settings.market == 'DE'

    def test_reads_process_environment_by_default(self):
        with patch.dict(os.environ, {'CROSSFADE_PAGE_SIZE': '25'}):
            assert Settings.from_env().page_size == 25

    @pytest.mark.parametrize("env", [
        {'CROSSFADE_MATCH_WORKERS': 'four'},
        {'CROSSFADE_MATCH_WORKERS': '0'},
        {'CROSSFADE_MIN_CONFIDENCE': '1.5'},
        {'CROSSFADE_MIN_CONFIDENCE': 'high'},
    ])
    def test_invalid_values_raise(self, env):
        with pytest.raises(ConfigError):
            Settings.from_env(env)


class TestSecretManager:
    """Tests for SecretManager functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.secret_manager = SecretManager(self.temp_dir)

    def test_init_creates_config_dir(self):
        nested = os.path.join(self.temp_dir, 'nested')

        manager = SecretManager(nested)

        assert Path(nested).is_dir()
        assert manager.tokens_file == Path(nested) / 'tokens.json'

    def test_load_tokens_empty_file(self):
        assert self.secret_manager.load_tokens() == {}

    def test_load_tokens_invalid_json(self):
        self.secret_manager.tokens_file.write_text('{not json')

        with pytest.raises(ConfigError):
            self.secret_manager.load_tokens()

    def test_save_tokens_merges(self):
        self.secret_manager.save_spotify_token('abc')
        self.secret_manager.save_tidal_session('Bearer', 'def', 'ghi')

        data = json.loads(self.secret_manager.tokens_file.read_text())
        assert data['spotify'] == {'access_token': 'abc'}
        assert data['tidal']['refresh_token'] == 'ghi'

    def test_spotify_token_prefers_environment(self):
        self.secret_manager.save_spotify_token('from-file')

        assert self.secret_manager.get_spotify_token() == 'from-file'
        with patch.dict(os.environ, {'SPOTIFY_ACCESS_TOKEN': 'from-env'}):
            assert self.secret_manager.get_spotify_token() == 'from-env'

    def test_spotify_token_from_env_file(self):
        self.secret_manager.env_file.write_text('SPOTIFY_ACCESS_TOKEN=from-dotenv\n')

        assert self.secret_manager.get_spotify_token() == 'from-dotenv'

    def test_tidal_session_from_environment(self):
        with patch.dict(os.environ, {'TIDAL_ACCESS_TOKEN': 'tok', 'TIDAL_REFRESH_TOKEN': 'ref'}):
            session = self.secret_manager.get_tidal_session()

        assert session == {'token_type': 'Bearer', 'access_token': 'tok', 'refresh_token': 'ref'}

    def test_validate_and_clear(self):
        assert self.secret_manager.validate_configuration() == {'spotify_token': False, 'tidal_session': False}

        self.secret_manager.save_tidal_session('Bearer', 'def')
        assert self.secret_manager.validate_configuration()['tidal_session'] is True

        self.secret_manager.clear_tokens()
        assert self.secret_manager.get_tidal_session() is None
