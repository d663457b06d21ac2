import os
import json
from dataclasses import dataclass
from typing import Dict, Any, Mapping, Optional
from pathlib import Path

from dotenv import dotenv_values


class ConfigError(Exception):
    """Configuration error."""
    pass


def _env_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{key} must be within [0, 1], got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Engine tunables. Defaults follow provider batch limits."""

    page_size: int = 50
    match_workers: int = 4
    write_chunk_size: int = 50
    rate_limit_attempts: int = 3
    backoff_base_ms: int = 500
    min_confidence: float = 0.3
    duration_tiebreak: bool = False
    search_limit: int = 10
    market: str = 'US'

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from CROSSFADE_* variables."""
        env = os.environ if env is None else env
        return cls(
            page_size=_env_int(env, 'CROSSFADE_PAGE_SIZE', 50),
            match_workers=_env_int(env, 'CROSSFADE_MATCH_WORKERS', 4),
            write_chunk_size=_env_int(env, 'CROSSFADE_WRITE_CHUNK', 50),
            rate_limit_attempts=_env_int(env, 'CROSSFADE_RATE_LIMIT_ATTEMPTS', 3),
            backoff_base_ms=_env_int(env, 'CROSSFADE_BACKOFF_BASE_MS', 500, minimum=0),
            min_confidence=_env_float(env, 'CROSSFADE_MIN_CONFIDENCE', 0.3),
            duration_tiebreak=env.get('CROSSFADE_DURATION_TIEBREAK', '0') == '1',
            search_limit=_env_int(env, 'CROSSFADE_SEARCH_LIMIT', 10),
            market=env.get('CROSSFADE_MARKET', 'US') or 'US',
        )


class SecretManager:
    """Stores catalog credentials for the command line interface."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize secret manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.crossfade'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.tokens_file = self.config_dir / 'tokens.json'
        self.env_file = self.config_dir / '.env'

    def load_tokens(self) -> Dict[str, Any]:
        """Load tokens from tokens.json file."""
        if not self.tokens_file.exists():
            return {}

        try:
            with open(self.tokens_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load tokens from {self.tokens_file}: {e}")

    def save_tokens(self, tokens: Dict[str, Any]) -> None:
        """Merge tokens into tokens.json file."""
        existing_tokens = self.load_tokens()
        existing_tokens.update(tokens)
        try:
            with open(self.tokens_file, 'w') as f:
                json.dump(existing_tokens, f, indent=2, ensure_ascii=False)
        except IOError as e:
            raise ConfigError(f"Failed to save tokens to {self.tokens_file}: {e}")

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the .env file in the config directory."""
        if not self.env_file.exists():
            return {}
        return {k: v for k, v in dotenv_values(self.env_file).items() if v is not None}

    def get_spotify_token(self) -> Optional[str]:
        """Spotify access token from the environment, .env or tokens.json."""
        token = os.getenv('SPOTIFY_ACCESS_TOKEN') or self.load_env_vars().get('SPOTIFY_ACCESS_TOKEN')
        if token:
            return token
        return (self.load_tokens().get('spotify') or {}).get('access_token')

    def save_spotify_token(self, access_token: str) -> None:
        self.save_tokens({'spotify': {'access_token': access_token}})

    def get_tidal_session(self) -> Optional[Dict[str, Any]]:
        """TIDAL OAuth session fields from the environment or tokens.json."""
        access_token = os.getenv('TIDAL_ACCESS_TOKEN') or self.load_env_vars().get('TIDAL_ACCESS_TOKEN')
        if access_token:
            return {
                'token_type': os.getenv('TIDAL_TOKEN_TYPE', 'Bearer'),
                'access_token': access_token,
                'refresh_token': os.getenv('TIDAL_REFRESH_TOKEN'),
            }
        session = self.load_tokens().get('tidal')
        if session and session.get('access_token'):
            return session
        return None

    def save_tidal_session(self, token_type: str, access_token: str,
                           refresh_token: Optional[str] = None) -> None:
        self.save_tokens({
            'tidal': {
                'token_type': token_type,
                'access_token': access_token,
                'refresh_token': refresh_token,
            }
        })

    def validate_configuration(self) -> Dict[str, bool]:
        """Report which credentials are available."""
        return {
            'spotify_token': bool(self.get_spotify_token()),
            'tidal_session': bool(self.get_tidal_session()),
        }

    def clear_tokens(self) -> None:
        """Clear all stored tokens."""
        if self.tokens_file.exists():
            self.tokens_file.unlink()
