from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from app.crosscutting.config import Settings
from app.domain.errors import Unauthorized
from app.domain.ports import CatalogAdapter


@dataclass(frozen=True)
class SpotifyCredential:
    access_token: str

    def __repr__(self) -> str:
        return "SpotifyCredential(access_token=***)"


@dataclass(frozen=True)
class TidalCredential:
    access_token: str
    token_type: str = 'Bearer'
    refresh_token: Optional[str] = None

    def __repr__(self) -> str:
        return f"TidalCredential(token_type={self.token_type!r}, access_token=***)"


Credential = Union[SpotifyCredential, TidalCredential]


def credential_from_json(data: Optional[Dict[str, Any]]) -> Credential:
    """Parse ``{"provider": "spotify"|"tidal", "access_token": ..., ...}``."""
    if not isinstance(data, dict) or not data.get('access_token'):
        raise Unauthorized("missing credential")
    provider = data.get('provider')
    if provider == 'spotify':
        return SpotifyCredential(access_token=data['access_token'])
    if provider == 'tidal':
        return TidalCredential(
            access_token=data['access_token'],
            token_type=data.get('token_type') or 'Bearer',
            refresh_token=data.get('refresh_token'),
        )
    raise Unauthorized(f"unsupported provider: {provider!r}")


def build_adapter(credential: Credential, settings: Optional[Settings] = None) -> CatalogAdapter:
    """Construct a fresh adapter for one job from the caller's credential."""
    # Imported lazily so one provider's client library is only loaded when used.
    if isinstance(credential, SpotifyCredential):
        from app.infrastructure.providers.spotify import SpotifyCatalog
        return SpotifyCatalog(credential.access_token, settings=settings)
    if isinstance(credential, TidalCredential):
        from app.infrastructure.providers.tidal import TidalCatalog
        return TidalCatalog(
            token_type=credential.token_type,
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            settings=settings,
        )
    raise Unauthorized(f"unsupported credential type: {type(credential).__name__}")
