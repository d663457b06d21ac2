import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


CREDENTIAL_KEYS = [
    'SPOTIFY_ACCESS_TOKEN',
    'TIDAL_ACCESS_TOKEN',
    'TIDAL_TOKEN_TYPE',
    'TIDAL_REFRESH_TOKEN',
]


@pytest.fixture(autouse=True)
def _clear_credentials_env():
    """Ensure catalog credentials from a developer .env do not leak into tests.
    Cleared before each test and restored afterwards so tests explicitly setting
    them remain deterministic.
    """
    keys = CREDENTIAL_KEYS + [k for k in os.environ if k.startswith('CROSSFADE_')]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
