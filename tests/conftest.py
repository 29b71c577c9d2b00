import os
import sys

import pytest

# Ensure project root is on sys.path so 'playlist_chat' imports without installing
_TESTS_DIR = os.path.dirname(__file__)
_ROOT_DIR = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir))
if _ROOT_DIR not in sys.path:
    sys.path.insert(0, _ROOT_DIR)

from playlist_chat import config_manager
from playlist_chat.app import create_app
from playlist_chat.spotify_client import SpotifyGateway
from tests.support.fakes import FakeAI, FakeClock, FakeOAuth, FakeSpotipy


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """No real keys or config.json leak into tests."""
    for env_key in config_manager.ENV_MAP.values():
        monkeypatch.delenv(env_key, raising=False)
    monkeypatch.setattr(config_manager, 'CONFIG_FILE', str(tmp_path / 'config.json'))
    yield


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def spotify():
    return FakeSpotipy()


@pytest.fixture
def gateway_factory(spotify):
    def _factory(access_token):
        _factory.tokens.append(access_token)
        return SpotifyGateway(access_token, client=spotify)
    _factory.tokens = []
    return _factory


@pytest.fixture
def fake_oauth():
    return FakeOAuth()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(fake_ai, fake_oauth, gateway_factory, clock):
    application = create_app(
        config={
            'spotify_client_id': 'test-client-id',
            'spotify_client_secret': 'test-client-secret',
            'openai_api_key': 'sk-test',
            'flask_secret_key': 'test-secret',
        },
        ai=fake_ai,
        oauth=fake_oauth,
        gateway_factory=gateway_factory,
        clock=clock,
    )
    application.config['TESTING'] = True
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signed_in(client, clock):
    """Put a valid credential in the test client's session."""
    def _sign_in(expires_at=None, refresh_token='refresh-1', error=None):
        with client.session_transaction() as sess:
            sess['credential'] = {
                'access_token': 'access-1',
                'refresh_token': refresh_token,
                'expires_at': int(clock.now + 3600) if expires_at is None else expires_at,
                'error': error,
            }
        return client
    return _sign_in
