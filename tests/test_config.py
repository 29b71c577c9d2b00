import json

import pytest

from playlist_chat import config_manager


@pytest.fixture
def config_file():
    def write(data):
        with open(config_manager.CONFIG_FILE, 'w') as f:
            json.dump(data, f)
    return write


def test_env_wins_over_config_file(monkeypatch, config_file):
    config_file({'openai_api_key': 'from-file', 'gemini_api_key': 'g-file'})
    monkeypatch.setenv('OPENAI_API_KEY', 'from-env')

    assert config_manager.get_config_value('openai_api_key') == 'from-env'
    assert config_manager.get_config_value('gemini_api_key') == 'g-file'


def test_defaults():
    assert config_manager.get_config_value('spotify_redirect_uri') == \
        'http://127.0.0.1:5000/callback'
    assert config_manager.get_config_value('completion_model') == 'gpt-4o-mini'
    assert config_manager.get_config_value('openai_api_key') is None


def test_config_file_overrides_defaults(config_file):
    config_file({'completion_model': 'gpt-4o'})
    assert config_manager.get_config_value('completion_model') == 'gpt-4o'


@pytest.mark.parametrize('content', ['{not json', '["a", "list"]'])
def test_unusable_config_file_is_ignored(content):
    with open(config_manager.CONFIG_FILE, 'w') as f:
        f.write(content)
    assert config_manager.load_config() == {}


def test_missing_keys(monkeypatch):
    assert config_manager.missing_keys() == [
        'spotify_client_id', 'spotify_client_secret', 'openai_api_key|gemini_api_key']
    assert not config_manager.is_configured()

    monkeypatch.setenv('SPOTIFY_CLIENT_ID', 'id')
    monkeypatch.setenv('SPOTIFY_CLIENT_SECRET', 'secret')
    monkeypatch.setenv('GEMINI_API_KEY', 'g')
    assert config_manager.is_configured()
