"""
Settings for the chat playlist builder.

Each key resolves from its environment variable (a .env in the project root
is loaded first), then from an optional config.json, then from DEFAULTS.
"""

import json
import os

from dotenv import load_dotenv

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

load_dotenv(os.path.join(_PROJECT_ROOT, '.env'))


# Environment variables win over config.json so secrets can stay out of the repo.
ENV_MAP = {
    'spotify_client_id': 'SPOTIFY_CLIENT_ID',
    'spotify_client_secret': 'SPOTIFY_CLIENT_SECRET',
    'spotify_redirect_uri': 'SPOTIFY_REDIRECT_URI',
    'openai_api_key': 'OPENAI_API_KEY',
    'gemini_api_key': 'GEMINI_API_KEY',
    'completion_model': 'COMPLETION_MODEL',
    'flask_secret_key': 'FLASK_SECRET_KEY',
}

DEFAULTS = {
    'spotify_redirect_uri': 'http://127.0.0.1:5000/callback',
    'completion_model': 'gpt-4o-mini',
}

CONFIG_FILE = os.environ.get('PLAYLIST_CHAT_CONFIG',
                             os.path.join(_PROJECT_ROOT, 'config.json'))


def load_config():
    """Parsed config.json, or {} when it is absent or unreadable."""
    if not os.path.exists(CONFIG_FILE):
        return {}
    try:
        with open(CONFIG_FILE) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_config_value(key, default=None):
    """Env var, then config.json, then the built-in default."""
    env_key = ENV_MAP.get(key)
    if env_key and os.environ.get(env_key):
        return os.environ.get(env_key)
    value = load_config().get(key)
    if value:
        return value
    if default is None:
        default = DEFAULTS.get(key)
    return default


def get_settings():
    """Resolve every known key into one dict."""
    return {key: get_config_value(key) for key in ENV_MAP}


def missing_keys(settings=None):
    """Names of the keys still needed: Spotify app credentials plus one AI provider."""
    settings = settings if settings is not None else get_settings()
    missing = [k for k in ('spotify_client_id', 'spotify_client_secret')
               if not settings.get(k)]
    if not (settings.get('openai_api_key') or settings.get('gemini_api_key')):
        missing.append('openai_api_key|gemini_api_key')
    return missing


def is_configured(settings=None):
    """True once the Spotify app keys and one AI provider key are set."""
    return not missing_keys(settings)
