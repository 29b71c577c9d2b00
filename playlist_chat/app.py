"""
Spotify Chat Playlists: Flask Backend
REST endpoints for sign-in, the playlist chat, and playlist creation.

The signed-in user's Spotify credential lives in the Flask session cookie.
It is refreshed lazily on the next request that needs it and written back to
the session whenever the refresher touches it.
"""

import logging
import os
import time
from datetime import datetime, timezone

import requests
from flask import Flask, jsonify, redirect, request, session
from spotipy.oauth2 import SpotifyOauthError

from .ai_client import AIClient
from .config_manager import get_settings, is_configured, missing_keys
from .errors import (CompletionError, PlaylistChatError, TrackAttachError,
                     ValidationFailure)
from .models import Credential, PendingCreation, PlaylistIntent
from .service import PlaylistService, status_for_error
from .spotify_client import SpotifyGateway
from .token_store import TokenRefresher, build_oauth, exchange_code

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

SESSION_KEY = 'credential'
CHAT_APOLOGY = "Sorry, I'm having trouble thinking right now. Please try again in a moment."


def _timestamp():
    return datetime.now(timezone.utc).isoformat()


def error_response(exc, error='Failed to create playlist', status=None, **extra):
    """Structured {error, details, timestamp} body with the mapped status."""
    body = {'error': error, 'details': str(exc), 'timestamp': _timestamp()}
    body.update(extra)
    return jsonify(body), status or status_for_error(exc)


def _current_credential():
    return Credential.from_dict(session.get(SESSION_KEY))


def _persist_credential(credential):
    session[SESSION_KEY] = credential.to_dict()


def create_app(config=None, ai=None, oauth=None, gateway_factory=None, clock=time.time):
    """Application factory.

    Args:
        config: Overrides for the resolved settings (same keys as config_manager)
        ai: Completion client; built from the configured API keys if omitted
        oauth: SpotifyOAuth-like object; built from the configured app credentials if omitted
        gateway_factory: Callable access_token -> SpotifyGateway
        clock: Returns "now" in epoch seconds (token expiry checks)
    """
    settings = get_settings()
    settings.update(config or {})

    app = Flask(__name__)
    app.secret_key = settings.get('flask_secret_key') or os.urandom(24)

    if ai is None and (settings.get('openai_api_key') or settings.get('gemini_api_key')):
        ai = AIClient(openai_api_key=settings.get('openai_api_key') or None,
                      gemini_api_key=settings.get('gemini_api_key') or None,
                      model=settings.get('completion_model'))
    if oauth is None and settings.get('spotify_client_id') and settings.get('spotify_client_secret'):
        oauth = build_oauth(settings['spotify_client_id'],
                            settings['spotify_client_secret'],
                            settings.get('spotify_redirect_uri'))

    refresher = TokenRefresher(oauth, clock=clock, on_refresh=_persist_credential)
    service = None
    if ai is not None:
        service = PlaylistService(ai, refresher,
                                  gateway_factory=gateway_factory or SpotifyGateway)

    # ─── Auth ────────────────────────────────────────────────────────────

    @app.route('/api/auth/login')
    def api_login():
        """Get Spotify authorization URL."""
        if oauth is None:
            return jsonify({'error': 'Spotify not configured'}), 400
        return jsonify({'auth_url': oauth.get_authorize_url()})

    @app.route('/callback')
    def callback():
        """Handle Spotify OAuth callback."""
        code = request.args.get('code')
        if request.args.get('error'):
            return redirect('/?error=auth_denied')
        if code and oauth is not None:
            try:
                _persist_credential(exchange_code(oauth, code, clock=clock))
            except (SpotifyOauthError, requests.exceptions.RequestException) as e:
                log.error(f'OAuth callback error: {e}')
                return redirect('/?error=auth_failed')
            log.info('Spotify sign-in complete')
        return redirect('/')

    @app.route('/api/auth/logout', methods=['POST'])
    def api_logout():
        """Forget the signed-in user's credential."""
        session.pop(SESSION_KEY, None)
        return jsonify({'success': True})

    # ─── Status ──────────────────────────────────────────────────────────

    @app.route('/api/status')
    def api_status():
        """Check if app is configured and user is authenticated."""
        credential = _current_credential()
        body = {
            'configured': is_configured(settings),
            'missing': missing_keys(settings),
            'authenticated': bool(credential and not credential.error),
            'session_error': credential.error if credential else None,
            'model': settings.get('completion_model'),
            'models': ai.get_available_models() if ai is not None else [],
        }
        if request.args.get('verify') and ai is not None:
            body['providers'] = ai.verify_keys()
        return jsonify(body)

    @app.route('/api/env-check')
    def api_env_check():
        """Which secrets are present. Never returns the values."""
        return jsonify({
            'success': True,
            'env': {
                'hasOpenAI': bool(settings.get('openai_api_key')),
                'hasGemini': bool(settings.get('gemini_api_key')),
                'hasSpotifyClientId': bool(settings.get('spotify_client_id')),
                'hasSpotifyClientSecret': bool(settings.get('spotify_client_secret')),
                'hasRedirectUri': bool(settings.get('spotify_redirect_uri')),
                'hasSecretKey': bool(settings.get('flask_secret_key')),
            },
            'timestamp': _timestamp(),
        })

    # ─── Chat ────────────────────────────────────────────────────────────

    @app.route('/api/chat', methods=['POST'])
    def api_chat():
        """One turn of the playlist conversation."""
        credential = _current_credential()
        if credential is None:
            return jsonify({'error': 'Not authenticated'}), 401

        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        message = str(data.get('message') or '').strip()
        if not message:
            return jsonify({'error': 'Message is required'}), 400
        if service is None:
            return jsonify({'error': 'No AI provider configured'}), 400

        history = data.get('conversationHistory') or []
        if not isinstance(history, list) or not all(isinstance(t, dict) for t in history):
            return jsonify({'error': 'conversationHistory must be a list of objects'}), 400

        try:
            result = service.chat(credential, message, history)
        except CompletionError as e:
            log.error(f'Error in AI chat: {e}')
            return jsonify({'message': CHAT_APOLOGY, 'readyToCreate': False,
                            'pendingCreation': None, 'isPlaylistCreation': False})
        except PlaylistChatError as e:
            log.error(f'Error in AI chat: {e}')
            return error_response(e, error='Failed to process AI request')
        return jsonify(result.to_dict())

    # ─── Playlist creation ───────────────────────────────────────────────

    @app.route('/api/create-playlist', methods=['POST'])
    def api_create_playlist():
        """Generate songs for a confirmed request and build the playlist."""
        credential = _current_credential()
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        explicit_token = data.get('accessToken')
        if credential is None and not explicit_token:
            return jsonify({'error': 'Not authenticated'}), 401
        if service is None:
            return jsonify({'error': 'No AI provider configured'}), 400

        try:
            pending = PendingCreation.from_dict(data)
            intent = PlaylistIntent.from_dict(data['intent']) if data.get('intent') else None
        except ValidationFailure as e:
            log.warning(f'Rejected playlist request: {e}')
            return error_response(e, error='Invalid playlist request')

        try:
            created = service.create_playlist(credential, pending, intent,
                                              access_token=explicit_token)
        except TrackAttachError as e:
            log.error(f'Playlist created but tracks could not be added: {e}')
            return error_response(
                e, playlist=e.playlist.to_dict() if e.playlist else None)
        except PlaylistChatError as e:
            log.error(f'Error creating playlist: {e}')
            return error_response(e)
        except Exception as e:
            log.exception(f'Unexpected error creating playlist: {e}')
            return error_response(e)

        log.info(f'Playlist ready: {created.id} '
                 f'({created.tracks_added_count}/{created.tracks_requested_count} songs)')
        return jsonify({'success': True, 'playlist': created.to_dict()})

    return app


app = create_app()
