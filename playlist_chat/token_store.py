"""
Spotify OAuth token lifecycle.

Access tokens live in the user's session as a Credential. Before any Spotify
call the caller asks get_valid_access_token() for a usable token; expiry math
and the refresh_token grant happen only here, lazily, on the next use.
"""

import logging
import time

import requests
from spotipy.cache_handler import CacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from .errors import ReauthenticationRequired
from .models import REFRESH_ERROR, Credential

log = logging.getLogger(__name__)

SCOPE = (
    'user-read-email '
    'user-top-read '
    'user-read-recently-played '
    'playlist-read-private '
    'playlist-modify-private '
    'playlist-modify-public'
)


class SessionOnlyCacheHandler(CacheHandler):
    """Never stores tokens. The OAuth object is shared by every user of the
    process, so tokens only live in each user's own session."""

    def get_cached_token(self):
        return None

    def save_token_to_cache(self, token_info):
        return None


def build_oauth(client_id, client_secret, redirect_uri):
    """SpotifyOAuth for one process.

    Tokens are never cached on it; each user's tokens travel in their own session.
    """
    return SpotifyOAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        scope=SCOPE,
        cache_handler=SessionOnlyCacheHandler(),
        show_dialog=True,
        open_browser=False,
    )


def exchange_code(oauth, code, clock=time.time):
    """Exchange the authorization code from /callback for a Credential."""
    token_info = oauth.get_access_token(code, as_dict=True, check_cache=False)
    credential = Credential.from_token_info(token_info)
    if not credential.expires_at and token_info.get('expires_in'):
        credential.expires_at = int(clock()) + int(token_info['expires_in'])
    return credential


class TokenRefresher:
    """Hands out valid access tokens, refreshing expired ones in place.

    Args:
        oauth: Object with refresh_access_token(refresh_token) -> token dict
               (a spotipy SpotifyOAuth in production)
        clock: Returns "now" in epoch seconds
        on_refresh: Called with the credential after every refresh attempt so
                    the session layer can persist the new values
    """

    def __init__(self, oauth, clock=time.time, on_refresh=None):
        self.oauth = oauth
        self.clock = clock
        self.on_refresh = on_refresh

    def get_valid_access_token(self, credential):
        if credential is None or not credential.access_token:
            raise ReauthenticationRequired('Not authenticated')
        if credential.error:
            raise ReauthenticationRequired(
                f'Spotify session expired ({credential.error}); sign in again')

        now = self.clock()
        if not credential.is_expired(now):
            return credential.access_token

        if not credential.refresh_token:
            self._mark_failed(credential, 'no refresh token stored')
        return self._refresh(credential, now)

    def _refresh(self, credential, now):
        log.info('Spotify access token expired, refreshing')
        if self.oauth is None:
            self._mark_failed(credential, 'Spotify app credentials not configured')
        try:
            token_info = self.oauth.refresh_access_token(credential.refresh_token)
        except (SpotifyOauthError, requests.exceptions.RequestException) as e:
            self._mark_failed(credential, e)

        if not token_info or not token_info.get('access_token'):
            self._mark_failed(credential, 'token endpoint returned no access token')

        credential.access_token = token_info['access_token']
        credential.expires_at = int(now) + int(token_info.get('expires_in', 3600))
        # Spotify only sometimes rotates the refresh token
        if token_info.get('refresh_token'):
            credential.refresh_token = token_info['refresh_token']
        credential.error = None
        self._persist(credential)
        log.info(f'Spotify access token refreshed, valid until {credential.expires_at}')
        return credential.access_token

    def _mark_failed(self, credential, reason):
        log.warning(f'Error refreshing access token: {reason}')
        credential.error = REFRESH_ERROR
        self._persist(credential)
        raise ReauthenticationRequired('Could not refresh Spotify access token; sign in again')

    def _persist(self, credential):
        if self.on_refresh:
            self.on_refresh(credential)
