"""
Spotify API client wrapper.
One gateway per access token; profile, top items, search, and playlist writes.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from .errors import SpotifyApiError
from .models import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH, TasteContext

log = logging.getLogger(__name__)


class SpotifyGateway:
    """Thin typed wrapper over spotipy for a single bearer token.

    spotipy's own urllib3 retries are switched off; the only retried call is
    get_current_user_with_retry().
    """

    def __init__(self, access_token, client=None, requests_timeout=10):
        self.sp = client or spotipy.Spotify(
            auth=access_token,
            requests_timeout=requests_timeout,
            retries=0,
            status_retries=0,
        )

    def _call(self, operation, fn, *args, **kwargs):
        """Run one spotipy call, converting failures to SpotifyApiError."""
        try:
            return fn(*args, **kwargs)
        except SpotifyException as e:
            raise SpotifyApiError(e.http_status, e.msg, operation=operation) from e
        except requests.exceptions.RequestException as e:
            raise SpotifyApiError(None, str(e), operation=operation) from e

    # ─── Profile & taste ─────────────────────────────────────────────────

    def get_current_user(self):
        """Get the current user's profile."""
        return self._call('Get user profile', self.sp.current_user)

    def get_current_user_with_retry(self, attempts=3, delay=1.0, sleep=time.sleep):
        """Profile fetch with a fixed pause between attempts.

        Playlist creation needs the owning user id, so this is the one call
        worth retrying. Only transient failures (network, 429, 5xx) are retried.
        """
        for attempt in range(1, attempts + 1):
            try:
                user = self.get_current_user()
                log.info('User profile retrieved successfully')
                return user
            except SpotifyApiError as e:
                log.error(f'Failed to get user profile (attempt {attempt}): '
                          f'{e.status} {e.body}')
                if attempt == attempts or not e.is_transient:
                    raise
            sleep(delay)

    def get_top_artists(self, limit=10, time_range='medium_term'):
        return self._call('Get top artists', self.sp.current_user_top_artists,
                          limit=limit, time_range=time_range)

    def get_top_tracks(self, limit=10, time_range='medium_term'):
        return self._call('Get top tracks', self.sp.current_user_top_tracks,
                          limit=limit, time_range=time_range)

    # ─── Search ──────────────────────────────────────────────────────────

    def search_tracks(self, query, limit=1):
        return self._call('Search', self.sp.search, q=query, limit=limit,
                          type='track')

    def search_first_uri(self, query):
        """URI of the top search hit, or None. Never raises for API errors."""
        try:
            results = self.search_tracks(query, limit=1)
        except SpotifyApiError as e:
            log.info(f'Search failed for: {query} ({e.status})')
            return None
        items = ((results or {}).get('tracks') or {}).get('items') or []
        if not items or not items[0] or not items[0].get('uri'):
            log.info(f'No results for: {query}')
            return None
        return items[0]['uri']

    # ─── Playlist writes ─────────────────────────────────────────────────

    def create_playlist(self, user_id, name, description='', public=False):
        """Create a new playlist (private by default)."""
        safe_name = (name or 'AI Playlist').strip()[:MAX_NAME_LENGTH]
        safe_desc = (description or '').strip()[:MAX_DESCRIPTION_LENGTH]
        return self._call('Create playlist', self.sp.user_playlist_create,
                          user_id, safe_name, public=public,
                          description=safe_desc)

    def add_tracks(self, playlist_id, uris):
        """Add up to 100 track URIs in one request."""
        valid_uris = [u for u in uris if u]
        return self._call('Add tracks to playlist', self.sp.playlist_add_items,
                          playlist_id, valid_uris)


def _names(page):
    return [item['name'] for item in (page or {}).get('items', [])
            if item and item.get('name')]


def fetch_taste_context(gateway, limit=10):
    """Top artists and top tracks, fetched side by side.

    Both reads are optional: a failure leaves that half of the context empty.
    """
    def _fetch(label, fn):
        try:
            return _names(fn(limit=limit))
        except SpotifyApiError as e:
            log.warning(f"Error getting user's top {label}: {e}")
            return []

    with ThreadPoolExecutor(max_workers=2) as pool:
        artists = pool.submit(_fetch, 'artists', gateway.get_top_artists)
        tracks = pool.submit(_fetch, 'tracks', gateway.get_top_tracks)
        return TasteContext(top_artists=artists.result(),
                            top_tracks=tracks.result())
