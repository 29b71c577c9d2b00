"""
Playlist materialization: suggested songs → a real, populated Spotify playlist.

ProfileFetch → PlaylistCreate → TrackSearch (×N) → TrackAttach → Done

Only ProfileFetch retries. Searches are issued one at a time and a failed
search just skips that song.
"""

import logging
import time

from .errors import SpotifyApiError, TrackAttachError
from .models import CreatedPlaylist
from .spotify_client import SpotifyGateway

log = logging.getLogger(__name__)

PROFILE_ATTEMPTS = 3
PROFILE_RETRY_DELAY = 1.0


def default_description(name):
    return f'AI-generated playlist: {name}'


class PlaylistMaterializer:

    def __init__(self, gateway_factory=SpotifyGateway, sleep=time.sleep):
        self.gateway_factory = gateway_factory
        self.sleep = sleep

    def materialize(self, pending, suggested, access_token):
        """Create the playlist and fill it with whatever could be resolved.

        Args:
            pending: PendingCreation (name, target count, optional description)
            suggested: list of SuggestedTrack, in playlist order
            access_token: A valid (already refreshed) Spotify access token

        Returns:
            CreatedPlaylist. tracks_added_count may be 0; that is still a
            successful creation.

        Raises:
            SpotifyApiError: profile fetch (after retries) or playlist creation failed
            TrackAttachError: the playlist was created but adding tracks failed
        """
        gateway = self.gateway_factory(access_token)

        # ProfileFetch
        user = gateway.get_current_user_with_retry(
            attempts=PROFILE_ATTEMPTS, delay=PROFILE_RETRY_DELAY, sleep=self.sleep)
        log.info(f"User profile retrieved: {user['id']}")

        # PlaylistCreate
        description = pending.description or default_description(pending.playlist_name)
        playlist = gateway.create_playlist(user['id'], pending.playlist_name,
                                           description, public=False)
        log.info(f"Created playlist: {playlist.get('name')} with ID: {playlist['id']}")

        # TrackSearch
        uris = self.resolve_uris(gateway, suggested)
        log.info(f'Found {len(uris)} songs out of {len(suggested)} requested')

        # TrackAttach
        if uris:
            log.info(f'Adding {len(uris)} tracks to playlist...')
            try:
                gateway.add_tracks(playlist['id'], uris)
            except SpotifyApiError as e:
                log.error(f'Failed to add tracks to playlist: {e.status} {e.body}')
                empty = CreatedPlaylist.from_spotify(
                    playlist, added=0, requested=pending.target_song_count,
                    suggested=len(suggested))
                raise TrackAttachError(e.status, e.body, playlist=empty) from e
        else:
            log.warning('No songs found to add to playlist')

        return CreatedPlaylist.from_spotify(
            playlist,
            added=len(uris),
            requested=pending.target_song_count,
            suggested=len(suggested),
        )

    def resolve_uris(self, gateway, suggested):
        """Top search hit per song, in order. Misses are skipped."""
        uris = []
        for song in suggested:
            log.info(f'Searching for: {song.query}')
            uri = gateway.search_first_uri(song.query)
            if uri:
                uris.append(uri)
        return uris
