"""Exception classes for the chat playlist pipeline."""


class PlaylistChatError(Exception):
    """Base exception for everything raised by this package."""


class ReauthenticationRequired(PlaylistChatError):
    """The user's Spotify credential is missing, invalid, or could not be refreshed.

    Never retried; the caller has to send the user through sign-in again.
    """


class ValidationFailure(PlaylistChatError):
    """Locally rejected input: missing playlist name, bad song count,
    or model output that does not follow the agreed line format."""


class CompletionError(PlaylistChatError):
    """The text-completion provider failed or is not configured."""


class SpotifyApiError(PlaylistChatError):
    """Non-2xx response (or transport failure) from the Spotify Web API.

    Attributes:
        status: HTTP status code, or None when the request never got a response
        body: Response body text (or the transport error message)
    """

    def __init__(self, status, body='', operation=''):
        self.status = status
        self.body = body or ''
        self.operation = operation
        label = f'{operation} failed' if operation else 'Spotify API error'
        super().__init__(f'{label}: {status if status is not None else "network"} - {self.body}')

    @property
    def kind(self):
        """Caller-facing category for the status code."""
        if self.status == 401:
            return 'reauthenticate'
        if self.status == 403:
            return 'forbidden'
        if self.status == 404:
            return 'not_found'
        if self.status == 429:
            return 'rate_limited'
        if self.status is None or self.status >= 500:
            return 'unavailable'
        return 'failed'

    @property
    def is_transient(self):
        return self.kind in ('rate_limited', 'unavailable')


class TrackAttachError(SpotifyApiError):
    """Adding tracks failed after the playlist was already created.

    The playlist exists (empty); it is reported, not rolled back.
    """

    def __init__(self, status, body='', playlist=None):
        super().__init__(status, body, operation='Add tracks to playlist')
        self.playlist = playlist
