"""
Data model for the chat playlist pipeline.
Plain dataclasses; nothing here touches the network.
"""

import re
from dataclasses import asdict, dataclass, field
from enum import Enum

from .errors import ValidationFailure

MIN_SONGS = 1
MAX_SONGS = 100
REFRESH_ERROR = 'RefreshAccessTokenError'

# Spotify enforces limits: name ≤ 100 chars, description ≤ 300 chars
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 300


@dataclass
class Credential:
    """OAuth token pair for one signed-in user. Mutated in place on refresh."""
    access_token: str
    refresh_token: str = ''
    expires_at: int = 0  # epoch seconds
    error: str | None = None

    @classmethod
    def from_token_info(cls, token_info):
        """Build from a spotipy token-info dict (has expires_at already)."""
        return cls(
            access_token=token_info.get('access_token', ''),
            refresh_token=token_info.get('refresh_token', '') or '',
            expires_at=int(token_info.get('expires_at') or 0),
        )

    @classmethod
    def from_dict(cls, data):
        if not data or not data.get('access_token'):
            return None
        return cls(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token', '') or '',
            expires_at=int(data.get('expires_at') or 0),
            error=data.get('error'),
        )

    def to_dict(self):
        return asdict(self)

    def is_expired(self, now):
        return now >= self.expires_at


@dataclass
class ConversationTurn:
    role: str  # 'user' | 'assistant'
    text: str

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationFailure('Conversation turns must be JSON objects')
        role = str(data.get('role') or 'user').lower()
        # The chat UI labels its own bubbles 'ai'
        if role in ('ai', 'assistant', 'model'):
            role = 'assistant'
        else:
            role = 'user'
        return cls(role=role, text=str(data.get('content', data.get('text', '')) or ''))

    def to_message(self):
        return {'role': self.role, 'content': self.text}


class Strategy(str, Enum):
    """Seeding policy for a playlist request."""
    USE_USER_TASTE = 'USE_USER_TASTE'
    ARTIST_CATALOG = 'ARTIST_CATALOG'
    SIMILAR_TO_ARTIST = 'SIMILAR_TO_ARTIST'
    SIMILAR_TO_STYLE = 'SIMILAR_TO_STYLE'
    PREMADE_VIBE = 'PREMADE_VIBE'

    @property
    def uses_taste(self):
        """Whether the user's top artists/tracks may seed the playlist."""
        return self in (Strategy.USE_USER_TASTE, Strategy.PREMADE_VIBE)

    @classmethod
    def parse(cls, value):
        """Lenient lookup: 'similar to artist', 'similar_to_song' etc."""
        key = re.sub(r'[^A-Z]+', '_', str(value or '').upper()).strip('_')
        if key in ('SIMILAR_TO_SONG', 'SIMILAR_TO_SONG_STYLE', 'STYLE'):
            key = 'SIMILAR_TO_STYLE'
        if key in ('SPECIFIC_ARTIST', 'SPECIFIC_ARTIST_ONLY', 'ARTIST'):
            key = 'ARTIST_CATALOG'
        if key in ('PREMADE', 'PREMADE_OPTION', 'PREMADE_OPTIONS'):
            key = 'PREMADE_VIBE'
        try:
            return cls(key)
        except ValueError:
            raise ValidationFailure(f'Unknown strategy: {value!r}')


@dataclass
class PlaylistIntent:
    strategy: Strategy = Strategy.USE_USER_TASTE
    artist_names: list = field(default_factory=list)
    track_names: list = field(default_factory=list)
    style_hints: list = field(default_factory=list)

    def to_dict(self):
        return {
            'strategy': self.strategy.value,
            'artists': list(self.artist_names),
            'tracks': list(self.track_names),
            'styles': list(self.style_hints),
        }

    @classmethod
    def from_dict(cls, data):
        """Parse the JSON-shaped intent. Raises ValidationFailure on bad shape."""
        if not isinstance(data, dict):
            raise ValidationFailure('Intent must be a JSON object')

        def _names(key, alt):
            value = data.get(key, data.get(alt, []))
            if value is None:
                return []
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list):
                raise ValidationFailure(f'Intent field {key!r} must be a list')
            return [str(v).strip() for v in value if str(v).strip()]

        return cls(
            strategy=Strategy.parse(data.get('strategy')),
            artist_names=_names('artists', 'artistNames'),
            track_names=_names('tracks', 'trackNames'),
            style_hints=_names('styles', 'styleHints'),
        )


@dataclass
class PendingCreation:
    """A confirmed name + song count, waiting to be materialized."""
    playlist_name: str
    target_song_count: int
    request_text: str = ''
    description: str | None = None

    def __post_init__(self):
        name = str(self.playlist_name or '').strip()
        if not name:
            raise ValidationFailure('Playlist name is required')
        self.playlist_name = name[:MAX_NAME_LENGTH]
        count = self.target_song_count
        if isinstance(count, bool) or (isinstance(count, float) and not count.is_integer()):
            raise ValidationFailure(
                f'Song count must be a whole number between {MIN_SONGS} and {MAX_SONGS}')
        try:
            count = int(str(count).strip()) if isinstance(count, str) else int(count)
        except (TypeError, ValueError):
            raise ValidationFailure(
                f'Song count must be a number between {MIN_SONGS} and {MAX_SONGS}')
        if not MIN_SONGS <= count <= MAX_SONGS:
            raise ValidationFailure(
                f'Song count must be between {MIN_SONGS} and {MAX_SONGS}, got {count}')
        self.target_song_count = count
        self.request_text = str(self.request_text or '').strip() or self.playlist_name

    def to_dict(self):
        return {
            'playlistName': self.playlist_name,
            'targetSongCount': self.target_song_count,
            'requestText': self.request_text,
        }

    @classmethod
    def from_dict(cls, data):
        """Parse a create request. Accepts the create-form keys
        (numberOfSongs, userRequest) and this class's own to_dict() keys, so a
        pendingCreation from /api/chat can be posted back unchanged.
        """
        if not isinstance(data, dict):
            raise ValidationFailure('Playlist request must be a JSON object')
        count = data.get('numberOfSongs')
        if count is None:
            count = data.get('targetSongCount')
        request_text = (data.get('userRequest') or data.get('requestText')
                        or data.get('descriptiveRequestText') or '')
        return cls(
            playlist_name=data.get('playlistName'),
            target_song_count=count,
            request_text=request_text,
            description=str(data.get('description') or '').strip() or None,
        )


@dataclass(frozen=True)
class SuggestedTrack:
    artist: str
    title: str

    @property
    def query(self):
        if self.artist:
            return f'{self.artist} - {self.title}'
        return self.title


@dataclass
class TasteContext:
    top_artists: list = field(default_factory=list)
    top_tracks: list = field(default_factory=list)

    @property
    def is_empty(self):
        return not (self.top_artists or self.top_tracks)

    def render(self):
        return (
            f"User's Top Artists: {', '.join(self.top_artists) or '(unknown)'}\n"
            f"User's Top Tracks: {', '.join(self.top_tracks) or '(unknown)'}"
        )


@dataclass(frozen=True)
class CreatedPlaylist:
    id: str
    name: str
    description: str
    external_url: str
    tracks_added_count: int
    tracks_requested_count: int
    tracks_suggested_count: int = 0

    @classmethod
    def from_spotify(cls, playlist, added, requested, suggested):
        return cls(
            id=playlist['id'],
            name=playlist.get('name', ''),
            description=playlist.get('description', '') or '',
            external_url=playlist.get('external_urls', {}).get('spotify', ''),
            tracks_added_count=added,
            tracks_requested_count=requested,
            tracks_suggested_count=suggested,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'external_url': self.external_url,
            'tracks_added': self.tracks_added_count,
            'requested_count': self.tracks_requested_count,
            'total_requested': self.tracks_suggested_count,
        }
