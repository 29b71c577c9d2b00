"""
Song suggestion generation.

Asks the completion model for exactly N "Artist - Title" lines. At most two
completion calls are made per playlist: the main request, and one top-up
for any shortfall.
"""

import logging
import re

from .errors import CompletionError
from .models import PlaylistIntent, Strategy, SuggestedTrack

log = logging.getLogger(__name__)

# Safety net for an empty completion, not a recommendation.
FALLBACK_SONGS = (
    SuggestedTrack('The Beatles', 'Here Comes The Sun'),
    SuggestedTrack('Queen', 'Bohemian Rhapsody'),
    SuggestedTrack('Led Zeppelin', 'Stairway to Heaven'),
    SuggestedTrack('Pink Floyd', 'Wish You Were Here'),
    SuggestedTrack('The Rolling Stones', 'Paint It Black'),
)

APPROACH_LABELS = {
    Strategy.USE_USER_TASTE: "USE USER'S MUSIC TASTE",
    Strategy.ARTIST_CATALOG: 'SPECIFIC ARTIST ONLY',
    Strategy.SIMILAR_TO_ARTIST: 'SIMILAR TO ARTIST',
    Strategy.SIMILAR_TO_STYLE: 'SIMILAR TO SONG/STYLE',
    Strategy.PREMADE_VIBE: 'PREMADE VIBE',
}

FOCUS_INSTRUCTIONS = {
    Strategy.USE_USER_TASTE:
        "Use the user's music taste as the foundation for this playlist.",
    Strategy.ARTIST_CATALOG:
        "Focus ONLY on songs by the specific artist mentioned. Do NOT use the user's personal taste.",
    Strategy.SIMILAR_TO_ARTIST:
        "Focus on the mentioned artist and similar artists. Include the artist's own songs "
        "unless the user excluded them. Do NOT use the user's personal taste.",
    Strategy.SIMILAR_TO_STYLE:
        "Focus on songs that share the sound and style of the named song or style. "
        "Do NOT use the user's personal taste.",
    Strategy.PREMADE_VIBE:
        "Fit the activity or vibe, using the user's music taste as the foundation.",
}

PROMPT_SYSTEM = """\
You are a music expert. Analyze the request and use the appropriate approach:

SPECIFIC ARTIST ONLY: focus ONLY on that artist's songs.

SIMILAR TO ARTIST / SIMILAR TO SONG/STYLE: focus on the named artist, song, or style \
and similar music. Do NOT use the user's personal taste.

USE USER'S MUSIC TASTE / PREMADE VIBE: use their music taste as the foundation.

Only suggest REAL songs. Use the exact official title and primary credited artist."""

PROMPT_SUPPLEMENT_SYSTEM = 'You are a music expert. Generate additional song suggestions.'

_LIST_PREFIX_RE = re.compile(r'^\s*(?:\d{1,3}[.):]|[-*•])\s*')
_SEPARATOR_RE = re.compile(r'\s+[-–—]\s+')


def parse_song_lines(text):
    """Parse one "Artist - Title" per line.

    Blank lines are discarded; list numbering and bullets are tolerated.
    Lines without an artist/title separator are dropped.
    """
    songs = []
    for line in (text or '').splitlines():
        line = _LIST_PREFIX_RE.sub('', line.strip()).strip().strip('"')
        if not line:
            continue
        parts = _SEPARATOR_RE.split(line, maxsplit=1)
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            log.warning(f'Dropping malformed suggestion line: {line!r}')
            continue
        songs.append(SuggestedTrack(artist=parts[0].strip(),
                                    title=parts[1].strip().strip('"')))
    return songs


def fallback_songs(target):
    return list(FALLBACK_SONGS[:min(target, len(FALLBACK_SONGS))])


class SongSuggestionGenerator:
    max_output_tokens = 1000
    supplement_max_output_tokens = 500
    temperature = 0.8

    def __init__(self, ai):
        self.ai = ai

    def build_prompt(self, pending, intent, taste=None):
        count = pending.target_song_count
        lines = [
            f'Based on this playlist request: "{pending.request_text}", generate exactly '
            f'{count} song suggestions in the format "Artist - Song Title".',
            '',
            f'APPROACH: {APPROACH_LABELS[intent.strategy]}',
            FOCUS_INSTRUCTIONS[intent.strategy],
        ]
        if intent.artist_names:
            lines.append(f"Artists named: {', '.join(intent.artist_names)}")
        if intent.track_names:
            lines.append(f"Songs named: {', '.join(intent.track_names)}")
        if intent.style_hints:
            lines.append(f"Style / vibe: {', '.join(intent.style_hints)}")

        # Taste context must never reach the model for artist/style-seeded requests
        if intent.strategy.uses_taste and taste is not None and not taste.is_empty:
            lines.append('')
            if intent.strategy == Strategy.PREMADE_VIBE and intent.style_hints:
                lines.append("User's music taste (use only as a tiebreaker):")
            else:
                lines.append("User's music taste context:")
            lines.append(taste.render())

        lines.extend([
            '',
            'CRITICAL REQUIREMENTS:',
            f'- Generate EXACTLY {count} songs (not more, not less)',
            '- Format: "Artist - Song Title" (one per line)',
            '- No additional text, explanations, or numbering',
            '',
            'Return only the song suggestions, one per line.',
        ])
        return '\n'.join(lines)

    def build_supplement_prompt(self, pending, shortfall, existing):
        have = '\n'.join(s.query for s in existing)
        return (
            f'Generate {shortfall} more song suggestions in the same format for the '
            f'playlist: "{pending.request_text}". Do not repeat these:\n{have}\n\n'
            f'Return only "Artist - Song Title" format, one per line.'
        )

    def generate(self, pending, intent=None, taste=None):
        """Suggest pending.target_song_count songs (best effort).

        Raises CompletionError if the main completion call fails; a failing
        top-up call is logged and the shorter list is returned.
        """
        intent = intent or PlaylistIntent()
        target = pending.target_song_count

        text = self.ai.complete(
            PROMPT_SYSTEM,
            [{'role': 'user', 'content': self.build_prompt(pending, intent, taste)}],
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
        )
        songs = parse_song_lines(text)[:target]
        log.info(f'Generated {len(songs)} song suggestions')

        if not songs:
            log.info('No songs generated, using fallback songs')
            songs = fallback_songs(target)

        if len(songs) < target:
            shortfall = target - len(songs)
            log.info(f'Only generated {len(songs)} songs, requesting {shortfall} more...')
            songs.extend(self._supplement(pending, shortfall, songs))
            songs = songs[:target]

        if len(songs) < target:
            log.warning(f'Accepting {len(songs)}/{target} suggestions')
        return songs

    def _supplement(self, pending, shortfall, existing):
        try:
            text = self.ai.complete(
                PROMPT_SUPPLEMENT_SYSTEM,
                [{'role': 'user',
                  'content': self.build_supplement_prompt(pending, shortfall, existing)}],
                max_output_tokens=self.supplement_max_output_tokens,
                temperature=self.temperature,
            )
        except CompletionError as e:
            log.warning(f'Could not generate additional songs: {e}')
            return []
        more = parse_song_lines(text)[:shortfall]
        log.info(f'Added {len(more)} more songs')
        return more
