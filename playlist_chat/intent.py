"""
Intent classification for chat turns.

The completion model holds the conversation and decides when a playlist is
ready; this module builds its prompt and parses two control lines out of the
reply:

    INTENT: {"strategy": "...", "artists": [...], "tracks": [...], "styles": [...]}
    CREATE_PLAYLIST: <playlist name> | SONGS: <1-100>

Anything that does not match those grammars is treated as conversation, or,
for a CREATE_PLAYLIST line, as a validation failure that re-prompts the user.
The keyword regexes in heuristic_intent() are the fallback when the INTENT
line is missing, and they also pin the seeding rules the model must not break.
"""

import json
import logging
import re
from dataclasses import dataclass

from .errors import ValidationFailure
from .models import (MAX_SONGS, MIN_SONGS, ConversationTurn, PendingCreation,
                     PlaylistIntent, Strategy)

log = logging.getLogger(__name__)

CREATE_LINE_RE = re.compile(
    r'^[ \t]*CREATE_PLAYLIST:[ \t]*(?P<name>.+?)[ \t]*\|[ \t]*SONGS:[ \t]*(?P<count>\d{1,3})[ \t]*$',
    re.MULTILINE,
)
CREATE_MARKER_RE = re.compile(r'^[ \t]*CREATE_PLAYLIST:', re.MULTILINE)
INTENT_LINE_RE = re.compile(r'^[ \t]*INTENT:[ \t]*(?P<body>\{.*\})[ \t]*$', re.MULTILINE)
CONTROL_LINE_RE = re.compile(r'^[ \t]*(?:CREATE_PLAYLIST|INTENT):.*$\n?', re.MULTILINE)
# An assistant turn like this closes a request; earlier user turns belong to
# a playlist that already exists.
CREATED_TURN_RE = re.compile(
    r'^[ \t]*CREATE_PLAYLIST:|\bcreat(?:ed|ing)\s+["“]|\bplaylist\s+(?:is\s+)?created\b',
    re.IGNORECASE | re.MULTILINE)

NO_REPLY = "I'm sorry, I couldn't process that request."
REPROMPT = (
    "I need both a playlist name and a song count before I can create it. "
    f"What would you like to call it, and how many songs ({MIN_SONGS}-{MAX_SONGS})?"
)

# ─── System Prompt ───────────────────────────────────────────────────────────

PROMPT_CHAT = """\
You are a music playlist creation AI assistant. You help users create Spotify \
playlists based on their specific requests, mood, activities, or style preferences.

User's Music Context (for reference only):
{taste}

Instructions:
1. Analyze the user's request to determine which approach to use
2. Be conversational and helpful about the playlist concept
3. Ask clarifying questions if needed about mood, genre, or style
4. When you have enough information, ask: "I have some great songs in mind for your \
playlist! What would you like to name this playlist? And how many songs would you like? \
(Please choose a number between 1-100)"
5. Wait for the user to provide BOTH the playlist name AND the number of songs
6. Only after getting both, put this on its own line: \
"CREATE_PLAYLIST: [exact playlist name from user] | SONGS: [exact number from user]"
7. Do NOT list specific song names - just say you have songs in mind
8. Use the EXACT number of songs the user requests, never a default
9. If the number is missing, not a whole number, below 1, or above 100, do NOT write \
the CREATE_PLAYLIST line; ask again for a number between 1 and 100
10. If the user says "yes" or "create it" without a name and song count, ask again for both
11. End EVERY reply with one line:
INTENT: {{"strategy": "<STRATEGY>", "artists": [...], "tracks": [...], "styles": [...]}}

REQUEST ANALYSIS - choose STRATEGY with this logic:

USE_USER_TASTE - generic mood or personal requests with no named artist or style:
- "Make me a playlist based on my feelings", "Songs for my mood", "Based on my music taste"

ARTIST_CATALOG - songs BY a specific artist (do not use the user's taste):
- "I want Arctic Monkeys songs", "Make me a playlist of The Beatles", "Songs by Drake"
- Ask what type of songs from that artist they want (hits, deep cuts, albums)

SIMILAR_TO_ARTIST - in the style of a named artist (do not use the user's taste):
- "I want Arctic Monkeys style", "Songs similar to The Strokes", "Indie rock like Radiohead"
- Include the named artist's own songs unless the user excludes them

SIMILAR_TO_STYLE - in the style of a named song or genre/style (do not use the user's taste):
- "Songs like 'Do I Wanna Know'", "Something in a shoegaze style"

PREMADE_VIBE - activity playlists with no named artist or style:
- "Workout playlist", "Roadtrip playlist", "Study playlist", "Party playlist"
- Use the user's taste as the foundation. If an artist or style is attached \
("80s synth workout"), pick the style strategy instead and put the activity in "styles".

Current conversation:
{history}

User: {message}"""


@dataclass
class ClassificationResult:
    intent: PlaylistIntent
    reply: str
    ready_to_create: bool = False
    pending: PendingCreation | None = None

    def to_dict(self):
        return {
            'message': self.reply,
            'readyToCreate': self.ready_to_create,
            'pendingCreation': self.pending.to_dict() if self.pending else None,
            'intent': self.intent.to_dict(),
            # Flat fields kept for the chat UI
            'isPlaylistCreation': self.ready_to_create,
            'playlistName': self.pending.playlist_name if self.pending else '',
            'songCount': self.pending.target_song_count if self.pending else None,
        }


# ─── Keyword heuristics ──────────────────────────────────────────────────────

_NAMING_RE = re.compile(
    r'\b(?:name|call|title)\s+it\s+[^,.!?\n]+', re.IGNORECASE)
_COUNT_RE = re.compile(r'\b\d+\s*(?:songs?|tracks?)\b', re.IGNORECASE)
_ARTIST_CATALOG_RE = re.compile(
    r'\b(?:songs|tracks|music|hits|playlist|best)\s+(?P<prep>by|of|from)\s+(?P<name>[^,.!?\n]+)',
    re.IGNORECASE)
_ARTIST_SONGS_RE = re.compile(
    r"\b(?:want|give me|play|only)\s+(?P<name>[A-Z][\w&'.]*(?:\s+[A-Z][\w&'.]*)*)\s+(?:songs|tracks|hits)\b")
_SIMILAR_RE = re.compile(
    r"(?:\bsimilar\s+to|\bin\s+the\s+(?:style|vein|spirit)\s+of|\bsounds?\s+like|\binspired\s+by)"
    r"\s+(?P<name>[^,.!?\n]+)",
    re.IGNORECASE)
# A bare "like" only counts before a quoted title or a capitalised name;
# "I really like sad songs" is a mood, not a reference.
_LIKE_RE = re.compile(
    r"(?<![Ww]ould )(?<!\b[Ii]'d )(?<!\b[Ii] )(?<![Ff]eel )\b(?i:like)\s+"
    r"(?P<name>(?:[\"“'‘]|(?i:the\s+(?:song\s+|track\s+)?)?[A-Z0-9])[^,.!?\n]*)")
_STYLE_SUFFIX_RE = re.compile(
    r'(?P<name>[^,.!?\n]+?)[\s-]+(?:style|esque|type\s+(?:music|songs|beat))\b',
    re.IGNORECASE)
_FILLER_RE = re.compile(
    r"^(?:(?:i|we)\s+)?(?:(?:want|need|would\s+like|'d\s+like|love|like|give\s+me|make\s+me"
    r"|make|create|build|some|something|anything|a|an|playlist|songs?|music|with|in|by|of|from)\s+)*",
    re.IGNORECASE)
_TRAILING_RE = re.compile(
    r"\s+(?:songs?|tracks?|music|stuff|vibes?|playlist|please)\s*$", re.IGNORECASE)
_QUOTED_RE = re.compile(
    r'["“](?P<title>[^"”]{2,})["”]|(?<!\w)[\'‘](?P<single>[^\'’]{2,})[\'’](?!\w)')
_SONG_BY_RE = re.compile(r'^(?P<title>.+?)\s+by\s+(?P<artist>.+)$', re.IGNORECASE)

PREMADE_LABELS = (
    'workout', 'gym', 'running', 'cardio', 'roadtrip', 'road trip', 'study',
    'studying', 'party', 'chill', 'focus', 'energy', 'sleep', 'dinner',
    'morning', 'commute',
)
_PREMADE_RE = re.compile(
    r'\b(?P<label>' + '|'.join(re.escape(p) for p in PREMADE_LABELS) + r')\b',
    re.IGNORECASE)


def _clean_name(raw):
    name = _COUNT_RE.sub('', raw or '')
    name = _FILLER_RE.sub('', name.strip())
    name = _TRAILING_RE.sub('', name.strip())
    return name.strip(' "\'“”‘’-')


def _earliest(text, *patterns):
    matches = [m for m in (p.search(text) for p in patterns) if m]
    return min(matches, key=lambda m: m.start()) if matches else None


def _looks_like_artist(name):
    # Proper names are capitalised in chat; genres usually are not
    return any(word[:1].isupper() for word in name.split())


def _similar_intent(raw, name, premade):
    styles = [premade] if premade else []
    quoted = _QUOTED_RE.search(raw)
    song_by = _SONG_BY_RE.match(name)
    song_word = re.match(r'^(?:the\s+)?(?:song|track)\s+', name, re.IGNORECASE)
    if quoted or song_by or song_word:
        artists = []
        if quoted:
            title = quoted.group('title') or quoted.group('single')
        elif song_by:
            title = _clean_name(song_by.group('title'))
            artists = [_clean_name(song_by.group('artist'))]
        else:
            title = name[song_word.end():]
        return PlaylistIntent(Strategy.SIMILAR_TO_STYLE, artist_names=artists,
                              track_names=[title.strip()], style_hints=styles)
    if _looks_like_artist(name):
        return PlaylistIntent(Strategy.SIMILAR_TO_ARTIST, artist_names=[name],
                              style_hints=styles)
    return PlaylistIntent(Strategy.SIMILAR_TO_STYLE, style_hints=[name] + styles)


def heuristic_intent(text):
    """Keyword-regex classification of a free-text request.

    Coverage is deliberately narrow; the completion model is the primary
    classifier. Used when the INTENT line is missing or malformed, and to
    stop a model reply from seeding a named-artist/style request with the
    user's personal taste.
    """
    text = _NAMING_RE.sub('', text or '')
    premade_match = _PREMADE_RE.search(text)
    premade = premade_match.group('label').lower() if premade_match else None

    catalog = _ARTIST_CATALOG_RE.search(text) or _ARTIST_SONGS_RE.search(text)
    similar = _earliest(text, _SIMILAR_RE, _LIKE_RE)
    # "similar to songs by X" is a style request, not a catalog one
    if catalog and not (similar and similar.start() < catalog.start()):
        name = _clean_name(catalog.group('name'))
        # "playlist of chill songs" names a mood, "songs by drake" always an artist
        by_artist = (catalog.groupdict().get('prep') or '').lower() == 'by'
        if name and (by_artist or _looks_like_artist(name)):
            return PlaylistIntent(Strategy.ARTIST_CATALOG, artist_names=[name],
                                  style_hints=[premade] if premade else [])

    for m in (_earliest(text, _SIMILAR_RE, _LIKE_RE), _STYLE_SUFFIX_RE.search(text)):
        if not m:
            continue
        raw = m.group('name').strip()
        # "like a workout playlist" names nothing
        if re.match(r'^(?:a|an|to|it|that|this)\b', raw, re.IGNORECASE):
            continue
        name = _clean_name(raw)
        if name and (not premade or name.lower() != premade):
            return _similar_intent(raw, name, premade)

    if premade:
        return PlaylistIntent(Strategy.PREMADE_VIBE, style_hints=[premade])
    return PlaylistIntent(Strategy.USE_USER_TASTE)


def enforce_seeding_rules(model_intent, fallback):
    """Combine the model's intent with the heuristic one.

    A request the heuristics recognise as named-artist or style-seeded never
    ends up taste-seeded, whatever the model said.
    """
    if model_intent is None:
        return fallback
    if fallback.strategy.uses_taste:
        return model_intent
    if model_intent.strategy.uses_taste:
        log.info(f'Overriding model strategy {model_intent.strategy.value} '
                 f'with {fallback.strategy.value}')
        return PlaylistIntent(
            strategy=fallback.strategy,
            artist_names=fallback.artist_names or model_intent.artist_names,
            track_names=fallback.track_names or model_intent.track_names,
            style_hints=_merge(fallback.style_hints, model_intent.style_hints),
        )
    return PlaylistIntent(
        strategy=model_intent.strategy,
        artist_names=model_intent.artist_names or fallback.artist_names,
        track_names=model_intent.track_names or fallback.track_names,
        style_hints=model_intent.style_hints or fallback.style_hints,
    )


def _merge(first, second):
    seen = set()
    merged = []
    for item in list(first) + list(second):
        if item.lower() not in seen:
            seen.add(item.lower())
            merged.append(item)
    return merged


# ─── Reply parsing ───────────────────────────────────────────────────────────

def parse_intent_line(text):
    """PlaylistIntent from the INTENT line, or None if absent/malformed."""
    m = INTENT_LINE_RE.search(text or '')
    if not m:
        return None
    try:
        return PlaylistIntent.from_dict(json.loads(m.group('body')))
    except (json.JSONDecodeError, ValidationFailure) as e:
        log.warning(f'Ignoring malformed intent line: {e}')
        return None


def parse_create_line(text, request_text=''):
    """PendingCreation from the CREATE_PLAYLIST line.

    Returns None when no creation marker is present. Raises ValidationFailure
    when the marker is there but the line is malformed or the count is
    outside 1-100.
    """
    if not CREATE_MARKER_RE.search(text or ''):
        return None
    m = CREATE_LINE_RE.search(text)
    if not m:
        raise ValidationFailure('Creation line must be "CREATE_PLAYLIST: <name> | SONGS: <number>"')
    name = m.group('name').strip().strip('[]"“”\'')
    return PendingCreation(playlist_name=name,
                           target_song_count=int(m.group('count')),
                           request_text=request_text)


def strip_control_lines(text):
    return CONTROL_LINE_RE.sub('', text or '').strip()


def request_text_from(history, message):
    """What the user has asked for since the last playlist was made, oldest first."""
    start = 0
    for i, turn in enumerate(history):
        if turn.role == 'assistant' and CREATED_TURN_RE.search(turn.text):
            start = i + 1
    parts = [t.text.strip() for t in history[start:] if t.role == 'user' and t.text.strip()]
    if message and message.strip():
        parts.append(message.strip())
    return '\n'.join(parts)


def _render_history(history):
    return '\n'.join(f'{t.role}: {t.text}' for t in history)


class IntentClassifier:
    """Turns one chat message into an assistant reply plus a structured intent."""

    max_output_tokens = 1000
    temperature = 0.7

    def __init__(self, ai):
        self.ai = ai

    def build_prompt(self, message, history, taste):
        return PROMPT_CHAT.format(
            taste=taste.render() if taste is not None else '(not available)',
            history=_render_history(history) or '(none yet)',
            message=message,
        )

    def classify(self, message, history=(), taste=None):
        """Classify the newest message in the context of the conversation.

        Args:
            message: The user's new chat message
            history: Prior ConversationTurn objects (or role/content dicts)
            taste: TasteContext or None

        Returns:
            ClassificationResult. ready_to_create is only True when the model
            produced a well-formed CREATE_PLAYLIST line with a count in 1-100.
        """
        history = [t if isinstance(t, ConversationTurn) else ConversationTurn.from_dict(t)
                   for t in history]
        instructions = self.build_prompt(message, history, taste)
        text = self.ai.complete(
            instructions,
            [{'role': 'user', 'content': message}],
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
        )
        log.info(f'AI Response: "{text}"')

        request_text = request_text_from(history, message)
        intent = enforce_seeding_rules(parse_intent_line(text),
                                       heuristic_intent(request_text))
        reply = strip_control_lines(text)

        try:
            pending = parse_create_line(text, request_text)
        except ValidationFailure as e:
            log.warning(f'Rejected playlist creation line: {e}')
            return ClassificationResult(intent=intent, reply=REPROMPT)

        if pending is None:
            return ClassificationResult(intent=intent, reply=reply or NO_REPLY)

        log.info(f'AI wants to create playlist: "{pending.playlist_name}" '
                 f'with {pending.target_song_count} songs ({intent.strategy.value})')
        reply = reply or (f'Creating "{pending.playlist_name}" with '
                          f'{pending.target_song_count} songs...')
        return ClassificationResult(intent=intent, reply=reply,
                                    ready_to_create=True, pending=pending)
