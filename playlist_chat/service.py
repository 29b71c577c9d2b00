"""
Request orchestration.

Chat turn:  token → taste context → intent classifier
Creation:   token → intent → (taste context) → song suggestions → materializer
"""

import logging

from .errors import (CompletionError, ReauthenticationRequired, SpotifyApiError,
                     ValidationFailure)
from .intent import IntentClassifier, heuristic_intent
from .materializer import PlaylistMaterializer
from .spotify_client import SpotifyGateway, fetch_taste_context
from .suggestions import SongSuggestionGenerator

log = logging.getLogger(__name__)


class PlaylistService:
    """Wires the pipeline components together for one app instance.

    Args:
        ai: AIClient (anything with complete())
        refresher: TokenRefresher
        gateway_factory: Callable access_token -> SpotifyGateway
        materializer: PlaylistMaterializer; built from gateway_factory if omitted
    """

    def __init__(self, ai, refresher, gateway_factory=SpotifyGateway, materializer=None):
        self.refresher = refresher
        self.gateway_factory = gateway_factory
        self.classifier = IntentClassifier(ai)
        self.generator = SongSuggestionGenerator(ai)
        self.materializer = materializer or PlaylistMaterializer(gateway_factory)

    def taste_for(self, access_token):
        return fetch_taste_context(self.gateway_factory(access_token))

    def chat(self, credential, message, history=()):
        """One conversational turn. Returns a ClassificationResult."""
        token = self.refresher.get_valid_access_token(credential)
        taste = self.taste_for(token)
        return self.classifier.classify(message, history, taste)

    def create_playlist(self, credential, pending, intent=None, access_token=None):
        """Generate suggestions for a confirmed request and materialize them.

        An explicit access_token skips the credential refresh entirely.
        """
        token = access_token or self.refresher.get_valid_access_token(credential)

        if intent is None:
            intent = heuristic_intent(pending.request_text)
        log.info(f'Creating playlist: "{pending.playlist_name}" with '
                 f'{pending.target_song_count} songs ({intent.strategy.value})')

        taste = None
        if intent.strategy.uses_taste:
            taste = self.taste_for(token)
        else:
            log.info('Named artist/style request, not using personal taste')

        songs = self.generator.generate(pending, intent, taste)
        return self.materializer.materialize(pending, songs, token)


def status_for_error(exc):
    """HTTP status for an exception raised anywhere in the pipeline."""
    if isinstance(exc, ReauthenticationRequired):
        return 401
    if isinstance(exc, ValidationFailure):
        return 400
    if isinstance(exc, SpotifyApiError):
        if exc.status in (401, 403, 404, 429):
            return exc.status
        return 502
    if isinstance(exc, CompletionError):
        return 502

    message = str(exc)
    for code in (401, 403, 404):
        if str(code) in message:
            return code
    return 500
