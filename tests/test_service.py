import pytest

from playlist_chat.errors import (CompletionError, ReauthenticationRequired,
                                  SpotifyApiError, TrackAttachError,
                                  ValidationFailure)
from playlist_chat.models import Credential, PendingCreation, PlaylistIntent, Strategy
from playlist_chat.service import PlaylistService, status_for_error
from playlist_chat.token_store import TokenRefresher
from tests.support.fakes import FakeClock, FakeOAuth


def _songs(n):
    return '\n'.join(f'Band {i} - Tune {i}' for i in range(1, n + 1))


@pytest.fixture
def oauth():
    return FakeOAuth()


@pytest.fixture
def service(fake_ai, oauth, gateway_factory):
    refresher = TokenRefresher(oauth, clock=FakeClock(1000))
    return PlaylistService(fake_ai, refresher, gateway_factory=gateway_factory)


@pytest.fixture
def credential():
    return Credential(access_token='access-1', refresh_token='refresh-1', expires_at=5000)


@pytest.mark.parametrize('exc, status', [
    (ReauthenticationRequired('sign in'), 401),
    (ValidationFailure('bad count'), 400),
    (SpotifyApiError(401, 'expired'), 401),
    (SpotifyApiError(403, 'forbidden'), 403),
    (SpotifyApiError(404, 'gone'), 404),
    (SpotifyApiError(429, 'slow down'), 429),
    (SpotifyApiError(500, 'boom'), 502),
    (SpotifyApiError(None, 'no route to host'), 502),
    (TrackAttachError(403, 'no'), 403),
    (CompletionError('provider down'), 502),
    (RuntimeError('upstream said 404 not found'), 404),
    (RuntimeError('something else'), 500),
])
def test_status_for_error(exc, status):
    assert status_for_error(exc) == status


def test_similar_request_skips_taste(service, fake_ai, spotify, credential):
    fake_ai.script(_songs(15))
    pending = PendingCreation('AM Vibes', 15,
                              request_text='I want Arctic Monkeys style, 15 songs, name it AM Vibes')

    created = service.create_playlist(credential, pending)

    assert created.name == 'AM Vibes'
    assert created.tracks_requested_count == 15
    assert created.tracks_added_count == 15
    assert 'top_artists' not in spotify.calls
    assert 'top_tracks' not in spotify.calls
    assert 'exactly 15 song suggestions' in fake_ai.prompt_text(0)
    assert 'Daft Punk' not in fake_ai.prompt_text(0)


def test_taste_request_uses_taste(service, fake_ai, spotify, credential):
    fake_ai.script(_songs(3))
    pending = PendingCreation('Mood', 3, request_text='songs for my mood')

    service.create_playlist(credential, pending,
                            PlaylistIntent(Strategy.USE_USER_TASTE))

    assert 'top_artists' in spotify.calls
    assert 'Daft Punk' in fake_ai.prompt_text(0)


def test_supplied_intent_wins_over_heuristic(service, fake_ai, spotify, credential):
    fake_ai.script(_songs(2))
    pending = PendingCreation('Drake', 2, request_text='make me something nice')

    service.create_playlist(credential, pending,
                            PlaylistIntent(Strategy.ARTIST_CATALOG, artist_names=['Drake']))

    assert 'top_artists' not in spotify.calls
    assert 'APPROACH: SPECIFIC ARTIST ONLY' in fake_ai.prompt_text(0)


def test_expired_credential_is_refreshed_before_spotify_calls(service, fake_ai, oauth,
                                                              gateway_factory):
    fake_ai.script(_songs(1))
    credential = Credential('old-token', 'refresh-1', expires_at=10)

    service.create_playlist(credential, PendingCreation('Fresh', 1, 'songs by Muse'))

    assert oauth.refresh_calls == ['refresh-1']
    assert set(gateway_factory.tokens) == {'refreshed-token'}


def test_explicit_access_token_skips_refresh(service, fake_ai, oauth, gateway_factory):
    fake_ai.script(_songs(1))

    service.create_playlist(None, PendingCreation('Direct', 1, 'songs by Muse'),
                            access_token='explicit-token')

    assert oauth.refresh_calls == []
    assert gateway_factory.tokens == ['explicit-token']


def test_failed_refresh_stops_the_pipeline(fake_ai, gateway_factory, spotify):
    refresher = TokenRefresher(FakeOAuth(),
                               clock=FakeClock(1000))
    service = PlaylistService(fake_ai, refresher, gateway_factory=gateway_factory)
    credential = Credential('old', '', expires_at=10)

    with pytest.raises(ReauthenticationRequired):
        service.create_playlist(credential, PendingCreation('Nope', 5))

    assert fake_ai.calls == []
    assert spotify.calls == []


def test_chat_fetches_taste_for_the_prompt(service, fake_ai, spotify, credential):
    fake_ai.script('What should we call it?')

    result = service.chat(credential, 'a party playlist', [])

    assert result.reply == 'What should we call it?'
    assert 'top_artists' in spotify.calls
    assert 'Daft Punk' in fake_ai.calls[0]['instructions']
