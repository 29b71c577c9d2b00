import pytest

from playlist_chat.errors import CompletionError
from playlist_chat.models import (PendingCreation, PlaylistIntent, Strategy,
                                  SuggestedTrack, TasteContext)
from playlist_chat.suggestions import (FALLBACK_SONGS, SongSuggestionGenerator,
                                       fallback_songs, parse_song_lines)
from tests.support.fakes import FakeAI

TASTE = TasteContext(top_artists=['Daft Punk', 'Phoenix'],
                     top_tracks=['One More Time', '1901'])


def _songs(n, artist='Artist'):
    return '\n'.join(f'{artist} {i} - Song {i}' for i in range(1, n + 1))


def _pending(count, request='Something good', name='Test Mix'):
    return PendingCreation(playlist_name=name, target_song_count=count,
                           request_text=request)


def test_parse_song_lines_tolerates_list_formatting():
    text = ('1. Queen - Bohemian Rhapsody\n'
            '\n'
            '- Daft Punk – One More Time\n'
            '3) "Phoenix - 1901"\n'
            'Here are your songs:\n'
            'AC/DC - Back In Black')

    assert parse_song_lines(text) == [
        SuggestedTrack('Queen', 'Bohemian Rhapsody'),
        SuggestedTrack('Daft Punk', 'One More Time'),
        SuggestedTrack('Phoenix', '1901'),
        SuggestedTrack('AC/DC', 'Back In Black'),
    ]


def test_parse_song_lines_keeps_hyphenated_titles():
    assert parse_song_lines('Jay-Z - 99 Problems\nThe Who - Baba O-Riley') == [
        SuggestedTrack('Jay-Z', '99 Problems'),
        SuggestedTrack('The Who', 'Baba O-Riley'),
    ]


@pytest.mark.parametrize('strategy', [Strategy.ARTIST_CATALOG,
                                      Strategy.SIMILAR_TO_ARTIST,
                                      Strategy.SIMILAR_TO_STYLE])
def test_named_requests_never_see_taste_context(strategy):
    ai = FakeAI(_songs(5))
    intent = PlaylistIntent(strategy, artist_names=['Arctic Monkeys'])

    SongSuggestionGenerator(ai).generate(_pending(5), intent, TASTE)

    prompt = ai.prompt_text(0)
    assert 'Arctic Monkeys' in prompt
    for name in TASTE.top_artists + TASTE.top_tracks:
        assert name not in prompt
    assert "User's Top Artists" not in prompt


@pytest.mark.parametrize('strategy', [Strategy.USE_USER_TASTE, Strategy.PREMADE_VIBE])
def test_taste_strategies_include_taste_context(strategy):
    ai = FakeAI(_songs(3))

    SongSuggestionGenerator(ai).generate(_pending(3), PlaylistIntent(strategy), TASTE)

    assert 'Daft Punk, Phoenix' in ai.prompt_text(0)


def test_premade_vibe_with_style_uses_taste_as_tiebreaker():
    ai = FakeAI(_songs(3))
    intent = PlaylistIntent(Strategy.PREMADE_VIBE, style_hints=['workout'])

    SongSuggestionGenerator(ai).generate(_pending(3), intent, TASTE)

    assert 'tiebreaker' in ai.prompt_text(0)


def test_generate_requests_exact_count():
    ai = FakeAI(_songs(15))

    songs = SongSuggestionGenerator(ai).generate(_pending(15))

    assert len(songs) == 15
    assert len(ai.calls) == 1
    assert 'exactly 15 song suggestions' in ai.prompt_text(0)
    assert ai.calls[0]['temperature'] == 0.8
    assert ai.calls[0]['max_output_tokens'] == 1000


def test_generate_trims_over_supply():
    ai = FakeAI(_songs(12))
    songs = SongSuggestionGenerator(ai).generate(_pending(10))
    assert len(songs) == 10
    assert songs[-1] == SuggestedTrack('Artist 10', 'Song 10')


def test_generate_tops_up_shortfall_once():
    ai = FakeAI(_songs(6), _songs(4, artist='More'))

    songs = SongSuggestionGenerator(ai).generate(_pending(10))

    assert len(songs) == 10
    assert songs[6] == SuggestedTrack('More 1', 'Song 1')
    assert len(ai.calls) == 2
    assert ai.calls[1]['max_output_tokens'] == 500
    assert 'Generate 4 more song suggestions' in ai.prompt_text(1)


def test_generate_accepts_short_list_after_one_top_up():
    ai = FakeAI(_songs(6), _songs(1, artist='More'), _songs(10, artist='Never'))

    songs = SongSuggestionGenerator(ai).generate(_pending(10))

    assert len(songs) == 7
    assert len(ai.calls) == 2


@pytest.mark.parametrize('target', [1, 3, 5, 20, 100])
def test_fallback_list_is_fixed_and_truncated(target):
    expected = list(FALLBACK_SONGS[:min(target, len(FALLBACK_SONGS))])
    assert fallback_songs(target) == expected
    assert fallback_songs(target) == fallback_songs(target)


@pytest.mark.parametrize('target', [3, 5])
def test_empty_completion_falls_back(target):
    first = SongSuggestionGenerator(FakeAI('')).generate(_pending(target))
    second = SongSuggestionGenerator(FakeAI('   \n\n')).generate(_pending(target))

    assert first == second == fallback_songs(target)


def test_empty_completion_for_twenty_makes_one_supplementary_call():
    ai = FakeAI('', '')

    songs = SongSuggestionGenerator(ai).generate(_pending(20))

    assert songs == list(FALLBACK_SONGS)
    assert len(ai.calls) == 2


def test_first_completion_failure_propagates():
    ai = FakeAI(CompletionError('openai completion failed: timeout'))
    with pytest.raises(CompletionError):
        SongSuggestionGenerator(ai).generate(_pending(5))


def test_supplementary_failure_keeps_what_we_have():
    ai = FakeAI(_songs(3), CompletionError('openai completion failed: 500'))

    songs = SongSuggestionGenerator(ai).generate(_pending(5))

    assert len(songs) == 3
