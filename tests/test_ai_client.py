from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.genai import errors as genai_errors
from openai import OpenAIError

from playlist_chat.ai_client import AIClient
from playlist_chat.errors import CompletionError


def _openai(text='Queen - Bohemian Rhapsody'):
    client = MagicMock()
    client.responses.create.return_value = SimpleNamespace(
        output_text=text,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5, total_tokens=15),
    )
    return client


def test_openai_completion():
    openai_client = _openai()
    ai = AIClient(openai_client=openai_client)

    text = ai.complete('Be a DJ', [{'role': 'user', 'content': 'one song'}],
                       max_output_tokens=500, temperature=0.8)

    assert text == 'Queen - Bohemian Rhapsody'
    kwargs = openai_client.responses.create.call_args.kwargs
    assert kwargs['model'] == 'gpt-4o-mini'
    assert kwargs['instructions'] == 'Be a DJ'
    assert kwargs['max_output_tokens'] == 500
    assert kwargs['temperature'] == 0.8
    assert ai._last_usage['total_tokens'] == 15


def test_gemini_completion():
    gemini_client = MagicMock()
    gemini_client.models.generate_content.return_value = SimpleNamespace(
        text='Daft Punk - One More Time', usage_metadata=None)
    ai = AIClient(gemini_client=gemini_client, model='gemini-2.5-flash')

    text = ai.complete('Be a DJ', [{'role': 'user', 'content': 'one song'},
                                   {'role': 'assistant', 'content': 'ok'}])

    assert text == 'Daft Punk - One More Time'
    kwargs = gemini_client.models.generate_content.call_args.kwargs
    assert kwargs['model'] == 'gemini-2.5-flash'
    assert [c.role for c in kwargs['contents']] == ['user', 'model']
    assert kwargs['config'].system_instruction == 'Be a DJ'
    assert kwargs['config'].temperature == 0.7


def test_empty_output_is_empty_string():
    ai = AIClient(openai_client=_openai(text=None))
    assert ai.complete('x', [{'role': 'user', 'content': 'y'}]) == ''


def test_provider_error_becomes_completion_error():
    openai_client = MagicMock()
    openai_client.responses.create.side_effect = OpenAIError('rate limited')
    ai = AIClient(openai_client=openai_client)

    with pytest.raises(CompletionError):
        ai.complete('x', [{'role': 'user', 'content': 'y'}])


def test_unconfigured_provider():
    ai = AIClient(openai_client=_openai(), model='gemini-2.5-pro')
    with pytest.raises(CompletionError):
        ai.complete('x', [{'role': 'user', 'content': 'y'}])


def test_available_models_follow_configured_providers():
    ai = AIClient(openai_client=_openai())
    providers = {m['provider'] for m in ai.get_available_models()}
    assert providers == {'openai'}


def test_verify_keys_reports_each_configured_provider():
    openai_client = _openai()
    gemini_client = MagicMock()
    gemini_client.models.list.side_effect = genai_errors.APIError(
        403, {'error': {'message': 'API key not valid', 'status': 'PERMISSION_DENIED'}})
    ai = AIClient(openai_client=openai_client, gemini_client=gemini_client)

    results = ai.verify_keys()

    assert results['openai'] is None
    assert 'API key not valid' in results['gemini']
    openai_client.models.list.assert_called_once()


def test_verify_keys_skips_unconfigured_providers():
    assert AIClient(openai_client=_openai()).verify_keys() == {'openai': None}
