"""
AI Client: text completions for the chat playlist builder.

OpenAI  → Responses API
Gemini  → google-genai SDK

The model is only ever asked for text. All structure (the CREATE_PLAYLIST
line, the INTENT line, the "Artist - Title" song list) is parsed by the
callers, never trusted from the provider.
"""

import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import OpenAI, OpenAIError

from .errors import CompletionError

log = logging.getLogger(__name__)

DEFAULT_MODEL = 'gpt-4o-mini'

# ─── Available models ────────────────────────────────────────────────────────
# Only models that accept a temperature setting are listed.

MODEL_CATALOG = {
    'openai': (
        ('gpt-4o-mini', 'GPT-4o Mini', 'Fast, cost-efficient default'),
        ('gpt-4o', 'GPT-4o', 'Most capable, slower and more expensive'),
        ('gpt-4.1-mini', 'GPT-4.1 Mini', 'Newer small model, good at following formats'),
    ),
    'gemini': (
        ('gemini-2.5-flash', 'Gemini 2.5 Flash', 'Fast and affordable'),
        ('gemini-2.5-pro', 'Gemini 2.5 Pro', 'Largest context window'),
    ),
}


class AIClient:
    """Multi-provider text-completion client.

    Build one per process and pass it to the components that need it.
    """

    def __init__(self, openai_api_key=None, gemini_api_key=None,
                 model=DEFAULT_MODEL, openai_client=None, gemini_client=None):
        self.openai_client = openai_client
        self.gemini_client = gemini_client
        self.model = model or DEFAULT_MODEL
        # Debug: track last request token usage
        self._last_usage = None

        if openai_api_key and not self.openai_client:
            self.openai_client = OpenAI(api_key=openai_api_key)
        if gemini_api_key and not self.gemini_client:
            self.gemini_client = genai.Client(api_key=gemini_api_key)

    # ─── Provider detection ──────────────────────────────────────────────

    def _clients(self):
        return {'openai': self.openai_client, 'gemini': self.gemini_client}

    def get_available_models(self):
        """Models whose provider has a client configured."""
        return [
            {'id': model_id, 'name': name, 'provider': provider, 'description': desc}
            for provider, client in self._clients().items() if client
            for model_id, name, desc in MODEL_CATALOG[provider]
        ]

    def verify_keys(self):
        """One cheap authenticated call per configured provider.

        Returns {provider: None if the key works, else a short error}.
        """
        checks = {
            'openai': lambda c: c.models.list(),
            'gemini': lambda c: c.models.list(config={'page_size': 1}),
        }
        results = {}
        for provider, client in self._clients().items():
            if not client:
                continue
            try:
                checks[provider](client)
                results[provider] = None
            except (OpenAIError, genai_errors.APIError) as e:
                log.warning(f'{provider} key check failed: {e}')
                results[provider] = str(e)[:120]
        return results

    def _get_provider(self, model):
        return 'gemini' if model.startswith('gemini') else 'openai'

    # ─── OpenAI Responses API ────────────────────────────────────────────

    def _call_openai_responses(self, instructions, messages, model,
                               max_output_tokens, temperature):
        response = self.openai_client.responses.create(
            model=model,
            instructions=instructions,
            input=messages,
            max_output_tokens=max_output_tokens,
            temperature=temperature,
        )

        if getattr(response, 'usage', None):
            self._last_usage = {
                'input_tokens': getattr(response.usage, 'input_tokens', 0),
                'output_tokens': getattr(response.usage, 'output_tokens', 0),
                'total_tokens': getattr(response.usage, 'total_tokens', 0),
            }
            log.info(f'Token usage: in={self._last_usage["input_tokens"]}, '
                     f'out={self._last_usage["output_tokens"]}, '
                     f'total={self._last_usage["total_tokens"]}')

        return response.output_text or ''

    # ─── Gemini ──────────────────────────────────────────────────────────

    def _call_gemini(self, instructions, messages, model, max_output_tokens,
                     temperature):
        contents = []
        for msg in messages:
            role = 'user' if msg['role'] == 'user' else 'model'
            contents.append(types.Content(
                role=role,
                parts=[types.Part.from_text(text=msg['content'])]
            ))

        config = types.GenerateContentConfig(
            system_instruction=instructions,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )
        response = self.gemini_client.models.generate_content(
            model=model, contents=contents, config=config,
        )

        usage = getattr(response, 'usage_metadata', None)
        if usage:
            self._last_usage = {
                'input_tokens': getattr(usage, 'prompt_token_count', 0),
                'output_tokens': getattr(usage, 'candidates_token_count', 0),
                'total_tokens': getattr(usage, 'total_token_count', 0),
            }
        return response.text or ''

    # ─── Unified dispatch ────────────────────────────────────────────────

    def complete(self, instructions, messages, max_output_tokens=1000,
                 temperature=0.7, model=None):
        """One text completion. Routes to the provider that owns the model.

        Args:
            instructions: System-level instructions string
            messages: List of {'role': 'user'|'assistant', 'content': str}
            max_output_tokens: Cap on generated tokens
            temperature: Sampling temperature

        Returns:
            The completion text (may be empty).

        Raises:
            CompletionError: provider failure or no provider for the model.
        """
        model = model or self.model
        provider = self._get_provider(model)

        try:
            if provider == 'gemini' and self.gemini_client:
                return self._call_gemini(instructions, messages, model,
                                         max_output_tokens, temperature)
            if provider == 'openai' and self.openai_client:
                return self._call_openai_responses(instructions, messages, model,
                                                   max_output_tokens, temperature)
        except (OpenAIError, genai_errors.APIError) as e:
            log.error(f'{provider} completion failed: {e}')
            raise CompletionError(f'{provider} completion failed: {e}') from e

        raise CompletionError(f'No AI provider configured for model {model!r}')
