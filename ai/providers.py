"""
AI provider integration (OpenAI chat completions).
"""
import logging

import openai
from django.core.exceptions import ImproperlyConfigured

from sites.conf import get_store_config

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOKENS = 2000


class AIProviderError(Exception):
    """The provider call failed or returned no text."""


class OpenAIProvider:

    name = 'openai'

    def __init__(self, api_key: str, model: str, client=None):
        if not api_key:
            raise ImproperlyConfigured('OPENAI_API_KEY is not set')
        self.model = model
        self.client = client or openai.OpenAI(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: str,
                 temperature: float = TEMPERATURE, max_tokens: int = MAX_TOKENS) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI call failed: {e}")
            raise AIProviderError(str(e)) from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise AIProviderError('OpenAI returned an empty response')
        return text


def get_provider() -> OpenAIProvider:
    config = get_store_config()
    return OpenAIProvider(config.openai_api_key, config.openai_model)
