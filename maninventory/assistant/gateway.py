"""
Client for the hosted chat-completion gateway used by the assistant features.

One request per call, fixed timeout, no retries. Gateway errors are mapped
onto the UpstreamError family so views can answer with the right status.
"""
import os
import logging
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

from maninventory.core.exceptions import (
    ConfigurationError, UpstreamError, UpstreamParseError, UpstreamPaymentRequiredError,
    UpstreamRateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = 'https://ai.gateway.lovable.dev/v1/chat/completions'
DEFAULT_MODEL = 'google/gemini-2.5-flash'


class LLMGateway:
    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or getattr(settings, 'AI_GATEWAY_URL', os.getenv('AI_GATEWAY_URL', DEFAULT_GATEWAY_URL))
        self.api_key = api_key if api_key is not None else getattr(
            settings, 'AI_GATEWAY_API_KEY', os.getenv('AI_GATEWAY_API_KEY', '')
        )
        self.model = model or getattr(settings, 'AI_GATEWAY_MODEL', DEFAULT_MODEL)
        self.timeout = timeout or getattr(settings, 'AI_GATEWAY_TIMEOUT', 30)

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """
        Send a chat completion and return the text of the first choice.

        Raises:
            ConfigurationError: no API key configured
            UpstreamRateLimitError: gateway answered 429
            UpstreamPaymentRequiredError: gateway answered 402
            UpstreamError: any other non-2xx answer or transport failure
            UpstreamParseError: the answer has no message content
        """
        if not self.api_key:
            logger.error("AI gateway API key not configured")
            raise ConfigurationError()

        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }
        payload = {'model': self.model, 'messages': messages}

        try:
            response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(f"AI gateway timed out after {self.timeout}s")
            raise UpstreamError('AI service did not respond in time') from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"AI gateway request failed: {str(e)}")
            raise UpstreamError() from e

        if response.status_code == 429:
            raise UpstreamRateLimitError()
        if response.status_code == 402:
            raise UpstreamPaymentRequiredError()
        if not response.ok:
            logger.error(f"AI gateway error: {response.status_code} {response.text[:500]}")
            raise UpstreamError()

        try:
            data: Dict[str, Any] = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Invalid AI response structure")
            raise UpstreamParseError() from e
        if not content:
            raise UpstreamParseError('AI service returned an empty answer')
        return content
