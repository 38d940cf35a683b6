"""Mistral chat-completion integration for aikanban.

Mistral exposes an OpenAI-compatible chat completions endpoint, so the client
is the OpenAI SDK pointed at the Mistral base URL. This module only sends
messages and returns the raw completion text; parsing belongs to the normalizer.
"""

import os
import logging
from typing import Dict, List, Optional
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError
from dotenv import load_dotenv

from aikanban.errors import ConfigurationError, RequestFailed
from aikanban.models.constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    MISTRAL_API_BASE,
    MISTRAL_MODEL,
    MISTRAL_TIMEOUT_SEC,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class MistralClient:
    """Client for the Mistral chat completions API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, model: Optional[str] = None):
        """Initialize Mistral client.

        Args:
            api_key: Mistral API key. If None, reads from MISTRAL_API_KEY environment variable.
            base_url: API base URL (defaults to MISTRAL_API_BASE)
            model: Model name (defaults to MISTRAL_MODEL)

        Note:
            A missing API key does not fail here. Each call raises ConfigurationError
            instead, so AI features degrade without taking the app down.
        """
        self.api_key = api_key or os.getenv("MISTRAL_API_KEY")
        self.model = model or MISTRAL_MODEL
        self.client = None

        if self.api_key:
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=base_url or MISTRAL_API_BASE,
                timeout=MISTRAL_TIMEOUT_SEC,
                max_retries=0,  # retry policy belongs to the caller
            )
        else:
            logger.warning("MISTRAL_API_KEY not found in environment. AI features will not be available.")

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        messages: List[Message],
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> str:
        """Send a role-tagged message list and return the generated text.

        Raises:
            ConfigurationError: If no API key is configured (checked before any network call)
            RequestFailed: On any transport or HTTP failure
        """
        if not self.client:
            raise ConfigurationError("Mistral API key is not configured")

        try:
            logger.debug(f"Sending {len(messages)} messages to {self.model}")
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except APIStatusError as e:
            # Don't log full error message as it might contain sensitive info
            if e.status_code == 429:
                logger.warning("Mistral API rate limit exceeded. Please wait before retrying.")
            else:
                logger.error(f"Mistral API error: {e.status_code}")
            raise RequestFailed(f"Mistral API error: {e.status_code}", status_code=e.status_code) from e
        except APIConnectionError as e:
            logger.error(f"Could not reach Mistral API: {type(e).__name__}")
            raise RequestFailed(f"Could not reach Mistral API: {type(e).__name__}") from e
        except APIError as e:
            logger.error(f"Mistral API error: {type(e).__name__}")
            raise RequestFailed(f"Mistral API error: {type(e).__name__}") from e

        if not response.choices:
            return ""
        content = response.choices[0].message.content or ""
        logger.debug(f"Mistral returned {len(content)} characters")
        return content
