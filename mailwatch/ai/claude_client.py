"""
Claude API Client

Thin wrapper around Anthropic's Python SDK for chat completions used by
mail triage. Clients are looked up per API key in a ClientCache and every
message list goes through fix_messages before it is sent.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from anthropic import Anthropic, APIError, RateLimitError as AnthropicRateLimitError

from ..core.config import LLMConfig
from ..core.exceptions import ConfigurationError, LLMAPIError, LLMRateLimitError
from .client_cache import ClientCache
from .messages import fix_messages


logger = logging.getLogger(__name__)


class ClaudeClient:
    """
    Claude chat completions with per-key client caching.

    Usage:
        cache = ClientCache(lambda key: Anthropic(api_key=key))
        client = ClaudeClient(config.llm, cache)
        response = client.chat_completion([{"role": "user", "content": "Hi"}])
    """

    def __init__(self, config: LLMConfig, cache: Optional[ClientCache] = None, max_retries: int = 3):
        """
        Args:
            config: LLMConfig with default API key, model and max_tokens
            cache: Client cache keyed by API key (created if not provided)
            max_retries: Retry attempts for rate limits and server errors
        """
        self.config = config
        self.cache = cache or ClientCache(lambda key: Anthropic(api_key=key))
        self.max_retries = max_retries

    def _get_client(self, api_key: Optional[str]) -> Anthropic:
        key = api_key or self.config.anthropic_api_key
        if not key:
            raise ConfigurationError("No Anthropic API key provided")
        return self.cache.get(key)

    def _create_with_retry(self, client: Anthropic, retry_count: int = 0, **kwargs):
        """
        Call messages.create, retrying rate limits and server errors with backoff.

        Raises:
            LLMRateLimitError: Rate limited after max retries
            LLMAPIError: Any other API failure
        """
        try:
            return client.messages.create(**kwargs)

        except AnthropicRateLimitError as e:
            if retry_count < self.max_retries:
                wait_time = min(2 ** retry_count * 10, 60)  # 10s, 20s, 40s, max 60s
                logger.warning(
                    f"Claude API rate limited, waiting {wait_time}s before retry "
                    f"{retry_count + 1}/{self.max_retries}: {e}"
                )
                time.sleep(wait_time)
                return self._create_with_retry(client, retry_count + 1, **kwargs)
            logger.error(f"Claude API rate limit exceeded after {self.max_retries} retries")
            raise LLMRateLimitError(f"Claude API rate limited after {self.max_retries} retries: {e}")

        except APIError as e:
            status_code = getattr(e, "status_code", None)
            is_server_error = status_code is not None and status_code >= 500
            is_overloaded = "overloaded" in str(e).lower()

            if (is_server_error or is_overloaded) and retry_count < self.max_retries:
                wait_time = min(2 ** retry_count * 5, 30)  # 5s, 10s, 20s, max 30s
                logger.warning(
                    f"Claude API server error, waiting {wait_time}s before retry "
                    f"{retry_count + 1}/{self.max_retries}: {e}"
                )
                time.sleep(wait_time)
                return self._create_with_retry(client, retry_count + 1, **kwargs)
            logger.error(f"Claude API error: {e}", exc_info=True)
            raise LLMAPIError(f"Claude API request failed: {e}")

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        system: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Run a deterministic (temperature 0) chat completion.

        Args:
            messages: {"role": "user"|"assistant", "content": str} dicts
            model: Model name (default from config)
            api_key: Caller's own key (default from config)
            system: Optional system prompt

        Returns:
            Dictionary with content, input_tokens, output_tokens, model, stop_reason
        """
        client = self._get_client(api_key)
        kwargs = {
            "model": model or self.config.anthropic_model,
            "max_tokens": self.config.max_tokens,
            "temperature": 0,
            "messages": fix_messages(messages),
        }
        if system:
            kwargs["system"] = system

        response = self._create_with_retry(client, **kwargs)
        content = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

        logger.info(
            f"Claude completion: {response.usage.input_tokens} in / {response.usage.output_tokens} out "
            f"({kwargs['model']})"
        )
        return {
            "content": content,
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
            "model": response.model,
            "stop_reason": response.stop_reason,
        }

    def chat_completion_stream(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        api_key: Optional[str] = None,
    ):
        """Streaming variant; returns the SDK's event stream."""
        client = self._get_client(api_key)
        return self._create_with_retry(
            client,
            model=model or self.config.anthropic_model,
            max_tokens=self.config.max_tokens,
            temperature=0,
            messages=fix_messages(messages),
            stream=True,
        )
