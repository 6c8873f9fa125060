"""LLM Provider for the escalation service.

This module provides LLM initialization for the optional urgency assessor and
maps provider failures onto errors the intake path can report to users.
"""

import os
from typing import Any, Dict, Optional, cast

from escalation_config import LLMConfig
from escalation_config import LLMProvider as LLMProviderEnum
from langchain_core.language_models import BaseChatModel  # type: ignore[import-not-found]
from langchain_openai import ChatOpenAI  # type: ignore[import-not-found]

KONKO_BASE_URL = "https://api.konko.ai/v1"


class LLMProviderError(Exception):
    """Raised when there's an error with the LLM provider."""

    pass


class LLMQuotaExceededError(LLMProviderError):
    """Raised when the provider reports that credits are exhausted (HTTP 402)."""

    user_message = "AI credits exhausted, please add credits"


class LLMRateLimitedError(LLMProviderError):
    """Raised when the provider rate limits the request (HTTP 429)."""

    user_message = "Rate limited, please retry later"


def create_llm(config: LLMConfig) -> BaseChatModel:
    """Create and configure an LLM instance based on configuration.

    Args:
        config: LLM configuration

    Returns:
        Initialized LLM instance

    Raises:
        LLMProviderError: If provider is not supported
        ValueError: If API key is not found in environment variables
    """
    api_key = os.getenv(config.api_key_env_var)
    if not api_key:
        raise ValueError(
            f"API key not found in environment variable '{config.api_key_env_var}'. "
            f"Please set it before using the LLM provider."
        )

    params: Dict[str, Any] = {
        "model": config.model_name,
        "temperature": config.temperature,
        "api_key": api_key,
    }
    if config.max_tokens is not None:
        params["max_tokens"] = config.max_tokens

    if config.provider == LLMProviderEnum.KONKO:
        # OpenAI-compatible API
        params["base_url"] = config.base_url or KONKO_BASE_URL
    elif config.provider in (LLMProviderEnum.OPENAI, LLMProviderEnum.ANTHROPIC):
        if config.base_url:
            params["base_url"] = config.base_url
    else:
        raise LLMProviderError(f"Unsupported LLM provider: {config.provider}")

    return ChatOpenAI(**params)


def map_provider_error(error: Exception) -> LLMProviderError:
    """Translate an exception raised by the model client.

    Args:
        error: Exception from the underlying client

    Returns:
        LLMQuotaExceededError for HTTP 402, LLMRateLimitedError for HTTP 429,
        LLMProviderError otherwise
    """
    status_code = getattr(error, "status_code", None)
    if status_code is None:
        status_code = getattr(getattr(error, "response", None), "status_code", None)

    if status_code == 402:
        return LLMQuotaExceededError(LLMQuotaExceededError.user_message)
    if status_code == 429:
        return LLMRateLimitedError(LLMRateLimitedError.user_message)
    return LLMProviderError(f"Error invoking LLM: {str(error)}")


class LLMProvider:
    """LLM Provider wrapper with error handling and convenience methods."""

    def __init__(self, config: LLMConfig, llm: Optional[BaseChatModel] = None):
        """Initialize LLM Provider.

        Args:
            config: LLM configuration
            llm: Optional pre-built model (created lazily from config otherwise)
        """
        self.config = config
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        """Get or create LLM instance."""
        if self._llm is None:
            self._llm = create_llm(self.config)
        return self._llm

    def invoke(self, prompt: str) -> str:
        """Invoke LLM with a prompt and return the response.

        Args:
            prompt: Input prompt for the LLM

        Returns:
            LLM response as string

        Raises:
            LLMProviderError: If there's an error during invocation
        """
        try:
            response = self.llm.invoke(prompt)
            return cast(str, response.content)
        except Exception as e:
            raise map_provider_error(e) from e

    async def ainvoke(self, prompt: str) -> str:
        """Async invoke LLM with a prompt and return the response.

        Args:
            prompt: Input prompt for the LLM

        Returns:
            LLM response as string

        Raises:
            LLMProviderError: If there's an error during invocation
        """
        try:
            response = await self.llm.ainvoke(prompt)
            return cast(str, response.content)
        except Exception as e:
            raise map_provider_error(e) from e
