"""Tests for LLM Provider module."""

import os
from unittest.mock import AsyncMock, Mock, patch

import pytest
from escalation_config import LLMConfig
from escalation_config import LLMProvider as LLMProviderEnum
from escalation_core import (
    LLMProvider,
    LLMProviderError,
    LLMQuotaExceededError,
    LLMRateLimitedError,
    create_llm,
)
from escalation_core.llm_provider import KONKO_BASE_URL, map_provider_error
from langchain_openai import ChatOpenAI


class StatusError(Exception):
    """Client error carrying an HTTP status, like the OpenAI SDK's APIStatusError."""

    def __init__(self, status_code: int):
        super().__init__(f"Error code: {status_code}")
        self.status_code = status_code


class TestCreateLLM:
    """Tests for create_llm function."""

    def test_create_openai_llm_success(self):
        """Test creating OpenAI LLM with valid config."""
        config = LLMConfig(provider=LLMProviderEnum.OPENAI, model_name="gpt-4o-mini")

        with patch.dict(os.environ, {"OPENAI_API_KEY": "test-key"}):
            llm = create_llm(config)

        assert isinstance(llm, ChatOpenAI)
        assert llm.model_name == "gpt-4o-mini"
        assert llm.temperature == 0.0

    def test_create_llm_missing_api_key(self):
        """Test creating LLM without API key raises error."""
        config = LLMConfig(api_key_env_var="MISSING_KEY")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                create_llm(config)

        assert "API key not found" in str(exc_info.value)
        assert "MISSING_KEY" in str(exc_info.value)

    def test_create_llm_with_max_tokens(self):
        """Test creating LLM with max_tokens specified."""
        config = LLMConfig(model_name="gpt-4o", max_tokens=16)

        with patch.dict(os.environ, {"OPENAI_API_KEY": "test-key"}):
            llm = create_llm(config)

        assert llm.max_tokens == 16

    def test_create_llm_with_base_url(self):
        """Test creating LLM with custom base URL."""
        config = LLMConfig(base_url="https://gateway.example.com/v1")

        with patch.dict(os.environ, {"OPENAI_API_KEY": "test-key"}):
            llm = create_llm(config)

        assert llm.openai_api_base == "https://gateway.example.com/v1"

    def test_konko_default_base_url(self):
        """Test Konko uses its OpenAI-compatible endpoint by default."""
        config = LLMConfig(provider=LLMProviderEnum.KONKO, api_key_env_var="KONKO_API_KEY")

        with patch.dict(os.environ, {"KONKO_API_KEY": "test-key"}):
            llm = create_llm(config)

        assert llm.openai_api_base == KONKO_BASE_URL


class TestMapProviderError:
    """Tests for provider error mapping."""

    def test_payment_required(self):
        """Test HTTP 402 maps to the quota error with its user message."""
        error = map_provider_error(StatusError(402))

        assert isinstance(error, LLMQuotaExceededError)
        assert str(error) == "AI credits exhausted, please add credits"

    def test_rate_limited(self):
        """Test HTTP 429 maps to the rate limit error."""
        error = map_provider_error(StatusError(429))

        assert isinstance(error, LLMRateLimitedError)
        assert "retry later" in str(error)

    def test_status_from_response(self):
        """Test the status is also read from an attached response."""
        exc = Exception("too many requests")
        exc.response = Mock(status_code=429)

        assert isinstance(map_provider_error(exc), LLMRateLimitedError)

    def test_other_errors(self):
        """Test everything else maps to the generic provider error."""
        error = map_provider_error(StatusError(500))

        assert type(error) is LLMProviderError
        assert "Error invoking LLM" in str(error)

    def test_subclasses_of_provider_error(self):
        """Test specific errors can be caught as LLMProviderError."""
        assert issubclass(LLMQuotaExceededError, LLMProviderError)
        assert issubclass(LLMRateLimitedError, LLMProviderError)


class TestLLMProvider:
    """Tests for LLMProvider class."""

    def test_llm_property_lazy_initialization(self):
        """Test LLM is created on first access and cached."""
        provider = LLMProvider(LLMConfig())

        assert provider._llm is None
        with patch.dict(os.environ, {"OPENAI_API_KEY": "test-key"}):
            llm1 = provider.llm
            llm2 = provider.llm

        assert isinstance(llm1, ChatOpenAI)
        assert llm1 is llm2

    def test_injected_llm(self):
        """Test a pre-built model is used as is."""
        model = Mock()
        provider = LLMProvider(LLMConfig(), llm=model)

        assert provider.llm is model

    def test_invoke_success(self):
        """Test successful LLM invocation."""
        model = Mock()
        model.invoke.return_value = Mock(content="0.7")
        provider = LLMProvider(LLMConfig(), llm=model)

        assert provider.invoke("prompt") == "0.7"
        model.invoke.assert_called_once_with("prompt")

    def test_invoke_error_handling(self):
        """Test error handling during invocation."""
        model = Mock()
        model.invoke.side_effect = Exception("API Error")
        provider = LLMProvider(LLMConfig(), llm=model)

        with pytest.raises(LLMProviderError) as exc_info:
            provider.invoke("prompt")

        assert "API Error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_ainvoke_success(self):
        """Test successful async LLM invocation."""
        model = Mock()
        model.ainvoke = AsyncMock(return_value=Mock(content="0.95"))
        provider = LLMProvider(LLMConfig(), llm=model)

        assert await provider.ainvoke("prompt") == "0.95"

    @pytest.mark.asyncio
    async def test_ainvoke_quota_exceeded(self):
        """Test a 402 from the model surfaces as LLMQuotaExceededError."""
        model = Mock()
        model.ainvoke = AsyncMock(side_effect=StatusError(402))
        provider = LLMProvider(LLMConfig(), llm=model)

        with pytest.raises(LLMQuotaExceededError):
            await provider.ainvoke("prompt")
