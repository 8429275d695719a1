"""
Unit tests for LLMService.

Tests cover:
- Configuration loading
- Model alias resolution and parameter selection
- Completion with and without tool calls
- Retry logic and error results
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from theia.infrastructure.llm.llm_service import LLMService


@pytest.fixture
def mock_config(tmp_path):
    """Create temporary config file."""
    config_content = """
default_model: "main"
models:
  main: "gpt-4.1"
  fast: "gpt-4.1-mini"
model_params:
  gpt-4.1:
    temperature: 0.2
    max_tokens: 2000
default_params:
  temperature: 0.7
  max_tokens: 1000
retry_policy:
  max_attempts: 3
  backoff_multiplier: 2
  timeout: 30
  retry_on_errors:
    - "RateLimitError"
providers:
  openai:
    api_key_env: "OPENAI_API_KEY"
logging:
  log_token_usage: true
"""
    config_file = tmp_path / "llm_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return str(config_file)


def _response(content="ok", tool_calls=None):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].message.tool_calls = tool_calls
    response.usage = {"total_tokens": 10, "prompt_tokens": 6, "completion_tokens": 4}
    return response


class RateLimitError(Exception):
    pass


class TestConfiguration:
    def test_init_loads_config(self, mock_config):
        """Test that initialization loads config successfully."""
        service = LLMService(config_path=mock_config)
        assert service.default_model == "main"
        assert service.models["fast"] == "gpt-4.1-mini"
        assert service.retry_policy.max_attempts == 3
        assert service.retry_policy.retry_on_errors == ["RateLimitError"]

    def test_missing_config_raises(self):
        with pytest.raises(FileNotFoundError):
            LLMService(config_path="nonexistent.yaml")

    def test_empty_config_raises(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("", encoding="utf-8")
        with pytest.raises(ValueError, match="empty or invalid"):
            LLMService(config_path=str(config_file))

    def test_config_without_models_raises(self, tmp_path):
        config_file = tmp_path / "no_models.yaml"
        config_file.write_text("default_model: main\n", encoding="utf-8")
        with pytest.raises(ValueError, match="at least one model"):
            LLMService(config_path=str(config_file))


class TestModelSelection:
    def test_resolve_alias(self, mock_config):
        service = LLMService(config_path=mock_config)
        assert service._resolve_model("fast") == "gpt-4.1-mini"
        assert service._resolve_model(None) == "gpt-4.1"
        assert service._resolve_model("claude-x") == "claude-x"

    def test_model_parameters(self, mock_config):
        service = LLMService(config_path=mock_config)
        assert service._get_model_parameters("gpt-4.1")["temperature"] == 0.2
        # family match
        assert service._get_model_parameters("gpt-4.1-mini")["max_tokens"] == 2000
        assert service._get_model_parameters("other")["temperature"] == 0.7


class TestCompletion:
    @pytest.mark.asyncio
    async def test_successful_completion(self, mock_config):
        service = LLMService(config_path=mock_config)

        with patch(
            "litellm.acompletion", new_callable=AsyncMock, return_value=_response("Hello")
        ) as mock_call:
            result = await service.complete(
                messages=[{"role": "user", "content": "Hi"}], model="main", temperature=0
            )

        assert result["success"] is True
        assert result["content"] == "Hello"
        assert result["tool_calls"] is None
        assert result["usage"]["total_tokens"] == 10
        kwargs = mock_call.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1"
        assert kwargs["temperature"] == 0
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_calls_are_extracted(self, mock_config):
        service = LLMService(config_path=mock_config)
        call = MagicMock()
        call.id = "call_1"
        call.function.name = "submit_plan"
        call.function.arguments = '{"steps": []}'
        tools = [{"type": "function", "function": {"name": "submit_plan", "parameters": {}}}]

        with patch(
            "litellm.acompletion",
            new_callable=AsyncMock,
            return_value=_response(None, tool_calls=[call]),
        ) as mock_call:
            result = await service.complete(
                messages=[{"role": "user", "content": "plan"}], tools=tools, tool_choice="auto"
            )

        assert result["tool_calls"] == [
            {
                "id": "call_1",
                "type": "function",
                "function": {"name": "submit_plan", "arguments": '{"steps": []}'},
            }
        ]
        assert mock_call.call_args.kwargs["tool_choice"] == "auto"
        assert mock_call.call_args.kwargs["tools"] == tools

    @pytest.mark.asyncio
    async def test_unknown_parameters_are_dropped(self, mock_config):
        service = LLMService(config_path=mock_config)

        with patch(
            "litellm.acompletion", new_callable=AsyncMock, return_value=_response()
        ) as mock_call:
            await service.complete(messages=[], reasoning_effort="high")

        assert "reasoning_effort" not in mock_call.call_args.kwargs

    @pytest.mark.asyncio
    async def test_retry_on_rate_limit(self, mock_config):
        """Test that retryable errors are retried with backoff."""
        service = LLMService(config_path=mock_config)
        attempts = {"n": 0}

        async def mock_acompletion(*args, **kwargs):
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise RateLimitError("slow down")
            return _response("finally")

        with patch("litellm.acompletion", side_effect=mock_acompletion), patch(
            "theia.infrastructure.llm.llm_service.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await service.complete(messages=[{"role": "user", "content": "x"}])

        assert result["success"] is True
        assert result["content"] == "finally"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_failure_after_max_retries(self, mock_config):
        service = LLMService(config_path=mock_config)

        async def mock_acompletion(*args, **kwargs):
            raise RateLimitError("slow down")

        with patch("litellm.acompletion", side_effect=mock_acompletion), patch(
            "theia.infrastructure.llm.llm_service.asyncio.sleep", new_callable=AsyncMock
        ):
            result = await service.complete(messages=[])

        assert result["success"] is False
        assert result["error_type"] == "RateLimitError"

    @pytest.mark.asyncio
    async def test_no_retry_on_non_retryable_error(self, mock_config):
        service = LLMService(config_path=mock_config)
        attempts = {"n": 0}

        async def mock_acompletion(*args, **kwargs):
            attempts["n"] += 1
            raise ValueError("bad request")

        with patch("litellm.acompletion", side_effect=mock_acompletion):
            result = await service.complete(messages=[])

        assert attempts["n"] == 1
        assert result == {
            "success": False,
            "error": "bad request",
            "error_type": "ValueError",
            "model": "gpt-4.1",
        }
