"""
LLM Service - litellm-backed reasoning service.

Implements ReasoningServiceProtocol with model alias resolution, per-model
default parameters, retry with exponential backoff and native tool calling.
Errors are never raised to the caller; they come back as
``{"success": False, "error": ..., "error_type": ...}``.
"""

import asyncio
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import litellm
import structlog
import yaml

ALLOWED_PARAMS = ("temperature", "top_p", "max_tokens", "frequency_penalty", "presence_penalty")


@dataclass
class RetryPolicy:
    """Retry policy configuration."""

    max_attempts: int = 3
    backoff_multiplier: float = 2.0
    timeout: int = 30
    retry_on_errors: list[str] = field(default_factory=list)


class LLMService:
    """
    Centralized service for reasoning-service calls.

    Args:
        config_path: Path to the YAML configuration (models, params, retry policy)

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config is empty or defines no models
    """

    def __init__(self, config_path: str = "configs/llm_config.yaml"):
        self.logger = structlog.get_logger().bind(component="llm_service")
        self._load_config(config_path)
        self._check_api_key()

        self.logger.info(
            "llm_service_initialized",
            default_model=self.default_model,
            model_aliases=list(self.models.keys()),
        )

    def _load_config(self, config_path: str) -> None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"LLM config not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        self.default_model = config.get("default_model", "main")
        self.models: dict[str, str] = config.get("models", {})
        self.model_params: dict[str, dict[str, Any]] = config.get("model_params", {})
        self.default_params: dict[str, Any] = config.get("default_params", {})

        if not self.models:
            raise ValueError("Config must define at least one model in 'models' section")

        retry_config = config.get("retry_policy", {})
        self.retry_policy = RetryPolicy(
            max_attempts=retry_config.get("max_attempts", 3),
            backoff_multiplier=retry_config.get("backoff_multiplier", 2.0),
            timeout=retry_config.get("timeout", 30),
            retry_on_errors=retry_config.get("retry_on_errors", []),
        )

        self.logging_config = config.get("logging", {})
        self.provider_config = config.get("providers", {})

    def _check_api_key(self) -> None:
        openai_config = self.provider_config.get("openai", {})
        api_key_env = openai_config.get("api_key_env", "OPENAI_API_KEY")
        if not os.getenv(api_key_env):
            self.logger.warning(
                "api_key_missing",
                env_var=api_key_env,
                hint="Set environment variable for API access",
            )

    def _resolve_model(self, model_alias: str | None) -> str:
        """Resolve a model alias to the provider model name (unknown aliases pass through)."""
        if model_alias is None:
            model_alias = self.default_model
        resolved = self.models.get(model_alias, model_alias)
        self.logger.debug("model_resolved", model_alias=model_alias, resolved_model=resolved)
        return resolved

    def _get_model_parameters(self, model: str) -> dict[str, Any]:
        if model in self.model_params:
            return self.model_params[model].copy()

        # Model family match (e.g. "gpt-4" matches "gpt-4-turbo")
        for model_key, params in self.model_params.items():
            if model.startswith(model_key):
                return params.copy()

        return self.default_params.copy()

    @staticmethod
    def _extract_tool_calls(message: Any) -> list[dict[str, Any]] | None:
        raw_calls = getattr(message, "tool_calls", None)
        if not raw_calls:
            return None
        return [
            {
                "id": tc.id,
                "type": "function",
                "function": {
                    "name": tc.function.name,
                    "arguments": tc.function.arguments,
                },
            }
            for tc in raw_calls
        ]

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Perform a completion with retry logic.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model alias or None (uses default)
            tools: Function tool definitions (OpenAI format)
            tool_choice: Tool choice strategy ("auto", "required", ...)
            **kwargs: Additional parameters (temperature, max_tokens, etc.)

        Returns:
            Dict with:
            - success: bool
            - content: str | None (if successful)
            - tool_calls: list | None (if the model called functions)
            - usage: Dict with token counts
            - error / error_type: str (if failed)
        """
        actual_model = self._resolve_model(model)
        merged_params = {**self._get_model_parameters(actual_model), **kwargs}
        final_params = {k: v for k, v in merged_params.items() if k in ALLOWED_PARAMS}
        if tools:
            final_params["tools"] = tools
            if tool_choice is not None:
                final_params["tool_choice"] = tool_choice

        for attempt in range(self.retry_policy.max_attempts):
            try:
                start_time = time.time()
                self.logger.info(
                    "llm_completion_started",
                    model=actual_model,
                    attempt=attempt + 1,
                    message_count=len(messages),
                    tools=len(tools or []),
                )

                response = await litellm.acompletion(
                    model=actual_model,
                    messages=messages,
                    timeout=self.retry_policy.timeout,
                    **final_params,
                )

                message = response.choices[0].message
                usage = getattr(response, "usage", {})
                if isinstance(usage, dict):
                    token_stats = usage
                else:
                    token_stats = {
                        "total_tokens": getattr(usage, "total_tokens", 0),
                        "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                        "completion_tokens": getattr(usage, "completion_tokens", 0),
                    }

                latency_ms = int((time.time() - start_time) * 1000)
                if self.logging_config.get("log_token_usage", True):
                    self.logger.info(
                        "llm_completion_success",
                        model=actual_model,
                        tokens=token_stats.get("total_tokens", 0),
                        latency_ms=latency_ms,
                    )

                return {
                    "success": True,
                    "content": message.content,
                    "tool_calls": self._extract_tool_calls(message),
                    "usage": token_stats,
                    "model": actual_model,
                    "latency_ms": latency_ms,
                }

            except Exception as e:
                error_type = type(e).__name__
                error_msg = str(e)

                should_retry = attempt < self.retry_policy.max_attempts - 1 and any(
                    err_type in error_type or err_type in error_msg
                    for err_type in self.retry_policy.retry_on_errors
                )

                if should_retry:
                    backoff_time = self.retry_policy.backoff_multiplier**attempt
                    self.logger.warning(
                        "llm_completion_retry",
                        model=actual_model,
                        error_type=error_type,
                        attempt=attempt + 1,
                        backoff_seconds=backoff_time,
                    )
                    await asyncio.sleep(backoff_time)
                else:
                    self.logger.error(
                        "llm_completion_failed",
                        model=actual_model,
                        error_type=error_type,
                        error=error_msg[:200],
                        attempts=attempt + 1,
                    )
                    return {
                        "success": False,
                        "error": error_msg,
                        "error_type": error_type,
                        "model": actual_model,
                    }

        return {
            "success": False,
            "error": "Max retries exceeded",
            "error_type": "RetryExhausted",
            "model": actual_model,
        }
