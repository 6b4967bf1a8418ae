"""
LLM text generation service.
Supports both Anthropic Direct API and AWS Bedrock.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Literal

import anthropic
from anthropic import Anthropic

from core.config import settings
from core.exceptions import ErrorCode, ExternalServiceError

logger = logging.getLogger(__name__)


class AiError(ExternalServiceError):
    """Base class for LLM failures"""

    default_error_code = ErrorCode.AI_SERVICE_UNAVAILABLE

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("service_name", "ai")
        super().__init__(message, **kwargs)


class AiConfigurationError(AiError):
    """No provider credentials are configured"""

    http_status = 503
    log_level = logging.ERROR


class AiRateLimitError(AiError):
    http_status = 429
    default_error_code = ErrorCode.AI_RATE_LIMIT_EXCEEDED

    def __init__(self, message: str = "AI provider rate limit exceeded", retry_after: int | None = None, **kwargs):
        self.retry_after = retry_after
        details = kwargs.pop("details", {})
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details=details, **kwargs)


class AiApiError(AiError):
    default_error_code = ErrorCode.AI_INVALID_RESPONSE


class AIService:
    """
    AI service supporting both Anthropic Direct API and AWS Bedrock.

    Automatically selects provider based on configuration:
    - If ANTHROPIC_API_KEY is set: uses Anthropic Direct API
    - If AWS credentials are set: uses AWS Bedrock
    - Priority: Anthropic Direct API > AWS Bedrock
    """

    def __init__(self) -> None:
        self._initialized = False
        self._anthropic_client: Anthropic | None = None
        self._bedrock_client: Any = None  # boto3 client
        self._provider: Literal["anthropic", "bedrock", "none"] = "none"
        self._anthropic_model_id = settings.ANTHROPIC_MODEL_ID
        self._bedrock_model_id = settings.BEDROCK_MODEL_ID

    async def initialize(self) -> None:
        if self._initialized:
            return

        self._provider = self._detect_provider()

        if self._provider == "anthropic":
            logger.info("Using Anthropic Direct API")
        elif self._provider == "bedrock":
            logger.info("Using AWS Bedrock")
            await self._initialize_bedrock()
        else:
            logger.warning("No AI provider configured (neither ANTHROPIC_API_KEY nor AWS credentials)")

        self._initialized = True
        logger.info("AIService initialized")

    async def close(self) -> None:
        self._initialized = False
        self._anthropic_client = None
        self._bedrock_client = None

    def is_ready(self) -> bool:
        return self._initialized and self._provider != "none"

    @property
    def provider(self) -> str:
        """Current AI provider: 'anthropic', 'bedrock', or 'none'"""
        return self._provider

    @property
    def model_id(self) -> str | None:
        if self._provider == "anthropic":
            return self._anthropic_model_id
        if self._provider == "bedrock":
            return self._bedrock_model_id
        return None

    def _detect_provider(self) -> Literal["anthropic", "bedrock", "none"]:
        if settings.ANTHROPIC_API_KEY and settings.ANTHROPIC_API_KEY.strip():
            return "anthropic"

        if (
            settings.AWS_ACCESS_KEY_ID
            and settings.AWS_ACCESS_KEY_ID.strip()
            and settings.AWS_SECRET_ACCESS_KEY
            and settings.AWS_SECRET_ACCESS_KEY.strip()
        ):
            return "bedrock"

        return "none"

    async def _initialize_bedrock(self) -> None:
        """Initialize AWS Bedrock client."""
        import boto3

        self._bedrock_client = boto3.client(
            service_name="bedrock-runtime",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )
        logger.info("AWS Bedrock client initialized (region: %s)", settings.AWS_REGION)

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """
        Generate text using the configured provider.

        Args:
            prompt: User prompt
            system_prompt: System prompt (optional)
            max_tokens: Maximum tokens to generate

        Returns:
            Response dict with "text", "model_used" and "provider" keys

        Raises:
            AiConfigurationError: no provider configured
            AiRateLimitError: provider throttled the request
            AiApiError: any other provider failure
        """
        if not self._initialized:
            await self.initialize()

        messages = [{"role": "user", "content": prompt}]
        max_tokens = max_tokens or settings.AI_MAX_TOKENS

        if self._provider == "anthropic":
            text = await self._invoke_anthropic(messages, system_prompt, max_tokens)
            return {"text": text, "model_used": self._anthropic_model_id, "provider": "anthropic"}

        if self._provider == "bedrock":
            text = await self._invoke_bedrock(messages, system_prompt, max_tokens)
            return {"text": text, "model_used": self._bedrock_model_id, "provider": "bedrock"}

        raise AiConfigurationError(
            "AI is not configured. Set ANTHROPIC_API_KEY or AWS credentials for Bedrock.",
            error_code=ErrorCode.CONFIG_MISSING_REQUIRED,
        )

    def _ensure_anthropic_client(self) -> Anthropic:
        if self._anthropic_client is None:
            self._anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY)
        return self._anthropic_client

    async def _invoke_anthropic(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        max_tokens: int,
    ) -> str:
        client = self._ensure_anthropic_client()

        request_kwargs: dict[str, Any] = {
            "model": self._anthropic_model_id,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system_prompt:
            request_kwargs["system"] = system_prompt

        try:
            response = await asyncio.to_thread(client.messages.create, **request_kwargs)
        except anthropic.RateLimitError as exc:
            retry_after = exc.response.headers.get("retry-after") if exc.response is not None else None
            raise AiRateLimitError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                cause=exc,
            ) from exc
        except anthropic.APIError as exc:
            raise AiApiError(f"Anthropic API call failed: {exc}", cause=exc) from exc

        text_parts: list[str] = []
        for block in response.content:
            if getattr(block, "type", None) == "text":
                text_parts.append(block.text)
        return "".join(text_parts)

    async def _invoke_bedrock(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        max_tokens: int,
    ) -> str:
        """Invoke AWS Bedrock Claude model."""
        from botocore.exceptions import BotoCoreError, ClientError

        if not self._bedrock_client:
            raise AiConfigurationError("AWS Bedrock client not initialized")

        request_body: dict[str, Any] = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system_prompt:
            request_body["system"] = system_prompt

        try:
            response = await asyncio.to_thread(
                self._bedrock_client.invoke_model,
                modelId=self._bedrock_model_id,
                body=json.dumps(request_body),
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ThrottlingException":
                raise AiRateLimitError(cause=exc) from exc
            raise AiApiError(f"AWS Bedrock invocation failed: {code}", cause=exc) from exc
        except BotoCoreError as exc:
            raise AiApiError(f"AWS Bedrock invocation failed: {exc}", cause=exc) from exc

        response_body = json.loads(response["body"].read())
        text_parts: list[str] = []
        for content_block in response_body.get("content", []):
            if content_block.get("type") == "text":
                text_parts.append(content_block.get("text", ""))
        return "".join(text_parts)
