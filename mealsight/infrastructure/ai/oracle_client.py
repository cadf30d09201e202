"""
Inference oracle client.

Sends meal photos to an OpenAI vision model and turns the answer into
an OracleResponse.

Key Features:
- Typed failures (OracleErrorKind) for every SDK error
- Circuit breaker per client (5 transient failures → 60s open)
- SDK-level retries disabled; retrying is the caller's RetryPolicy
- Model version recorded on every response
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

import openai
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from openai import AsyncOpenAI

from mealsight.domain.recognition.models import OracleRequest, OracleResponse
from mealsight.domain.recognition.parsing import parse_oracle_content
from mealsight.domain.recognition.prompts import build_vision_messages
from mealsight.domain.shared.errors import (
    ConfigurationError,
    OracleError,
    OracleErrorKind,
    OracleMalformedOutputError,
    OracleRequestError,
    OracleTransientError,
)

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "gpt-4o"
TEMPERATURE = 0.3
MAX_TOKENS = 1000
CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_RECOVERY_TIMEOUT_S = 60


def map_openai_error(error: Exception) -> OracleError:
    """
    Translate an SDK exception into a typed oracle error.

    | SDK error                         | kind           | class     |
    |-----------------------------------|----------------|-----------|
    | RateLimitError (429)              | RATE_LIMITED   | transient |
    | APITimeoutError, asyncio timeout  | TIMEOUT        | transient |
    | APIConnectionError                | CONNECTION     | transient |
    | APIStatusError >= 500             | SERVER_ERROR   | transient |
    | AuthenticationError, 403          | AUTHENTICATION | terminal  |
    | any other APIStatusError          | BAD_REQUEST    | terminal  |
    """
    if isinstance(error, openai.RateLimitError):
        return OracleTransientError(OracleErrorKind.RATE_LIMITED, str(error), status_code=429)

    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, (openai.APITimeoutError, asyncio.TimeoutError)):
        return OracleTransientError(OracleErrorKind.TIMEOUT, str(error) or "Oracle call timed out")

    if isinstance(error, openai.APIConnectionError):
        return OracleTransientError(OracleErrorKind.CONNECTION, str(error))

    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return OracleRequestError(
            OracleErrorKind.AUTHENTICATION, str(error), status_code=error.status_code
        )

    if isinstance(error, openai.APIStatusError):
        if error.status_code >= 500:
            return OracleTransientError(
                OracleErrorKind.SERVER_ERROR, str(error), status_code=error.status_code
            )
        return OracleRequestError(
            OracleErrorKind.BAD_REQUEST, str(error), status_code=error.status_code
        )

    return OracleRequestError(OracleErrorKind.BAD_REQUEST, f"Unexpected oracle error: {error}")


class InferenceOracleClient:
    """
    OpenAI vision client for meal photo analysis.

    Example:
        >>> client = InferenceOracleClient(api_key="sk-...")
        >>> response = await client.analyze(
        ...     OracleRequest(image_url="https://example.com/thali.jpg", user_note="2 rotis")
        ... )
        >>> print(f"Recognized {len(response.items)} items")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout: int = CIRCUIT_RECOVERY_TIMEOUT_S,
    ):
        """
        Initialize oracle client.

        Args:
            api_key: OpenAI API key
            model: Vision-capable model name
            timeout: Request timeout in seconds
            client: Pre-configured AsyncOpenAI client (for testing)
            failure_threshold: Transient failures before the circuit opens
            recovery_timeout: Seconds the circuit stays open

        Raises:
            ConfigurationError: No API key and no client
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY not configured")
            client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

        self._client = client
        self.model = model
        self._breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=OracleTransientError,
            name=f"oracle_{model}_{id(self)}",
        )
        self._guarded_complete = self._breaker(self._complete)

    @property
    def circuit_open(self) -> bool:
        return bool(self._breaker.opened)

    async def close(self) -> None:
        await self._client.close()

    async def _complete(self, messages: List[Dict[str, Any]]) -> Any:
        try:
            return await self._client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except (openai.OpenAIError, asyncio.TimeoutError) as e:
            raise map_openai_error(e) from e

    async def analyze(self, request: OracleRequest) -> OracleResponse:
        """
        Analyze a meal photo.

        Args:
            request: Photo reference plus personalisation context

        Returns:
            OracleResponse with items on the 0-100 confidence scale

        Raises:
            OracleTransientError: Rate limit, 5xx, timeout or connection failure
            OracleMalformedOutputError: Empty, non-JSON or schema-less answer
            OracleRequestError: Rejected request, bad key, or circuit open
        """
        start_time = time.monotonic()
        messages = build_vision_messages(request)

        logger.info(
            "Calling inference oracle",
            model=self.model,
            has_note=request.user_note is not None,
            meal_type=request.meal_type.value if request.meal_type else None,
        )

        try:
            completion = await self._guarded_complete(messages)
        except CircuitBreakerError as e:
            logger.warning("Oracle circuit open, failing fast", model=self.model)
            raise OracleRequestError(
                OracleErrorKind.UNAVAILABLE, "Inference service temporarily unavailable"
            ) from e

        choices = getattr(completion, "choices", None) or []
        content = choices[0].message.content if choices else None
        model_version = getattr(completion, "model", None) or self.model

        try:
            response = parse_oracle_content(
                content, model_version=model_version, user_note=request.user_note
            )
        except OracleMalformedOutputError as e:
            logger.warning("Oracle output malformed", kind=e.kind.value, model=model_version)
            raise

        logger.info(
            "Oracle analysis complete",
            item_count=len(response.items),
            overall_confidence=response.overall_confidence,
            latency_ms=int((time.monotonic() - start_time) * 1000),
            model=model_version,
        )
        return response
