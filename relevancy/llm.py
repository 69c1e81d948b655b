"""
Ranking oracle backed by the OpenAI chat completions API.

The oracle is untrusted: every answer is parsed against a strict schema
and any deviation raises OracleMalformedResponse. Rate limits and 5xx
responses are retried with jittered exponential backoff; timeouts and
connection failures are not.
"""

import logging
from typing import List, Optional

import openai
from openai import OpenAI
from pydantic import ValidationError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from config import settings
from .errors import (
    OracleMalformedResponse,
    OracleRateLimited,
    OracleTransportError,
    OracleUnavailable,
)
from .prompts import build_bulk_prompt, build_comparative_prompt
from .schemas import (
    BulkRankingRequest,
    BulkRankingResponse,
    ComparativeRankingRequest,
    ComparativeRankingResponse,
    CourseRanking,
)
from .token_tracker import TokenTracker

logger = logging.getLogger(__name__)


def _is_quota_error(exc: BaseException) -> bool:
    return 'insufficient_quota' in str(exc).lower()


def is_retryable(exc: BaseException) -> bool:
    """Rate limits (except exhausted quota) and 5xx responses are worth retrying."""
    if isinstance(exc, openai.RateLimitError):
        return not _is_quota_error(exc)
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code >= 500
    return False


class RelevancyOracle:
    """LLM ranking oracle with JSON-mode requests and strict response parsing."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client=None,
        model: str = settings.RANKER_MODEL,
        temperature: float = settings.RANKER_TEMPERATURE,
        max_tokens: int = settings.RANKER_MAX_TOKENS,
        timeout: float = settings.ORACLE_TIMEOUT_SECONDS,
        max_retries: int = settings.ORACLE_MAX_RETRIES,
        backoff_min: float = settings.ORACLE_BACKOFF_MIN_SECONDS,
        backoff_max: float = settings.ORACLE_BACKOFF_MAX_SECONDS,
        tracker: Optional[TokenTracker] = None,
    ):
        """
        Initialize the oracle.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY)
            client: Pre-built OpenAI-compatible client (skips key lookup)
            model: Model to use
            temperature: Sampling temperature (kept low for stable rankings)
            max_tokens: Maximum tokens in response
            timeout: Per-call timeout in seconds
            max_retries: Attempts per call on rate-limit/5xx responses
            backoff_min: Lower bound of the exponential backoff window
            backoff_max: Upper bound of the exponential backoff window
            tracker: Optional TokenTracker for usage accounting

        Raises:
            OracleUnavailable: If no client is given and no API key is configured
        """
        if client is None:
            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise OracleUnavailable("OpenAI API key not found. Set OPENAI_API_KEY environment variable.")
            # Retries are handled here, not by the SDK
            client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
            logger.info(f"Ranking oracle initialized (model: {model})")

        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.tracker = tracker

    @classmethod
    def from_settings(cls, tracker: Optional[TokenTracker] = None) -> Optional['RelevancyOracle']:
        """
        Build the oracle from settings, or return None when no key is configured.
        """
        if not settings.OPENAI_API_KEY:
            logger.warning(
                f"⚠️ OPENAI_API_KEY not set - relevancy ranking disabled, "
                f"every rank will be the sentinel {settings.RANK_SENTINEL}"
            )
            return None
        return cls(tracker=tracker)

    def _create(self, **kwargs):
        return self.client.chat.completions.create(**kwargs)

    def call(self, prompt: str, system_prompt: str, operation: str = 'rank') -> str:
        """
        Make one JSON-mode chat completion call.

        Args:
            prompt: User prompt
            system_prompt: System prompt
            operation: Operation name for logging and token tracking

        Returns:
            Raw response text

        Raises:
            OracleRateLimited: Rate limit or 5xx after all retries
            OracleTransportError: Timeout, connection or other API failure
            OracleMalformedResponse: Empty response content
        """
        kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt}
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
            "timeout": self.timeout,
        }

        retrying = Retrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_random_exponential(min=self.backoff_min, max=self.backoff_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        logger.debug(f"Calling OpenAI API with model: {self.model} ({operation}, {len(prompt)} chars)")

        try:
            response = retrying(self._create, **kwargs)
        except openai.RateLimitError as e:
            if _is_quota_error(e):
                logger.error(f"API key ran out of credits: {e}")
                raise OracleTransportError(f"Oracle quota exhausted: {e}") from e
            raise OracleRateLimited(f"Oracle rate limited after {self.max_retries} attempts: {e}") from e
        except openai.APIStatusError as e:
            if e.status_code >= 500:
                raise OracleRateLimited(f"Oracle server error {e.status_code} after {self.max_retries} attempts") from e
            raise OracleTransportError(f"Oracle API error {e.status_code}: {e}") from e
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            raise OracleTransportError(f"Oracle connection failed: {e}") from e
        except openai.APIError as e:
            raise OracleTransportError(f"Oracle call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise OracleMalformedResponse("No response content from oracle")

        usage = getattr(response, 'usage', None)
        if usage is not None:
            logger.debug(
                f"Received response ({len(content)} chars, {usage.prompt_tokens} input tokens, "
                f"{usage.completion_tokens} output tokens)"
            )
            if self.tracker is not None:
                self.tracker.log_usage(
                    model=self.model,
                    operation=operation,
                    input_tokens=usage.prompt_tokens,
                    output_tokens=usage.completion_tokens,
                )

        return content

    def rank_bulk(self, request: BulkRankingRequest) -> List[CourseRanking]:
        """
        Ask the oracle for a full ranking of every course in the request.

        Returns:
            Oracle's (courseId, rank) pairs, unrepaired

        Raises:
            OracleMalformedResponse: Invalid JSON, missing 'rankings', or bad rank values
            OracleTransportError: See call()
        """
        system_prompt, prompt = build_bulk_prompt(request)
        content = self.call(prompt, system_prompt, operation=f"rank_bulk:{request.category}")

        try:
            parsed = BulkRankingResponse.model_validate_json(content)
        except ValidationError as e:
            logger.error(f"Malformed bulk ranking response for {request.category}: {e.error_count()} errors")
            logger.debug(f"Response was: {content[:500]}")
            raise OracleMalformedResponse(f"Malformed bulk ranking response: {e}", raw=content) from e

        return parsed.rankings

    def rank_comparative(self, request: ComparativeRankingRequest) -> int:
        """
        Ask the oracle where a new course falls against the reference courses.

        Returns:
            Positive integer rank

        Raises:
            OracleMalformedResponse: Invalid JSON, missing 'rank', or bad rank value
            OracleTransportError: See call()
        """
        system_prompt, prompt = build_comparative_prompt(request)
        content = self.call(prompt, system_prompt, operation=f"rank_comparative:{request.category}")

        try:
            parsed = ComparativeRankingResponse.model_validate_json(content)
        except ValidationError as e:
            logger.debug(f"Response was: {content[:500]}")
            raise OracleMalformedResponse(f"Malformed comparative ranking response: {e}", raw=content) from e

        return parsed.rank
