"""
Retry policy and provider call guard.

Every raw provider call (chat or embeddings) goes through a
``ProviderCallGuard`` that takes a concurrency slot, waits for a rate-limit
token, applies the hard per-call deadline and maps library errors onto the
domain taxonomy. ``call_with_retry`` wraps the guarded call with exponential
backoff for the retryable kinds.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from assessment_validator.core.config import Settings
from assessment_validator.core.exceptions import (
    ProviderInvocationError,
    RateLimitError,
    TransientProviderError,
    ValidatorBaseException,
)
from assessment_validator.core.logging import get_logger
from assessment_validator.services.rate_limiter import TokenBucketLimiter

logger = get_logger(__name__)
T = TypeVar("T")

RETRYABLE_ERRORS = (TransientProviderError, RateLimitError)
_TRANSIENT_STATUS_CODES = {408, 409, 425}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay_seconds,
            multiplier=config.retry_backoff_multiplier,
            max_delay=config.retry_max_delay_seconds,
        )


def _status_code_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_provider_error(exc: BaseException, provider: str) -> ValidatorBaseException:
    """
    Map an exception raised by a provider SDK onto the domain taxonomy.

    429 becomes ``RateLimitError``; timeouts, connection errors, 408/409/425
    and 5xx become ``TransientProviderError``; any other 4xx is a
    non-retryable ``ProviderInvocationError``. Unrecognised errors are
    treated as transient.
    """
    if isinstance(exc, ValidatorBaseException):
        return exc
    detail = f"{type(exc).__name__}: {str(exc)[:300]}"

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return TransientProviderError("Call timed out", provider=provider, details=detail)
    if isinstance(exc, (httpx.ConnectError, httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return TransientProviderError("Network error", provider=provider, details=detail)

    status = _status_code_of(exc)
    if status == 429:
        return RateLimitError("Provider answered 429", provider=provider, details=detail)
    if status is not None:
        if status >= 500 or status in _TRANSIENT_STATUS_CODES:
            return TransientProviderError(f"Provider answered {status}", provider=provider, details=detail)
        if 400 <= status < 500:
            return ProviderInvocationError("Request rejected by provider", provider=provider, status_code=status, details=detail)

    name = type(exc).__name__
    if "RateLimit" in name:
        return RateLimitError("Provider rate limit", provider=provider, details=detail)
    return TransientProviderError("Unexpected provider error", provider=provider, details=detail)


def _log_before_sleep(operation_name: str) -> Callable[[RetryCallState], None]:
    def _log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Retrying {operation_name} in {wait:.2f}s "
            f"(attempt {retry_state.attempt_number} failed: {type(error).__name__}: {error})"
        )
    return _log


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation_name: str = "provider call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> tuple[T, int]:
    """
    Run ``operation`` with exponential backoff on retryable errors.

    Returns:
        The operation result and the number of attempts it took.

    Raises:
        The last error once ``policy.max_attempts`` is reached, or the first
        non-retryable error. Its ``attempts`` attribute holds the attempt count.
    """
    attempts = 0
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.base_delay,
            exp_base=policy.multiplier,
            max=policy.max_delay,
        ),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_before_sleep(operation_name),
        sleep=sleep,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                result = await operation()
    except ValidatorBaseException as exc:
        exc.attempts = attempts
        raise
    return result, attempts


class ProviderCallGuard:
    """
    Concurrency slot, rate-limit token and hard deadline around one provider call.

    Attributes:
        provider: Name of the guarded provider.
        limiter: The provider's shared token bucket.
    """

    def __init__(
        self,
        provider: str,
        limiter: TokenBucketLimiter,
        max_concurrency: int,
        timeout_seconds: float,
    ):
        self.provider = provider
        self.limiter = limiter
        self._timeout_seconds = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            await self.limiter.acquire()
            try:
                return await asyncio.wait_for(operation(), timeout=self._timeout_seconds)
            except asyncio.TimeoutError as e:
                raise TransientProviderError(
                    f"Call exceeded {self._timeout_seconds:.0f}s deadline",
                    provider=self.provider,
                ) from e
            except ValidatorBaseException:
                raise
            except Exception as e:
                raise classify_provider_error(e, self.provider) from e
