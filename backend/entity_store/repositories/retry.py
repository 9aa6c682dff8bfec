"""
Store Call Retry

Retry with exponential backoff for document store calls, driven by tenacity.
Only transient store faults are retried; the last error is re-raised
unchanged once the attempt budget is spent.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel, ConfigDict, Field, model_validator
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from entity_store.infrastructure.store.exceptions import is_retryable_error

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

R = TypeVar("R")


class RetryConfig(BaseModel):
    """Retry policy for store calls."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(
        default=3, ge=0, description="Additional attempts after the first"
    )
    base_delay_seconds: float = Field(
        default=0.1, gt=0.0, description="Delay before the first retry"
    )
    max_delay_seconds: float = Field(
        default=5.0, gt=0.0, description="Upper bound for any delay"
    )
    backoff_multiplier: float = Field(
        default=2.0, gt=1.0, description="Delay multiplier per attempt"
    )
    jitter: bool = Field(default=False, description="Randomize delays downward")

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> "RetryConfig":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class RetryExecutor:
    """
    Executes store calls with classified retry and exponential backoff.

    Attempt 0 runs immediately. Before attempt i (i >= 1) the executor waits
    min(max_delay, base_delay * multiplier ** (i - 1)) seconds. Cancellation
    of the calling task is never caught and stops further attempts.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        table_name: Optional[str] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        classifier: Callable[[BaseException], bool] = is_retryable_error,
    ):
        self.config = config or RetryConfig()
        self.table_name = table_name
        self._sleep = sleep or asyncio.sleep
        self._is_retryable = classifier

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay in seconds before ``attempt`` (1-based retry number).

        With jitter enabled the delay is drawn from [delay / 2, delay].
        """
        if attempt < 1:
            return 0.0
        delay = min(
            self.config.max_delay_seconds,
            self.config.base_delay_seconds
            * (self.config.backoff_multiplier ** (attempt - 1)),
        )
        if self.config.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay

    async def execute(
        self,
        action: Callable[[], Awaitable[R]],
        operation_name: str = "operation",
        context: Optional[Dict[str, Any]] = None,
    ) -> R:
        """
        Run ``action`` until it succeeds, fails permanently or runs out of attempts.

        Args:
            action: Zero-argument callable returning an awaitable store call
            operation_name: Name used in logs and spans
            context: Extra log context (key, counts)

        Returns:
            The action's result

        Raises:
            Exception: The action's own error, unwrapped
        """

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                "Store operation failed, retrying",
                table=self.table_name,
                operation=operation_name,
                attempt=retry_state.attempt_number,
                delay_seconds=retry_state.next_action.sleep,
                error=str(error),
                error_type=type(error).__name__,
                context=context,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=lambda retry_state: self.calculate_delay(retry_state.attempt_number),
            retry=retry_if_exception(self._should_retry),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        with tracer.start_as_current_span(f"repository.{operation_name}") as span:
            span.set_attribute("store.table", self.table_name or "")
            span.set_attribute("store.operation", operation_name)

            attempts = 0
            try:
                async for attempt in retrying:
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        result = await action()
            except Exception as error:
                retryable = self._should_retry(error)
                if retryable:
                    logger.error(
                        "Store operation failed after exhausting retries",
                        table=self.table_name,
                        operation=operation_name,
                        attempts=attempts,
                        error=str(error),
                        context=context,
                    )
                else:
                    logger.warning(
                        "Store operation failed",
                        table=self.table_name,
                        operation=operation_name,
                        attempts=attempts,
                        error=str(error),
                        error_type=type(error).__name__,
                        context=context,
                    )
                span.set_attribute("store.attempts", attempts)
                span.set_status(Status(StatusCode.ERROR, str(error)))
                raise

            if attempts > 1:
                logger.info(
                    "Store operation succeeded after retries",
                    table=self.table_name,
                    operation=operation_name,
                    retries=attempts - 1,
                    context=context,
                )
            span.set_attribute("store.attempts", attempts)
            return result

    def _should_retry(self, error: BaseException) -> bool:
        # Cancellation and other BaseExceptions always propagate
        return isinstance(error, Exception) and self._is_retryable(error)
