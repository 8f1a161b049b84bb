"""Retry handler with exponential backoff for caller-side retries.

The registry and inference engine never retry on their own. This handler is
used by callers that decide a failure is transient, such as the startup load
of the default model while the hub is briefly unreachable.
"""

import asyncio
import inspect
import random
from typing import Any, Callable, Optional, Tuple, Type

import structlog

from ..errors import ModelLoadFailed
from ..models import ModelConfig

logger = structlog.get_logger("embedding_service.retry")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions


class RetryHandler:
    """Handles retry logic with exponential backoff."""

    def __init__(self, config: RetryConfig, sleep: Optional[Callable[[float], Any]] = None):
        self.config = config
        self._sleep = sleep or asyncio.sleep

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        operation_name: str = "unknown",
        **kwargs
    ) -> Any:
        """Execute ``func`` until it succeeds or attempts are exhausted.

        Exceptions outside ``retryable_exceptions`` propagate immediately.
        """
        for attempt in range(self.config.max_attempts):
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                if attempt > 0:
                    logger.info(
                        "Operation succeeded after retry",
                        operation=operation_name,
                        attempt=attempt + 1,
                        total_attempts=self.config.max_attempts
                    )
                return result

            except self.config.retryable_exceptions as e:
                if attempt == self.config.max_attempts - 1:
                    logger.error(
                        "Operation failed after all retries",
                        operation=operation_name,
                        attempts=self.config.max_attempts,
                        error=str(e)
                    )
                    raise

                delay = self._calculate_delay(attempt)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempt + 1,
                    total_attempts=self.config.max_attempts,
                    delay_seconds=round(delay, 3),
                    error=str(e)
                )
                await self._sleep(delay)

        raise RuntimeError("Retry loop exited without a result")

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay for the given attempt."""
        delay = self.config.base_delay * (self.config.exponential_base ** attempt)
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(delay, 0.0)


class ModelLoadRetryHandler(RetryHandler):
    """Retries model switches that failed with ``ModelLoadFailed``.

    ``InvalidConfig`` propagates on the first attempt.
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0, max_delay: float = 30.0, **kwargs):
        config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            retryable_exceptions=(ModelLoadFailed,)
        )
        super().__init__(config, **kwargs)

    async def switch_model_with_retry(self, switch_func: Callable, config: ModelConfig) -> Any:
        """Call ``switch_func(config)`` with retries."""
        return await self.execute_with_retry(
            switch_func,
            config,
            operation_name=f"load_model_{config.model_id}"
        )
