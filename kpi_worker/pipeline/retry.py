import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from kpi_worker.config.settings import Settings
from kpi_worker.logging.logger import Log
from kpi_worker.pipeline.exceptions import RetryExhaustedError, TransientStageError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded-attempt exponential backoff, injected at every external call site."""

    max_attempts: int = 4
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_seconds: float = 0.5
    retry_on: tuple[type[BaseException], ...] = (TransientStageError,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
            jitter_seconds=settings.retry_jitter_seconds,
        )

    def retrying(self, *error_types: type[BaseException]) -> "RetryPolicy":
        """Copy of this policy that also retries the given error types."""
        return replace(self, retry_on=(*self.retry_on, *error_types))

    def delay_for(self, attempt: int) -> float:
        backoff = min(self.max_delay_seconds, self.base_delay_seconds * 2 ** (attempt - 1))
        return backoff + random.uniform(0.0, self.jitter_seconds)

    def call(self, fn: Callable[[], T], *, description: str) -> T:
        """Run fn, retrying retryable errors with backoff.

        Raises:
            RetryExhaustedError: when the last allowed attempt still fails.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    raise RetryExhaustedError(description, attempt, exc) from exc
                delay = self.delay_for(attempt)
                Log.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.2f}s: {exc}"
                )
                self.sleep(delay)
                attempt += 1
