"""
Provider call guard: timeout plus bounded retry for external reads.

Contract:
    ``ProviderGuard.call(provider, fn, *args)`` runs ``fn`` with a timeout,
    retries transient failures up to ``retries`` times with linear backoff,
    and raises ``ProviderUnavailableError`` once attempts are exhausted.
    Any other exception from ``fn`` raises ``ProviderDataError`` at once.

Invariants enforced:
    - At most one call per provider is in flight per guard.  A timed-out
      attempt cannot be interrupted, so the next attempt (or the next
      ``call``) first waits up to ``timeout_seconds`` for it to finish and
      gives up without calling the provider again if it is still running.

Architecture: statement_ingestion. Only wraps idempotent reads (booking and
accounting providers).  Statement writes are never routed through it.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, TypeVar

from statement_kernel.exceptions import ProviderDataError, ProviderUnavailableError
from statement_kernel.logging_config import get_logger

logger = get_logger("ingestion.guard")

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)


class ProviderGuard:
    """Timeout and retry policy for one class of provider calls.

    A timed-out attempt is abandoned, not interrupted: the worker thread
    finishes in the background and its result is discarded.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        retries: int = 2,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        transient_errors: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
    ):
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.transient_errors = transient_errors
        self._sleep = sleep
        self._lock = threading.Lock()
        self._in_flight: dict[str, Future] = {}

    @classmethod
    def from_config(cls, config: Any) -> ProviderGuard:
        """Build from a ``statement_config.ProviderConfig``."""
        return cls(
            timeout_seconds=config.timeout_seconds,
            retries=config.retries,
            backoff_seconds=config.retry_backoff_seconds,
        )

    def _previous_attempt_settled(self, provider: str) -> bool:
        with self._lock:
            previous = self._in_flight.get(provider)
        if previous is None or previous.done():
            return True
        done, _ = wait([previous], timeout=self.timeout_seconds)
        return bool(done)

    def _submit(self, provider: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"provider-{provider}")
        try:
            future = executor.submit(fn, *args, **kwargs)
        finally:
            executor.shutdown(wait=False)
        with self._lock:
            self._in_flight[provider] = future
        return future

    def call(self, provider: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        attempts = self.retries + 1
        last_error = ""
        last_exc: BaseException | None = None

        for attempt in range(1, attempts + 1):
            if not self._previous_attempt_settled(provider):
                last_error = f"previous call still running after {self.timeout_seconds}s"
                logger.warning(
                    "provider_call_skipped",
                    extra={"provider": provider, "attempt": attempt, "error": last_error},
                )
                break

            future = self._submit(provider, fn, *args, **kwargs)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError as exc:
                last_exc = exc
                last_error = f"timed out after {self.timeout_seconds}s"
            except self.transient_errors as exc:
                last_exc = exc
                last_error = str(exc) or exc.__class__.__name__
            except Exception as exc:
                detail = str(exc) or exc.__class__.__name__
                logger.warning(
                    "provider_call_rejected",
                    extra={"provider": provider, "attempt": attempt, "error": detail},
                )
                raise ProviderDataError(provider, detail) from exc

            logger.warning(
                "provider_call_failed",
                extra={
                    "provider": provider,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "error": last_error,
                },
            )
            if attempt < attempts and self.backoff_seconds > 0:
                self._sleep(self.backoff_seconds * attempt)

        raise ProviderUnavailableError(provider, last_error) from last_exc
