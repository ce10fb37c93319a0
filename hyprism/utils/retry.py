"""
Retry logic for patch, runtime and tool downloads.

Transfers from the patch CDN fail transiently (dropped connections, 5xx, a
stream that ends early); the helpers here re-run a transfer attempt with a
fixed pause, the way the launcher has always retried downloads.
"""

import threading
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, TypeVar

import requests
from loguru import logger

from hyprism.utils.exception import InstallCancelledError

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class DownloadRetryConfig:
    """
    Configuration for download retry behavior.

    :param max_attempts: Total number of attempts, including the first one (default: 5)
    :param delay: Fixed pause between attempts in seconds (default: 2.0)
    :param backoff_factor: If non-zero, the pause becomes backoff_factor * (2 ** attempt)
    :param retry_on_timeout: Whether to retry on timeout errors (default: True)
    :param retry_on_connection_error: Whether to retry on connection errors (default: True)
    :param retry_on: Additional exception types that are always retried, e.g. a
        transfer that ended before the expected size was reached
    """

    max_attempts: int = 5
    delay: float = 2.0
    backoff_factor: float = 0.0
    retry_on_timeout: bool = True
    retry_on_connection_error: bool = True
    retry_on: tuple[type[Exception], ...] = field(default_factory=tuple)

    def delay_for(self, attempt: int) -> float:
        if self.backoff_factor:
            return self.backoff_factor * (2**attempt)
        return self.delay


def should_retry_exception(exc: Exception, config: DownloadRetryConfig) -> bool:
    """
    Determine if an exception warrants another attempt.

    Retryable errors include:
    - HTTP 408, 429 and 5xx responses
    - Timeout errors (if enabled in config)
    - Connection errors, including streams that break mid-transfer (if enabled in config)
    - Any exception type listed in `config.retry_on`

    HTTP 4xx responses (other than 408/429) are final: a missing patch will not
    appear by asking again.
    """
    if config.retry_on and isinstance(exc, config.retry_on):
        return True

    if isinstance(exc, requests.HTTPError):
        if exc.response is not None:
            status_code = exc.response.status_code
            if status_code in {408, 429} or status_code >= 500:
                return True
        return False

    if isinstance(exc, requests.Timeout):
        return config.retry_on_timeout

    if isinstance(
        exc, (requests.ConnectionError, requests.exceptions.ChunkedEncodingError)
    ):
        return config.retry_on_connection_error

    return False


def retry_download(
    config: DownloadRetryConfig, cancel_event: threading.Event | None = None
) -> Callable[[F], F]:
    """
    Decorator re-running a download attempt according to `config`.

    The pause between attempts is interrupted by `cancel_event`, in which case
    `InstallCancelledError` is raised instead of trying again.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max(1, config.max_attempts)
            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not should_retry_exception(e, config):
                        logger.debug(
                            f"{func.__name__} failed with non-retryable error: "
                            f"{e.__class__.__name__}"
                        )
                        raise

                    if attempt + 1 >= attempts:
                        logger.warning(
                            f"{func.__name__} failed after {attempts} attempts: "
                            f"{e.__class__.__name__}: {e}"
                        )
                        raise

                    delay = config.delay_for(attempt)
                    logger.info(
                        f"{func.__name__} attempt {attempt + 1}/{attempts} failed "
                        f"({e.__class__.__name__}), retrying in {delay:.1f}s..."
                    )
                    if cancel_event is not None:
                        if cancel_event.wait(delay):
                            raise InstallCancelledError("Download cancelled") from e
                    else:
                        time.sleep(delay)

            raise RuntimeError("Retry logic failed unexpectedly")

        return wrapper  # type: ignore

    return decorator
