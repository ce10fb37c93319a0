import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from hyprism.utils.exception import IncompleteDownloadError, InstallCancelledError
from hyprism.utils.retry import (
    DownloadRetryConfig,
    retry_download,
    should_retry_exception,
)


def _http_error(status_code: int) -> requests.HTTPError:
    response = MagicMock()
    response.status_code = status_code
    return requests.HTTPError(f"HTTP {status_code}", response=response)


class TestShouldRetryException:
    def test_retryable_http_statuses(self) -> None:
        config = DownloadRetryConfig()
        for status in (408, 429, 500, 502, 503):
            assert should_retry_exception(_http_error(status), config) is True

    def test_final_http_statuses(self) -> None:
        config = DownloadRetryConfig()
        for status in (400, 403, 404):
            assert should_retry_exception(_http_error(status), config) is False

    def test_transport_errors(self) -> None:
        config = DownloadRetryConfig()
        assert should_retry_exception(requests.Timeout(), config) is True
        assert should_retry_exception(requests.ConnectionError(), config) is True
        assert (
            should_retry_exception(requests.exceptions.ChunkedEncodingError(), config)
            is True
        )

    def test_transport_errors_disabled(self) -> None:
        config = DownloadRetryConfig(
            retry_on_timeout=False, retry_on_connection_error=False
        )
        assert should_retry_exception(requests.Timeout(), config) is False
        assert should_retry_exception(requests.ConnectionError(), config) is False

    def test_extra_exception_types(self) -> None:
        error = IncompleteDownloadError("short read")
        assert should_retry_exception(error, DownloadRetryConfig()) is False
        config = DownloadRetryConfig(retry_on=(IncompleteDownloadError,))
        assert should_retry_exception(error, config) is True

    def test_other_errors_are_final(self) -> None:
        assert should_retry_exception(ValueError(), DownloadRetryConfig()) is False


def test_delay_for() -> None:
    assert DownloadRetryConfig(delay=2.0).delay_for(3) == 2.0
    assert DownloadRetryConfig(backoff_factor=0.5).delay_for(2) == 2.0


@patch("hyprism.utils.retry.time.sleep")
def test_retry_download_succeeds_after_transient_failures(sleep: MagicMock) -> None:
    func = MagicMock(
        side_effect=[requests.ConnectionError(), requests.Timeout(), "ok"]
    )
    func.__name__ = "download"

    wrapped = retry_download(DownloadRetryConfig(max_attempts=5, delay=2.0))(func)

    assert wrapped() == "ok"
    assert func.call_count == 3
    assert sleep.call_count == 2
    sleep.assert_called_with(2.0)


@patch("hyprism.utils.retry.time.sleep")
def test_retry_download_gives_up_after_max_attempts(sleep: MagicMock) -> None:
    func = MagicMock(side_effect=requests.ConnectionError("down"))
    func.__name__ = "download"

    wrapped = retry_download(DownloadRetryConfig(max_attempts=3))(func)

    with pytest.raises(requests.ConnectionError):
        wrapped()
    assert func.call_count == 3
    assert sleep.call_count == 2


@patch("hyprism.utils.retry.time.sleep")
def test_retry_download_does_not_retry_final_errors(sleep: MagicMock) -> None:
    func = MagicMock(side_effect=_http_error(404))
    func.__name__ = "download"

    with pytest.raises(requests.HTTPError):
        retry_download(DownloadRetryConfig())(func)()
    assert func.call_count == 1
    sleep.assert_not_called()


def test_retry_download_cancelled_during_pause() -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    func = MagicMock(side_effect=requests.ConnectionError())
    func.__name__ = "download"

    wrapped = retry_download(DownloadRetryConfig(delay=30.0), cancel_event)(func)

    with pytest.raises(InstallCancelledError):
        wrapped()
    assert func.call_count == 1
