from typing import Callable
from unittest.mock import MagicMock

import pytest
import requests

from hyprism.utils.exception import UnsupportedPlatformError, VersionResolutionError
from hyprism.utils.version_resolver import VersionResolver

BASE_URL = "https://patches.example.com/patches"


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


def _serve_versions(
    session: MagicMock, fake_response: Callable[..., MagicMock], published: set[int]
) -> None:
    def head(url: str, **kwargs: object) -> MagicMock:
        version = int(url.rsplit("/", 1)[1].removesuffix(".pwr"))
        return fake_response(200 if version in published else 404)

    session.head.side_effect = head


def test_patch_url(session: MagicMock, linux_x64: MagicMock) -> None:
    resolver = VersionResolver(BASE_URL + "/", session=session, system_info=linux_x64)
    assert resolver.patch_url("prerelease", 0, 7) == (
        f"{BASE_URL}/linux/amd64/pre-release/0/7.pwr"
    )


def test_probe_range() -> None:
    resolver = VersionResolver(BASE_URL, session=MagicMock())
    assert resolver.probe_range("release") == 5
    assert resolver.probe_range("pre-release") == 10


def test_resolve_latest_picks_highest_published(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    _serve_versions(session, fake_response, {1, 2, 4})
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    result = resolver.resolve_latest("release")

    assert result.found
    assert result.latest_version == 4
    assert result.error is None
    assert result.success_endpoint == f"{BASE_URL}/linux/amd64/release/0/4.pwr"
    assert len(result.checked_endpoints) == 5
    assert session.head.call_count == 5


def test_resolve_latest_sends_browser_user_agent(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    _serve_versions(session, fake_response, {1})
    VersionResolver(BASE_URL, session=session, system_info=linux_x64).resolve_latest(
        "release"
    )

    _, kwargs = session.head.call_args
    assert "Mozilla" in kwargs["headers"]["User-Agent"]
    assert kwargs["allow_redirects"] is True


def test_resolve_latest_nothing_published(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    _serve_versions(session, fake_response, set())
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    result = resolver.resolve_latest("pre-release")

    assert result.latest_version == 0
    assert result.error is None
    assert not result.found
    assert len(result.checked_endpoints) == 10


def test_resolve_latest_partial_failures_are_tolerated(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    def head(url: str, **kwargs: object) -> MagicMock:
        if url.endswith("/3.pwr"):
            return fake_response(200)
        raise requests.ConnectionError("reset")

    session.head.side_effect = head
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    result = resolver.resolve_latest("release")

    assert result.latest_version == 3
    assert result.error is None


def test_resolve_latest_all_probes_failed(
    session: MagicMock, linux_x64: MagicMock
) -> None:
    session.head.side_effect = requests.ConnectionError("no route to host")
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    result = resolver.resolve_latest("release")

    assert result.latest_version == 0
    assert isinstance(result.error, VersionResolutionError)
    assert result.error.checked_endpoints == result.checked_endpoints
    assert result.error.hint


def test_resolve_latest_unsupported_platform(
    session: MagicMock, linux_x64: MagicMock
) -> None:
    linux_x64.is_supported = False
    linux_x64.patch_arch_name = "riscv64"
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    result = resolver.resolve_latest("release")

    assert isinstance(result.error, UnsupportedPlatformError)
    assert result.checked_endpoints == ()
    session.head.assert_not_called()


def test_endpoint_exists(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)

    session.head.side_effect = None
    session.head.return_value = fake_response(200)
    assert resolver.endpoint_exists("https://x/1/2.pwr") is True

    session.head.return_value = fake_response(404)
    assert resolver.endpoint_exists("https://x/1/2.pwr") is False

    session.head.side_effect = requests.Timeout()
    assert resolver.endpoint_exists("https://x/1/2.pwr") is False


def test_find_latest(
    session: MagicMock, linux_x64: MagicMock, fake_response: Callable[..., MagicMock]
) -> None:
    _serve_versions(session, fake_response, {5})
    resolver = VersionResolver(BASE_URL, session=session, system_info=linux_x64)
    assert resolver.find_latest("release") == 5
