"""
Latest-build discovery for a release branch.

The patch server has no index; a build exists when the full patch
`<base>/<os>/<arch>/<branch>/0/<N>.pwr` answers a HEAD request with 200. The
resolver probes a fixed range of build numbers in parallel and keeps the
highest hit.
"""

from concurrent.futures import ThreadPoolExecutor

import requests
from loguru import logger

from hyprism.models.instance import normalize_branch
from hyprism.models.settings import DEFAULT_PATCH_BASE_URL
from hyprism.models.version_probe import VersionProbeResult
from hyprism.utils.constants import (
    BROWSER_USER_AGENT,
    DEFAULT_PROBE_START_VERSION,
    PROBE_START_VERSION,
    PROBE_TIMEOUT,
)
from hyprism.utils.exception import UnsupportedPlatformError, VersionResolutionError
from hyprism.utils.system_info import SystemInfo


class VersionResolver:
    def __init__(
        self,
        patch_base_url: str = DEFAULT_PATCH_BASE_URL,
        session: requests.Session | None = None,
        system_info: SystemInfo | None = None,
    ) -> None:
        self.patch_base_url = patch_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.system_info = system_info or SystemInfo()

    def patch_url(self, branch: str, from_version: int, to_version: int) -> str:
        return (
            f"{self.patch_base_url}/{self.system_info.patch_os_name}/"
            f"{self.system_info.patch_arch_name}/{normalize_branch(branch)}/"
            f"{from_version}/{to_version}.pwr"
        )

    def probe_range(self, branch: str) -> int:
        """Highest build number probed for `branch`."""
        return PROBE_START_VERSION.get(
            normalize_branch(branch), DEFAULT_PROBE_START_VERSION
        )

    def resolve_latest(self, branch: str) -> VersionProbeResult:
        """
        Probe the distribution endpoints of `branch` for the newest build.

        Never raises; failures are reported through `VersionProbeResult.error`.
        """
        if not self.system_info.is_supported:
            logger.warning(
                f"No patch endpoints for {self.system_info.patch_os_name}/"
                f"{self.system_info.patch_arch_name}"
            )
            return VersionProbeResult(
                latest_version=0,
                checked_endpoints=(),
                error=UnsupportedPlatformError(
                    "Unsupported platform: "
                    f"{self.system_info.patch_os_name}/{self.system_info.patch_arch_name}"
                ),
            )

        versions = list(range(1, self.probe_range(branch) + 1))
        urls = [self.patch_url(branch, 0, version) for version in versions]

        with ThreadPoolExecutor(
            max_workers=len(urls), thread_name_prefix="version-probe"
        ) as executor:
            outcomes = list(executor.map(self._probe, urls))

        latest_version = 0
        success_endpoint: str | None = None
        failures: list[str] = []
        for version, url, (exists, failure) in zip(versions, urls, outcomes):
            if failure is not None:
                failures.append(f"{url}: {failure}")
            elif exists and version > latest_version:
                latest_version = version
                success_endpoint = url

        error: VersionResolutionError | None = None
        if len(failures) == len(urls):
            error = VersionResolutionError(
                f"Could not reach the patch server for {normalize_branch(branch)} "
                f"({failures[0]})",
                checked_endpoints=tuple(urls),
            )
            logger.error(f"Every version probe failed: {failures}")
        elif latest_version:
            logger.info(f"Latest {normalize_branch(branch)} version found: {latest_version}")
        else:
            logger.warning(f"No {normalize_branch(branch)} versions published for this platform")

        return VersionProbeResult(
            latest_version=latest_version,
            checked_endpoints=tuple(urls),
            success_endpoint=success_endpoint,
            error=error,
        )

    def find_latest(self, branch: str) -> int:
        return self.resolve_latest(branch).latest_version

    def endpoint_exists(self, url: str) -> bool:
        exists, _ = self._probe(url)
        return exists

    def _probe(self, url: str) -> tuple[bool, str | None]:
        """
        :return: (exists, transport failure description or None if the server answered)
        """
        try:
            response = self.session.head(
                url,
                headers={"User-Agent": BROWSER_USER_AGENT},
                timeout=PROBE_TIMEOUT,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.debug(f"Probe of {url} failed: {e.__class__.__name__}: {e}")
            return False, f"{e.__class__.__name__}: {e}"
        try:
            logger.debug(f"Probe of {url}: HTTP {response.status_code}")
            return response.status_code == 200, None
        finally:
            response.close()
