"""
Streaming downloads with resume, and the patch artifact cache.
"""

import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable

import requests
from loguru import logger

from hyprism.models.instance import normalize_branch
from hyprism.models.progress import ProgressCallback, ProgressStage, emit_progress
from hyprism.utils.constants import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_HEADERS,
    HEAD_TIMEOUT,
    PROGRESS_INTERVAL,
    STREAM_TIMEOUT,
    TRUSTED_CACHE_SIZE,
)
from hyprism.utils.exception import (
    DownloadError,
    FilesystemError,
    IncompleteDownloadError,
    InstallCancelledError,
    PatchArtifactError,
)
from hyprism.utils.generic import format_file_size, format_speed
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.retry import DownloadRetryConfig, retry_download
from hyprism.utils.version_resolver import VersionResolver

# (bytes downloaded, bytes total or 0 if unknown, bytes per second)
TransferCallback = Callable[[int, int, float], None]


def stream_download(
    session: requests.Session,
    url: str,
    destination: Path,
    on_transfer: TransferCallback | None = None,
    cancel_event: threading.Event | None = None,
    resume: bool = True,
) -> int:
    """
    Stream `url` into `destination`, resuming from the bytes already on disk.

    :return: size of the file after the transfer
    :raises requests.RequestException: on transport failures and HTTP errors
    :raises IncompleteDownloadError: if the stream ended before the announced size
    :raises InstallCancelledError: if `cancel_event` was set during the transfer
    """
    resume_from = destination.stat().st_size if resume and destination.exists() else 0

    headers = dict(DOWNLOAD_HEADERS)
    if resume_from > 0:
        logger.debug(f"Resuming download of {url} from {resume_from} bytes")
        headers["Range"] = f"bytes={resume_from}-"

    response = session.get(url, headers=headers, stream=True, timeout=STREAM_TIMEOUT)
    try:
        if response.status_code == 416:
            # Whatever is on disk does not line up with the remote file
            destination.unlink(missing_ok=True)
            raise IncompleteDownloadError(
                f"Server rejected resume of {destination.name}, restarting"
            )
        response.raise_for_status()

        partial = response.status_code == 206 and resume_from > 0
        content_length = int(response.headers.get("Content-Length") or 0)
        total = content_length + resume_from if partial else content_length
        downloaded = resume_from if partial else 0

        last_update = time.monotonic()
        last_downloaded = downloaded
        with open(destination, "ab" if partial else "wb") as file:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise InstallCancelledError(f"Download of {destination.name} cancelled")
                if not chunk:
                    continue
                file.write(chunk)
                downloaded += len(chunk)

                now = time.monotonic()
                if on_transfer is not None and now - last_update >= PROGRESS_INTERVAL:
                    rate = (downloaded - last_downloaded) / (now - last_update)
                    on_transfer(downloaded, total, rate)
                    last_update = now
                    last_downloaded = downloaded
    finally:
        response.close()

    if total > 0 and downloaded < total:
        raise IncompleteDownloadError(
            f"Download incomplete: got {downloaded} of {total} bytes "
            f"({downloaded / total * 100:.1f}%)"
        )
    logger.debug(f"Downloaded {destination.name}: {downloaded} bytes")
    return downloaded


class PatchDownloader:
    """
    Fetches `.pwr` patch artifacts into the shared cache folder.

    Artifacts are cached as `<cache>/<to_version>.pwr` and reused when a
    previous download is complete.
    """

    def __init__(
        self,
        layout: InstanceLayout,
        resolver: VersionResolver,
        session: requests.Session | None = None,
        retry_config: DownloadRetryConfig | None = None,
    ) -> None:
        self.layout = layout
        self.resolver = resolver
        self.session = session or resolver.session
        retry_config = retry_config or DownloadRetryConfig()
        self.retry_config = replace(
            retry_config, retry_on=(*retry_config.retry_on, IncompleteDownloadError)
        )

    def artifact_path(self, to_version: int) -> Path:
        return self.layout.cache_dir / f"{to_version}.pwr"

    def select_url(self, branch: str, from_version: int, to_version: int) -> str:
        """Incremental patch if the server has one, else the full patch from 0."""
        if from_version > 0:
            url = self.resolver.patch_url(branch, from_version, to_version)
            if self.resolver.endpoint_exists(url):
                return url
            logger.info(
                f"Incremental patch {from_version}->{to_version} not available, "
                "using full install"
            )
        return self.resolver.patch_url(branch, 0, to_version)

    def expected_size(self, url: str) -> int:
        """Content-Length announced by the server, or 0 if unknown."""
        try:
            response = self.session.head(
                url, headers=DOWNLOAD_HEADERS, timeout=HEAD_TIMEOUT, allow_redirects=True
            )
        except requests.RequestException as e:
            logger.debug(f"HEAD {url} failed: {e}")
            return 0
        try:
            if response.status_code != 200:
                return 0
            return int(response.headers.get("Content-Length") or 0)
        finally:
            response.close()

    def download(
        self,
        branch: str,
        to_version: int,
        from_version: int = 0,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """
        Make sure the patch to `to_version` is in the cache.

        :param to_version: target build; 0 resolves the latest build of `branch` first
        :return: path of the cached artifact
        :raises DownloadError: on network failures after all retries
        :raises PatchArtifactError: if the artifact is missing or empty afterwards
        """
        branch = normalize_branch(branch)
        if to_version == 0:
            logger.info(f"Version 0 requested, resolving latest {branch} build")
            to_version = self.resolver.find_latest(branch)
            if to_version == 0:
                raise DownloadError(f"Could not determine latest version for {branch}")

        url = self.select_url(branch, from_version, to_version)
        artifact = self.artifact_path(to_version)
        try:
            artifact.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create cache directory: {e}") from e

        expected = self.expected_size(url)
        if self._reuse_cached(artifact, expected):
            emit_progress(
                on_progress,
                ProgressStage.DOWNLOAD,
                100,
                "Game patch found in cache",
                current_file=artifact.name,
                bytes_downloaded=artifact.stat().st_size,
                bytes_total=artifact.stat().st_size,
            )
            return artifact

        logger.info(f"Downloading patch from {url}")
        emit_progress(
            on_progress,
            ProgressStage.DOWNLOAD,
            0,
            "Downloading game patch...",
            current_file=artifact.name,
        )

        def on_transfer(downloaded: int, total: int, rate: float) -> None:
            emit_progress(
                on_progress,
                ProgressStage.DOWNLOAD,
                downloaded / total * 100 if total > 0 else 0,
                "Downloading game patch...",
                current_file=artifact.name,
                transfer_rate=format_speed(rate),
                bytes_downloaded=downloaded,
                bytes_total=total,
            )

        attempt = 0

        @retry_download(self.retry_config, cancel_event)
        def attempt_download() -> int:
            nonlocal attempt
            attempt += 1
            if attempt > 1:
                emit_progress(
                    on_progress,
                    ProgressStage.DOWNLOAD,
                    0,
                    f"Retrying download (attempt {attempt}/{self.retry_config.max_attempts})...",
                    current_file=artifact.name,
                )
            return stream_download(
                self.session, url, artifact, on_transfer, cancel_event, resume=True
            )

        try:
            attempt_download()
        except (InstallCancelledError, DownloadError):
            raise
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise DownloadError(f"Patch not available: HTTP {status} from {url}") from e
        except requests.RequestException as e:
            raise DownloadError(
                f"Failed to download after {attempt} attempts: {e}"
            ) from e
        except OSError as e:
            raise DownloadError(f"Failed to write patch file {artifact}: {e}") from e

        size = artifact.stat().st_size if artifact.exists() else 0
        if size == 0:
            artifact.unlink(missing_ok=True)
            raise PatchArtifactError(f"Patch file {artifact} is missing or empty")
        if expected > 0 and size != expected:
            raise DownloadError(
                f"Patch file size mismatch: expected {expected} bytes, got {size}"
            )

        logger.info(f"Patch downloaded: {artifact} ({format_file_size(size)})")
        emit_progress(
            on_progress,
            ProgressStage.DOWNLOAD,
            100,
            "Download complete",
            current_file=artifact.name,
            bytes_downloaded=size,
            bytes_total=size,
        )
        return artifact

    @staticmethod
    def _reuse_cached(artifact: Path, expected: int) -> bool:
        if not artifact.exists():
            return False
        size = artifact.stat().st_size
        if size == 0:
            artifact.unlink(missing_ok=True)
            return False
        if expected > 0 and size == expected:
            logger.info(f"Patch file found in cache (verified): {artifact}")
            return True
        if expected == 0 and size > TRUSTED_CACHE_SIZE:
            logger.info(f"Patch file found in cache: {artifact} ({format_file_size(size)})")
            return True
        logger.info(
            f"Cached patch {artifact.name} is incomplete ({size} of {expected or '?'} bytes), "
            "re-downloading"
        )
        artifact.unlink(missing_ok=True)
        return False
