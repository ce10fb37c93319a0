"""
End-to-end installation of a game instance.

One call walks a fixed sequence of stages (version resolution, prerequisites,
patch download, patch application, verification) under the process-wide
installation lock, reporting progress through an optional callback. Every
call shape ends in the same pipeline and differs only in the target instance.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Iterator

import requests
from loguru import logger

from hyprism.controllers.cleanup_controller import CleanupController
from hyprism.models.install import InstallResult, InstallState
from hyprism.models.instance import RELEASE_BRANCH, InstanceKey, normalize_branch
from hyprism.models.progress import ProgressCallback, ProgressStage, emit_progress
from hyprism.models.settings import Settings
from hyprism.utils.butler.wrapper import ButlerInterface
from hyprism.utils.exception import (
    FilesystemError,
    HyPrismError,
    InstallCancelledError,
    NoVersionsPublishedError,
    VerificationError,
)
from hyprism.utils.install_lock import INSTALLATION_LOCK, InstallationLock
from hyprism.utils.instance_paths import InstanceLayout
from hyprism.utils.patch_download import PatchDownloader
from hyprism.utils.prerequisites import PrerequisiteProvisioner
from hyprism.utils.retry import DownloadRetryConfig
from hyprism.utils.version_resolver import VersionResolver

_TRANSITIONS: dict[InstallState, tuple[InstallState, ...]] = {
    InstallState.IDLE: (InstallState.RESOLVING_VERSION, InstallState.INSTALLED),
    InstallState.RESOLVING_VERSION: (
        InstallState.ACQUIRING_PREREQUISITES,
        InstallState.INSTALLED,
    ),
    InstallState.ACQUIRING_PREREQUISITES: (InstallState.DOWNLOADING_PATCH,),
    InstallState.DOWNLOADING_PATCH: (InstallState.APPLYING_PATCH,),
    InstallState.APPLYING_PATCH: (InstallState.VERIFYING_INSTALL,),
    InstallState.VERIFYING_INSTALL: (InstallState.INSTALLED,),
    InstallState.INSTALLED: (),
    InstallState.FAILED: (),
}


class InstallOperation:
    """State of a single install call."""

    def __init__(self, key: InstanceKey) -> None:
        self.key = key
        self.state = InstallState.IDLE
        self.history: list[InstallState] = [InstallState.IDLE]

    def advance(self, state: InstallState) -> None:
        if state is InstallState.FAILED:
            if self.state.is_terminal:
                return
        elif state not in _TRANSITIONS[self.state]:
            raise ValueError(
                f"Invalid install transition {self.state.name} -> {state.name}"
            )
        logger.debug(f"[{self.key}] {self.state.name} -> {state.name}")
        self.state = state
        self.history.append(state)

    def fail(self) -> None:
        self.advance(InstallState.FAILED)


class InstallTask:
    """Handle on an install running in the background."""

    def __init__(
        self, future: "Future[InstallResult]", cancel_event: threading.Event
    ) -> None:
        self._future = future
        self._cancel_event = cancel_event

    def cancel(self) -> None:
        """Ask the install to stop at its next checkpoint."""
        self._cancel_event.set()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> InstallResult:
        return self._future.result(timeout=timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout=timeout)


class InstallController:
    def __init__(
        self,
        layout: InstanceLayout,
        resolver: VersionResolver,
        provisioner: PrerequisiteProvisioner,
        downloader: PatchDownloader,
        cleanup: CleanupController | None = None,
        butler_factory: Callable[..., ButlerInterface] = ButlerInterface,
        lock: InstallationLock | None = None,
    ) -> None:
        self.layout = layout
        self.resolver = resolver
        self.provisioner = provisioner
        self.downloader = downloader
        self.lock = lock or INSTALLATION_LOCK
        self.cleanup = cleanup or CleanupController(layout, self.lock)
        self.butler_factory = butler_factory
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, layout: InstanceLayout | None = None
    ) -> "InstallController":
        layout = layout or InstanceLayout.from_settings(settings)
        session = requests.Session()
        retry_config = DownloadRetryConfig(max_attempts=settings.download_max_retries)
        resolver = VersionResolver(settings.patch_base_url, session=session)
        return cls(
            layout=layout,
            resolver=resolver,
            provisioner=PrerequisiteProvisioner(
                layout,
                butler_url_template=settings.butler_url_template,
                runtime_url_template=settings.runtime_url_template,
                session=session,
                retry_config=retry_config,
            ),
            downloader=PatchDownloader(
                layout, resolver, session=session, retry_config=retry_config
            ),
        )

    def is_installing(self) -> bool:
        return self.lock.locked()

    # Call shapes

    def ensure_installed(
        self,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        update: bool = False,
    ) -> InstallResult:
        """Install the auto-updating latest instance of the release branch."""
        return self.ensure_installed_version(
            RELEASE_BRANCH, on_progress, cancel_event, update
        )

    def ensure_installed_version(
        self,
        version_type: str,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        update: bool = False,
    ) -> InstallResult:
        """Install the auto-updating latest instance of `version_type`."""
        key = InstanceKey(branch=normalize_branch(version_type), version=0)
        return self._install(key, on_progress, cancel_event, update)

    def ensure_installed_version_specific(
        self,
        branch: str,
        version: int,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        update: bool = False,
    ) -> InstallResult:
        """
        Install `branch` at a pinned `version`. Version 0 behaves like
        `ensure_installed_version`.
        """
        key = InstanceKey(branch=normalize_branch(branch), version=version)
        return self._install(key, on_progress, cancel_event, update)

    def start_install(
        self,
        branch: str = RELEASE_BRANCH,
        version: int = 0,
        on_progress: ProgressCallback | None = None,
        update: bool = False,
    ) -> InstallTask:
        """Run an install on a background worker."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="install"
            )
        cancel_event = threading.Event()
        future = self._executor.submit(
            self.ensure_installed_version_specific,
            branch,
            version,
            on_progress,
            cancel_event,
            update,
        )
        return InstallTask(future, cancel_event)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # Pipeline

    def _install(
        self,
        key: InstanceKey,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
        update: bool,
    ) -> InstallResult:
        cancel_event = cancel_event or threading.Event()
        operation = InstallOperation(key)

        with self.lock.hold(f"installation of {key}"):
            logger.info(f"Installing {key} (update={update})")
            self.layout.ensure_shared_folders()
            self.cleanup.cleanup_incomplete_downloads()
            self.cleanup.recover_interrupted_install(key)

            # Pinned instances, and latest without update, never need the network
            if not (key.is_latest and update) and self.layout.is_version_installed(key):
                installed = self.layout.read_version_marker(key)
                return self._short_circuit(
                    operation, installed or key.version, on_progress
                )

            try:
                return self._run_pipeline(operation, on_progress, cancel_event, update)
            except BaseException:
                operation.fail()
                raise

    def _run_pipeline(
        self,
        operation: InstallOperation,
        on_progress: ProgressCallback | None,
        cancel_event: threading.Event,
        update: bool,
    ) -> InstallResult:
        key = operation.key

        with self._stage(
            operation, InstallState.RESOLVING_VERSION, "failed to resolve game version"
        ):
            target_version = self._resolve_target(key, on_progress)

        from_version = 0
        if key.is_latest and update and self.layout.is_version_installed(key):
            installed = self.layout.read_version_marker(key)
            if installed == target_version:
                logger.info(f"{key} is already at the latest version {target_version}")
                return self._short_circuit(operation, target_version, on_progress)
            from_version = installed or 0
            logger.info(f"Updating {key} from {from_version} to {target_version}")
        self._check_cancelled(cancel_event)

        with self._stage(
            operation,
            InstallState.ACQUIRING_PREREQUISITES,
            "failed to install prerequisites",
        ):
            self.provisioner.ensure_runtime(cancel_event, on_progress)
            self._check_cancelled(cancel_event)
            butler_path = self.provisioner.ensure_tool(cancel_event, on_progress)
        self._check_cancelled(cancel_event)

        with self._stage(
            operation, InstallState.DOWNLOADING_PATCH, "failed to download game patch"
        ):
            patch_file = self.downloader.download(
                key.branch, target_version, from_version, on_progress, cancel_event
            )
        self._check_cancelled(cancel_event)

        with self._stage(
            operation, InstallState.APPLYING_PATCH, "failed to apply game patch"
        ):
            game_dir = self.layout.create_instance_folders(key)
            self.layout.installing_marker(key).touch()
            butler = self.butler_factory(butler_path, self.layout.profile)
            butler.apply(patch_file, game_dir, on_progress, cancel_event)

        with self._stage(
            operation, InstallState.VERIFYING_INSTALL, "failed to verify installation"
        ):
            client_path = self.layout.client_path(key)
            if not client_path.exists():
                raise VerificationError(
                    f"Client executable not found at {client_path} after patching"
                )
            self.layout.write_version_marker(key, target_version)
            self.layout.installing_marker(key).unlink(missing_ok=True)

        operation.advance(InstallState.INSTALLED)
        logger.info(f"Installed {key} at version {target_version}")
        emit_progress(on_progress, ProgressStage.COMPLETE, 100, "Installation complete")
        return InstallResult(
            key=key,
            resolved_version=target_version,
            game_dir=game_dir,
            short_circuited=False,
            states=list(operation.history),
        )

    def _resolve_target(
        self, key: InstanceKey, on_progress: ProgressCallback | None
    ) -> int:
        if not key.is_latest:
            emit_progress(
                on_progress, ProgressStage.VERSION, 100, f"Using version {key.version}"
            )
            return key.version

        emit_progress(
            on_progress, ProgressStage.VERSION, 0, "Checking for game version..."
        )
        probe = self.resolver.resolve_latest(key.branch)
        if probe.error is not None:
            raise probe.error
        if probe.latest_version == 0:
            raise NoVersionsPublishedError(
                f"No {key.branch} versions are published for this platform",
                checked_endpoints=probe.checked_endpoints,
            )
        emit_progress(
            on_progress,
            ProgressStage.VERSION,
            100,
            f"Latest version: {probe.latest_version}",
        )
        return probe.latest_version

    def _short_circuit(
        self,
        operation: InstallOperation,
        version: int,
        on_progress: ProgressCallback | None,
    ) -> InstallResult:
        operation.advance(InstallState.INSTALLED)
        logger.info(f"{operation.key} is already installed, nothing to do")
        emit_progress(
            on_progress, ProgressStage.COMPLETE, 100, "Game is already installed"
        )
        return InstallResult(
            key=operation.key,
            resolved_version=version,
            game_dir=self.layout.game_dir(operation.key),
            short_circuited=True,
            states=list(operation.history),
        )

    @contextmanager
    def _stage(
        self, operation: InstallOperation, state: InstallState, context: str
    ) -> Iterator[None]:
        operation.advance(state)
        try:
            yield
        except InstallCancelledError:
            logger.warning(f"[{operation.key}] cancelled during {state.name}")
            raise
        except HyPrismError as e:
            logger.error(f"[{operation.key}] {context}: {e}")
            raise e.with_context(context) from e
        except OSError as e:
            logger.error(f"[{operation.key}] {context}: {e}")
            raise FilesystemError(f"{context}: {e}") from e

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise InstallCancelledError("Installation cancelled")
