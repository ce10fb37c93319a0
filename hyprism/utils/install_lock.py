import threading
from contextlib import contextmanager
from typing import Iterator

from loguru import logger

from hyprism.utils.exception import ConcurrencyError


class InstallationLock:
    """
    Single-flight guard for operations that write into instance folders.

    Acquisition never blocks: a second caller fails immediately with
    `ConcurrencyError` instead of queueing behind the running operation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: str | None = None

    @contextmanager
    def hold(self, purpose: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            logger.warning(f"Refusing {purpose}: {self._holder} is in progress")
            raise ConcurrencyError(
                f"Cannot start {purpose}: {self._holder} is already in progress"
            )
        self._holder = purpose
        try:
            yield
        finally:
            self._holder = None
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        return self._holder


# Shared by every controller in the process
INSTALLATION_LOCK = InstallationLock()
