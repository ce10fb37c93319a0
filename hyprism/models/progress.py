from dataclasses import dataclass
from enum import Enum
from typing import Callable

from loguru import logger


class ProgressStage(str, Enum):
    VERSION = "version"
    DOWNLOAD = "download"
    INSTALL = "install"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ProgressEvent:
    """
    One observation of a running install.

    Within one operation, events arrive in stage order; `fraction` (0-100) may
    restart from 0 when a new stage begins.
    """

    stage: ProgressStage
    fraction: float
    message: str
    current_file: str = ""
    transfer_rate: str = ""
    bytes_downloaded: int = 0
    bytes_total: int = 0


ProgressCallback = Callable[[ProgressEvent], None]


def emit_progress(
    callback: ProgressCallback | None,
    stage: ProgressStage,
    fraction: float,
    message: str,
    current_file: str = "",
    transfer_rate: str = "",
    bytes_downloaded: int = 0,
    bytes_total: int = 0,
) -> None:
    """
    Deliver a progress event to `callback`, if any.

    Observers must never be able to break an install, so exceptions raised by
    the callback are logged and dropped.
    """
    if callback is None:
        return
    event = ProgressEvent(
        stage=stage,
        fraction=max(0.0, min(100.0, float(fraction))),
        message=message,
        current_file=current_file,
        transfer_rate=transfer_rate,
        bytes_downloaded=bytes_downloaded,
        bytes_total=bytes_total,
    )
    try:
        callback(event)
    except Exception as e:
        logger.warning(f"Progress callback raised {e.__class__.__name__}: {e}")
