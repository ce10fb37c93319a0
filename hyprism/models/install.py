from dataclasses import dataclass, field
from enum import Enum, auto, unique
from pathlib import Path

from hyprism.models.instance import InstanceKey


@unique
class InstallState(Enum):
    IDLE = auto()
    RESOLVING_VERSION = auto()
    ACQUIRING_PREREQUISITES = auto()
    DOWNLOADING_PATCH = auto()
    APPLYING_PATCH = auto()
    VERIFYING_INSTALL = auto()
    INSTALLED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (InstallState.INSTALLED, InstallState.FAILED)


@dataclass
class InstallResult:
    key: InstanceKey
    resolved_version: int
    game_dir: Path
    short_circuited: bool = False
    states: list[InstallState] = field(default_factory=list)
