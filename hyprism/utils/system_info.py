import platform
from enum import Enum, auto, unique


class SystemInfo:
    """
    A singleton class that provides information about the system's operating system and architecture.

    Unlike a hard failure at startup, an unrecognised OS or architecture is recorded as
    `None` so that the version resolver can report it as an unsupported platform.

    Examples:
        >>> info = SystemInfo()
        >>> print(info.operating_system)
        >>> print(info.patch_os_name, info.patch_arch_name)
    """

    _instance = None  # type: SystemInfo | None
    _operating_system = None  # type: SystemInfo.OperatingSystem | None
    _architecture = None  # type: SystemInfo.Architecture | None

    @unique
    class OperatingSystem(Enum):
        WINDOWS = auto()
        LINUX = auto()
        MACOS = auto()

    @unique
    class Architecture(Enum):
        X64 = auto()
        ARM64 = auto()

    # Names used by the patch server in its URL layout
    _PATCH_OS_NAMES = {
        OperatingSystem.WINDOWS: "windows",
        OperatingSystem.LINUX: "linux",
        OperatingSystem.MACOS: "darwin",
    }
    _PATCH_ARCH_NAMES = {
        Architecture.X64: "amd64",
        Architecture.ARM64: "arm64",
    }

    def __new__(cls) -> "SystemInfo":
        if not cls._instance:
            cls._instance = super(SystemInfo, cls).__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_is_initialized") and self._is_initialized:
            return

        system = platform.system()
        if system in ["Windows"]:
            self._operating_system = SystemInfo.OperatingSystem.WINDOWS
        elif system in ["Linux"]:
            self._operating_system = SystemInfo.OperatingSystem.LINUX
        elif system in ["Darwin"]:
            self._operating_system = SystemInfo.OperatingSystem.MACOS
        else:
            self._operating_system = None

        machine = platform.machine()
        if machine in ["x86_64", "AMD64", "amd64", "x64"]:
            self._architecture = SystemInfo.Architecture.X64
        elif machine in ["arm64", "aarch64", "ARM64"]:
            self._architecture = SystemInfo.Architecture.ARM64
        else:
            self._architecture = None
        self._machine = machine

        self._is_initialized: bool = True

    @property
    def operating_system(self) -> OperatingSystem | None:
        return self._operating_system

    @property
    def architecture(self) -> Architecture | None:
        return self._architecture

    @property
    def is_supported(self) -> bool:
        return self._operating_system is not None and self._architecture is not None

    @property
    def patch_os_name(self) -> str:
        """OS segment of the patch URL, or "unknown"."""
        if self._operating_system is None:
            return "unknown"
        return self._PATCH_OS_NAMES[self._operating_system]

    @property
    def patch_arch_name(self) -> str:
        """Architecture segment of the patch URL; unknown machines pass through as-is."""
        if self._architecture is None:
            return self._machine.lower()
        return self._PATCH_ARCH_NAMES[self._architecture]
