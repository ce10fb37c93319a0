import msgspec


class PlatformInfo(msgspec.Struct):
    os: str
    arch: str
    version: str
    supported: bool


class ConnectivityInfo(msgspec.Struct):
    patch_server: bool = False
    github: bool = False
    itch_io: bool = False
    error: str = ""


class GameStatusInfo(msgspec.Struct):
    installed: bool = False
    version: str = ""
    client_exists: bool = False
    client_path: str = ""


class DependenciesInfo(msgspec.Struct):
    java_installed: bool = False
    java_path: str = ""
    butler_installed: bool = False
    butler_path: str = ""


class DiagnosticReport(msgspec.Struct):
    platform: PlatformInfo
    connectivity: ConnectivityInfo
    game_status: GameStatusInfo
    dependencies: DependenciesInfo
    timestamp: str


class CrashReport(msgspec.Struct):
    filename: str
    timestamp: str
    preview: str
