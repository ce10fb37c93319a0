class HyPrismError(Exception):
    """
    Base class for every error raised by the install/launch pipeline.

    `hint` carries remediation text that callers may show next to the message.
    """

    default_hint = ""

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint if hint is not None else self.default_hint

    def with_context(self, context: str) -> "HyPrismError":
        """
        Return a copy of this error of the same category whose message is
        prefixed with `context`, chained to this error.
        """
        wrapped = type(self).__new__(type(self))
        wrapped.__dict__.update(self.__dict__)
        Exception.__init__(wrapped, f"{context}: {self}")
        wrapped.__cause__ = self
        return wrapped


class VersionResolutionError(HyPrismError):
    """Raised when no patch endpoint could be queried for the latest build."""

    default_hint = (
        "Ensure your system is supported (Windows/Linux/macOS), "
        "check that the game is available for your architecture, "
        "verify your firewall allows connections to game-patches.hytale.com "
        "and try disabling any VPN temporarily."
    )

    def __init__(
        self,
        message: str,
        checked_endpoints: tuple[str, ...] = (),
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint)
        self.checked_endpoints = checked_endpoints


class UnsupportedPlatformError(VersionResolutionError):
    """Raised when the current OS/architecture has no distribution endpoint."""

    default_hint = "Check https://hytale.com for supported platforms."


class NoVersionsPublishedError(VersionResolutionError):
    """Raised when endpoints answered but no build exists for this platform."""

    default_hint = (
        "The game may not be available for your system yet. "
        "Check https://hytale.com for supported platforms."
    )


class PrerequisiteError(HyPrismError):
    pass


class RuntimeProvisionError(PrerequisiteError):
    """Raised when the Java runtime could not be provisioned."""

    default_hint = "Check your internet connection and available disk space."


class ToolProvisionError(PrerequisiteError):
    """Raised when the butler patch tool could not be provisioned."""

    default_hint = "Verify your firewall allows connections to broth.itch.zone."


class DownloadError(HyPrismError):
    default_hint = "Check your internet connection and try again."


class IncompleteDownloadError(DownloadError):
    """Raised when a transfer ends before the announced size was received."""


class PatchArtifactError(DownloadError):
    """Raised when a downloaded patch file is missing or empty."""

    default_hint = "Run a repair to clear cached patches, then install again."


class PatchApplyError(HyPrismError):
    """Raised when butler exits with a non-zero status."""

    default_hint = (
        "Run a repair to clear the staging directory and try again. "
        "Close any program that may be holding game files open."
    )

    def __init__(self, message: str, output: str = "", hint: str | None = None):
        super().__init__(message, hint)
        self.output = output


class VerificationError(HyPrismError):
    default_hint = "Run a repair and install again."


class ConcurrencyError(HyPrismError):
    default_hint = "Wait for the running installation to finish."


class FilesystemError(HyPrismError):
    default_hint = "Check folder permissions and available disk space."


class ProcessError(HyPrismError):
    pass


class InstallCancelledError(HyPrismError):
    pass
