from dataclasses import dataclass

from hyprism.utils.exception import VersionResolutionError


@dataclass(frozen=True)
class VersionProbeResult:
    """
    Outcome of one latest-version lookup.

    `latest_version == 0` with `error is None` means the endpoints answered but
    nothing is published for this platform yet; with an error set it means the
    lookup itself failed and may be retried.
    """

    latest_version: int
    checked_endpoints: tuple[str, ...]
    success_endpoint: str | None = None
    error: VersionResolutionError | None = None

    @property
    def found(self) -> bool:
        return self.latest_version > 0
