import msgspec

RELEASE_BRANCH = "release"
PRE_RELEASE_BRANCH = "pre-release"
KNOWN_BRANCHES = (RELEASE_BRANCH, PRE_RELEASE_BRANCH)
LATEST_SEGMENT = "latest"

_BRANCH_ALIASES = {
    "release": RELEASE_BRANCH,
    "prerelease": PRE_RELEASE_BRANCH,
    "pre-release": PRE_RELEASE_BRANCH,
    "pre_release": PRE_RELEASE_BRANCH,
}


def normalize_branch(branch: str) -> str:
    """
    Map the accepted spellings of a branch name onto the name used on disk and
    in patch URLs. Unknown names are returned stripped but otherwise untouched.
    """
    cleaned = branch.strip()
    return _BRANCH_ALIASES.get(cleaned.lower(), cleaned)


class InstanceKey(msgspec.Struct, frozen=True):
    """
    Identifies one on-disk installation: a release branch plus a version number.

    Version 0 is the auto-updating "latest" instance of the branch.
    """

    branch: str = RELEASE_BRANCH
    version: int = 0

    def __post_init__(self) -> None:
        if self.version < 0:
            raise ValueError(f"Instance version must be >= 0, got {self.version}")
        if not self.branch:
            raise ValueError("Instance branch must not be empty")

    @property
    def is_latest(self) -> bool:
        return self.version == 0

    @property
    def version_segment(self) -> str:
        """Directory name of the instance under its branch folder."""
        return LATEST_SEGMENT if self.version == 0 else str(self.version)

    def __str__(self) -> str:
        return f"{self.branch}/{self.version_segment}"


class InstalledInstance(msgspec.Struct):
    """An instance found on disk with a client executable present."""

    key: InstanceKey
    path: str
    installed_version: int | None = None
