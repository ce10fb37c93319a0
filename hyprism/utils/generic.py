import hashlib
import os
import shutil
import uuid
from errno import EACCES
from pathlib import Path
from stat import S_IRWXG, S_IRWXO, S_IRWXU
from typing import Any, Callable

from loguru import logger


def attempt_chmod(
    func: Callable[[str], Any], path: str, excinfo: BaseException
) -> bool:
    if excinfo is not None and isinstance(excinfo, OSError):
        if (
            func in (os.rmdir, os.remove, os.unlink, os.listdir)
            and excinfo.errno == EACCES
        ):
            os.chmod(path, S_IRWXU | S_IRWXG | S_IRWXO)  # 0777
            try:
                func(path)
                return True
            except Exception as e:
                logger.warning(
                    f"attempt_chmod for {func.__name__} double failure at {path}: {e}"
                )
                return False

    return False


def _remove_files_individually(directory: Path) -> None:
    for root, _, files in os.walk(directory):
        for file in files:
            file_path = os.path.join(root, file)
            try:
                os.remove(file_path)
            except OSError as e:
                if not attempt_chmod(os.remove, file_path, e):
                    logger.debug(f"Could not remove {file_path}: {e}")


def remove_tree(path: Path | str, per_file_fallback: bool = False) -> bool:
    """
    Best-effort recursive removal. Failures are logged, never raised.

    :param path: directory to remove; a missing directory counts as removed
    :param per_file_fallback: if the recursive removal fails, delete files one by
        one (clearing read-only bits) and retry the recursive removal once
    :return: True if the path no longer exists
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return True

    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")

    if per_file_fallback and path.is_dir():
        logger.debug(f"Retrying removal of {path} file by file")
        _remove_files_individually(path)
        try:
            shutil.rmtree(path)
            return True
        except OSError as e:
            logger.warning(f"Second attempt to remove {path} failed: {e}")

    return not path.exists()


def delete_files_with_condition(
    directory: Path | str, condition: Callable[[str], bool]
) -> list[Path]:
    """
    Delete the files directly inside `directory` whose name satisfies `condition`.

    Unlike a cleanup that propagates errors, every failure is logged and skipped.

    :return: the files that were removed
    """
    directory = Path(directory)
    removed: list[Path] = []
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return removed
    except OSError as e:
        logger.warning(f"Could not list {directory}: {e}")
        return removed

    for entry in entries:
        if entry.is_dir(follow_symlinks=False) or not condition(entry.name):
            continue
        file_path = Path(entry.path)
        try:
            file_path.unlink()
            removed.append(file_path)
            logger.debug(f"Deleted: {file_path}")
        except OSError as e:
            if attempt_chmod(os.remove, str(file_path), e):
                removed.append(file_path)
            else:
                logger.warning(f"Failed to delete {file_path}: {e}")
    return removed


def delete_files_only_extension(
    directory: Path | str, extensions: tuple[str, ...]
) -> list[Path]:
    return delete_files_with_condition(
        directory, lambda name: os.path.splitext(name)[1] in extensions
    )


def make_executable(path: Path) -> None:
    """Add the executable bits to `path` if it exists. Errors are logged."""
    try:
        mode = path.stat().st_mode
        path.chmod(mode | 0o755)
    except FileNotFoundError:
        logger.debug(f"Not marking missing file as executable: {path}")
    except OSError as e:
        logger.warning(f"Failed to mark {path} as executable: {e}")


def format_file_size(size_in_bytes: int) -> str:
    """Format bytes to a human-readable string."""
    if size_in_bytes < 1024:
        return f"{size_in_bytes} B"
    elif size_in_bytes < 1024 * 1024:
        return f"{size_in_bytes / 1024:.1f} KB"
    elif size_in_bytes < 1024 * 1024 * 1024:
        return f"{size_in_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_in_bytes / (1024 * 1024 * 1024):.2f} GB"


def format_speed(bytes_per_second: float) -> str:
    """Format a transfer rate the way the progress stream reports it."""
    if bytes_per_second < 1024:
        return f"{bytes_per_second:.0f} B/s"
    elif bytes_per_second < 1024 * 1024:
        return f"{bytes_per_second / 1024:.1f} KB/s"
    else:
        return f"{bytes_per_second / (1024 * 1024):.1f} MB/s"


def offline_uuid(player_name: str) -> uuid.UUID:
    """
    Deterministic placeholder account id for offline play.

    Name-based (version 3) UUID of "OfflinePlayer:<name>", the convention the
    client uses for offline profiles.
    """
    digest = bytearray(hashlib.md5(f"OfflinePlayer:{player_name}".encode()).digest())
    digest[6] = (digest[6] & 0x0F) | 0x30
    digest[8] = (digest[8] & 0x3F) | 0x80
    return uuid.UUID(bytes=bytes(digest))


def read_tail(path: Path, limit: int) -> str:
    """Return at most the last `limit` bytes of a text file, decoded leniently."""
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        size = f.tell()
        f.seek(max(0, size - limit))
        data = f.read()
    return data.decode("utf-8", errors="replace")
