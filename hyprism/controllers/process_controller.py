import os
import subprocess
import threading
import time
from pathlib import Path

import psutil
from loguru import logger

from hyprism.models.instance import RELEASE_BRANCH, InstanceKey, normalize_branch
from hyprism.utils.constants import LOG_TAIL_BYTES
from hyprism.utils.exception import ProcessError
from hyprism.utils.generic import offline_uuid, read_tail
from hyprism.utils.instance_paths import InstanceLayout


class GameProcessController:
    """
    Launches the game client and keeps track of it.

    Only one client is tracked at a time. The tracked handle is only a hint:
    a client started by an earlier run of the launcher is found by probing the
    OS process table, so every query goes to the OS.
    """

    def __init__(self, layout: InstanceLayout) -> None:
        self.layout = layout
        self.profile = layout.profile
        self._mutex = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._running = False
        self._exit_event = threading.Event()
        self._exit_event.set()

    def build_client_args(
        self, player_name: str, game_dir: Path, user_data_dir: Path, java_path: Path
    ) -> list[str]:
        return [
            "--app-dir",
            str(game_dir),
            "--user-dir",
            str(user_data_dir),
            "--java-exec",
            str(java_path),
            "--auth-mode",
            "offline",
            "--uuid",
            str(offline_uuid(player_name)),
            "--name",
            player_name,
        ]

    def launch(
        self, player_name: str, branch: str = RELEASE_BRANCH, version: int = 0
    ) -> int:
        """
        Start the client of an installed instance.

        :return: pid of the started process
        :raises ProcessError: if the client or Java is missing, the client is
            already running, or the process could not be started
        """
        key = InstanceKey(branch=normalize_branch(branch), version=version)
        game_dir = self.layout.game_dir(key)
        client_path = self.layout.client_path(key)
        if not client_path.exists():
            raise ProcessError(
                f"Game client not found at {client_path} (instance {key} not installed)",
                hint="Install the game first.",
            )

        user_data_dir = self.layout.user_data_dir(key)
        try:
            user_data_dir.mkdir(parents=True, exist_ok=True)
            java_path = self.profile.launch_java_path(
                self.layout.data_root, self.layout.jre_dir
            )
        except OSError as e:
            raise ProcessError(f"Failed to prepare launch of {key}: {e}") from e
        if not java_path.exists():
            raise ProcessError(
                f"Java not found at {java_path}",
                hint="Run an install to provision the Java runtime.",
            )

        client_args = self.build_client_args(
            player_name, game_dir, user_data_dir, java_path
        )
        command = self.profile.build_launch_command(
            game_dir, client_args, cwd=self.layout.data_root
        )

        with self._mutex:
            if self._process is not None and self._process.poll() is None:
                raise ProcessError(
                    "The game is already running",
                    hint="Close the running game or terminate it first.",
                )
            logger.info(f"Launching {key} from {game_dir}")
            logger.debug(f"Launch command: {command.argv}")
            try:
                process = subprocess.Popen(
                    command.argv,
                    cwd=command.cwd,
                    env=command.env,
                    **command.popen_kwargs,
                )
            except OSError as e:
                raise ProcessError(f"Failed to start game: {e}") from e

            self._process = process
            self._running = True
            exit_event = threading.Event()
            self._exit_event = exit_event

        supervisor = threading.Thread(
            target=self._supervise,
            args=(process, exit_event),
            name="game-supervisor",
            daemon=True,
        )
        supervisor.start()
        logger.info(f"Game started with pid {process.pid}")
        return process.pid

    def _supervise(self, process: subprocess.Popen, exit_event: threading.Event) -> None:
        returncode = process.wait()
        logger.info(f"Game process {process.pid} exited with code {returncode}")
        with self._mutex:
            if self._process is process:
                self._process = None
                self._running = False
        exit_event.set()

    def find_client_processes(self) -> list[psutil.Process]:
        """Processes in the OS process table that look like the game client."""
        own_pid = os.getpid()
        matches: list[psutil.Process] = []
        for process in psutil.process_iter(attrs=["name", "cmdline"]):
            try:
                if process.pid == own_pid:
                    continue
                name = process.info.get("name") or ""
                cmdline = process.info.get("cmdline") or []
                if self.profile.matches_client_process(name, cmdline):
                    matches.append(process)
            except (psutil.AccessDenied, psutil.NoSuchProcess):
                continue
        return matches

    def is_running(self) -> bool:
        """
        Probe the OS for a running client, refreshing the cached state.
        """
        try:
            found = bool(self.find_client_processes())
        except psutil.Error as e:
            logger.warning(f"Error scanning processes for the game client: {e}")
            found = False

        with self._mutex:
            tracked_alive = self._process is not None and self._process.poll() is None
            self._running = found or tracked_alive
            if not self._running:
                self._process = None
            return self._running

    def terminate(self) -> None:
        """
        Kill the running client, through the tracked handle if it is alive and
        otherwise by process name.

        :raises ProcessError: if no client is running
        """
        if not self.is_running():
            raise ProcessError("No game process running")

        with self._mutex:
            process = self._process

        killed = False
        if process is not None and process.poll() is None:
            try:
                process.kill()
                killed = True
                logger.info(f"Killed game process {process.pid}")
            except OSError as e:
                logger.warning(f"Failed to kill game process {process.pid}: {e}")

        if not killed:
            for candidate in self.find_client_processes():
                try:
                    candidate.kill()
                    killed = True
                    logger.info(f"Killed game process {candidate.pid} by name")
                except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
                    logger.warning(f"Failed to kill process {candidate.pid}: {e}")

        with self._mutex:
            if self._process is process:
                self._process = None
            self._running = False

        if not killed:
            raise ProcessError("Failed to terminate the game process")

    def wait_for_exit(self, timeout: float | None = None) -> bool:
        """
        Block until the client has exited.

        Waits on the exit notification of the tracked process, then on any
        client found in the process table (adopted processes, or the real client
        behind a launcher stub).

        :return: True if no client is running any more, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._mutex:
            exit_event = self._exit_event

        if not exit_event.wait(timeout):
            return False

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        processes = self.find_client_processes()
        if not processes:
            return True
        _, alive = psutil.wait_procs(processes, timeout=remaining)
        if not alive:
            with self._mutex:
                self._running = False
        return not alive

    def log_candidates(self) -> list[Path]:
        data_root = self.layout.data_root
        default_key = InstanceKey()
        game_dir = self.layout.game_dir(default_key)
        instance_logs = self.layout.user_data_dir(default_key) / "logs"
        return [
            data_root / "UserData" / "logs" / "latest.log",
            data_root / "UserData" / "logs" / "game.log",
            data_root / "UserData" / "logs" / "client.log",
            instance_logs / "latest.log",
            instance_logs / "game.log",
            instance_logs / "client.log",
            game_dir / "logs" / "latest.log",
            game_dir / "logs" / "game.log",
            game_dir / "Client" / "logs" / "latest.log",
            self.layout.logs_dir / "game.log",
        ]

    def collect_logs(self) -> str:
        """
        Tail of every known game log, or a listing of the log folders if no
        log was found.
        """
        sections: list[str] = []
        for path in self.log_candidates():
            try:
                if not path.is_file() or path.stat().st_size == 0:
                    continue
                content = read_tail(path, LOG_TAIL_BYTES)
            except OSError as e:
                logger.debug(f"Could not read log {path}: {e}")
                continue
            sections.append(f"=== {self._display_name(path)} ===\n{content}\n\n")

        if sections:
            return "".join(sections)

        default_key = InstanceKey()
        check_dirs = [
            self.layout.data_root / "UserData",
            self.layout.data_root / "UserData" / "logs",
            self.layout.instance_dir(default_key),
            self.layout.user_data_dir(default_key) / "logs",
            self.layout.game_dir(default_key) / "logs",
        ]
        lines = ["No game logs found. Checking directories:\n\n"]
        for folder in check_dirs:
            if folder.is_dir():
                lines.append(f"✓ {folder} exists\n")
                try:
                    for entry in sorted(folder.iterdir()):
                        lines.append(f"   - {entry.name}\n")
                except OSError as e:
                    lines.append(f"   (unreadable: {e})\n")
            else:
                lines.append(f"✗ {folder} not found\n")
        return "".join(lines)

    def _display_name(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.layout.data_root))
        except ValueError:
            return path.name
