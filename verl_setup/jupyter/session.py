"""Named tmux sessions that outlive the setup process."""

from __future__ import annotations

import shlex
import subprocess

from ..utils.logging import log_info, log_warn
from ..utils.system import run_command


class TmuxSession:
    """Handle on a tmux session identified by name.

    Only one session per name can exist, so acquiring a name that is already
    taken destroys the previous session.
    """

    def __init__(self, name: str):
        if not name:
            raise ValueError("tmux session name must not be empty")
        self.name = name

    def __repr__(self) -> str:
        return f"TmuxSession({self.name!r})"

    @property
    def pane_target(self) -> str:
        """First pane of the session's current window."""
        return f"{self.name}:.+0"

    def exists(self) -> bool:
        result = subprocess.run(
            ["tmux", "has-session", "-t", self.name],
            capture_output=True, text=True, stdin=subprocess.DEVNULL,
        )
        return result.returncode == 0

    def kill(self) -> None:
        run_command(["tmux", "kill-session", "-t", self.name], check=False)

    def start(self, command: str) -> None:
        run_command(["tmux", "new-session", "-d", "-s", self.name, command])

    @classmethod
    def acquire_or_recreate(cls, name: str, command: str) -> "TmuxSession":
        """Start ``command`` in a fresh detached session called ``name``."""
        session = cls(name)
        if session.exists():
            log_warn(f"tmux session '{name}' already exists, replacing it")
            session.kill()
        session.start(command)
        log_info(f"Started tmux session '{name}'")
        return session

    def attach_command(self) -> str:
        return f"tmux attach -t {shlex.quote(self.name)}"

    def new_window_command(self, window_name: str, command: str) -> str:
        """Shell command an operator can paste to run ``command`` in a new window."""
        return shlex.join(["tmux", "new-window", "-t", self.name, "-n", window_name, command])

    def capture(self, lines: int = 80) -> str:
        """Last ``lines`` lines of the session's pane; empty if unavailable."""
        try:
            result = subprocess.run(
                ["tmux", "capture-pane", "-t", self.pane_target, "-p", "-S", f"-{lines}"],
                capture_output=True, text=True, stdin=subprocess.DEVNULL,
            )
        except OSError:
            return ""
        if result.returncode != 0:
            return ""
        return result.stdout

    @staticmethod
    def list_sessions() -> str:
        """``tmux ls`` output; empty when no server is running."""
        try:
            result = subprocess.run(
                ["tmux", "ls"],
                capture_output=True, text=True, stdin=subprocess.DEVNULL,
            )
        except OSError:
            return ""
        if result.returncode != 0:
            return ""
        return result.stdout
