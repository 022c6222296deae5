"""System utilities for command execution and package management"""

import os
import re
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

from .logging import log_info, log_error


class SetupStepFailure(RuntimeError):
    """A provisioning command exited nonzero; the run cannot continue."""

    def __init__(self, step: str, cmd=None, returncode: int | None = None, reason: str | None = None):
        self.step = step
        self.cmd = cmd
        self.returncode = returncode
        if cmd is None:
            super().__init__(f"Step '{step}' failed: {reason}")
            return
        detail = f" (exit status {returncode})" if returncode is not None else ""
        super().__init__(f"Step '{step}' failed running: {_display(cmd)}{detail}")


def _display(cmd) -> str:
    if isinstance(cmd, str):
        return cmd
    return shlex.join(str(c) for c in cmd)


def run_command(cmd, shell=None, check=True, capture_output=False, env=None, cwd=None):
    """
    Execute a system command with logging

    Args:
        cmd: Command to execute (string or list)
        shell: Whether to use shell (defaults to True for strings)
        check: Whether to raise exception on failure
        capture_output: Whether to capture and return output
        env: Extra environment variables merged over os.environ
        cwd: Working directory for the command

    Returns:
        CompletedProcess object or output string if capture_output=True
    """
    if shell is None:
        shell = isinstance(cmd, str)
    log_info(f"Running: {_display(cmd)}")

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        if capture_output:
            result = subprocess.run(cmd, shell=shell, check=check,
                                    capture_output=True, text=True,
                                    stdin=subprocess.DEVNULL,
                                    env=full_env, cwd=cwd)
            return result.stdout.strip()
        else:
            result = subprocess.run(cmd, shell=shell, check=check,
                                    stdin=subprocess.DEVNULL,
                                    env=full_env, cwd=cwd)
            return result
    except subprocess.CalledProcessError:
        log_error(f"Command failed: {_display(cmd)}")
        raise


def get_sudo_prefix() -> str:
    """Return 'sudo ' when not root and sudo is available, else ''."""
    if os.geteuid() == 0:
        return ""
    if shutil.which("sudo"):
        return "sudo "
    return ""


class AptManager:
    """Manages apt operations with caching"""

    _update_done: bool = False

    _ENV = {'DEBIAN_FRONTEND': 'noninteractive'}

    def __init__(self):
        self.sudo = get_sudo_prefix()

    def update(self, force: bool = False):
        """Update apt cache if not already done (or always when forced)"""
        if force or not AptManager._update_done:
            run_command(f"{self.sudo}apt-get update", env=self._ENV)
            AptManager._update_done = True

    @classmethod
    def reset_cache(cls):
        """Reset the update cache so the next update() call re-runs apt-get update.

        Call this after adding new repositories so packages from
        those repos can be discovered.
        """
        cls._update_done = False

    def install(self, *packages):
        """Install packages using apt"""
        self.update()
        package_list = ' '.join(packages)
        run_command(f"{self.sudo}apt-get install -y {package_list}", env=self._ENV)

    def upgrade(self):
        """Upgrade installed packages"""
        run_command(f"{self.sudo}apt-get upgrade -y", env=self._ENV)

    def dist_upgrade(self):
        """Upgrade with dependency changes (may add or remove packages)"""
        run_command(f"{self.sudo}apt-get dist-upgrade -y", env=self._ENV)


def needs_break_system_packages() -> bool:
    """Check if pip requires --break-system-packages (PEP 668, Ubuntu 24.04+).

    PEP 668 marks system Python as externally managed via a marker file
    in the stdlib directory.  Virtual environments never carry it.
    """
    if sys.prefix != sys.base_prefix:
        return False
    marker = (Path(sys.base_prefix) / "lib"
              / f"python{sys.version_info.major}.{sys.version_info.minor}"
              / "EXTERNALLY-MANAGED")
    return marker.is_file()


def python_command(*args) -> list[str]:
    """Run a module with the interpreter verl-setup itself runs under"""
    return [sys.executable, "-m", *args]


def interpreter_path_env() -> dict[str, str]:
    """PATH with the current interpreter's bin directory first.

    Scripts that call ``pip`` or ``python`` by name then reach the same
    environment PipManager installs into, even from an unactivated venv.
    """
    bindir = str(Path(sys.executable).parent)
    return {'PATH': os.pathsep.join([bindir, os.environ.get('PATH', '')])}


class PipManager:
    """Runs pip through the current interpreter"""

    def __init__(self):
        self.break_system = needs_break_system_packages()

    def _base(self, subcommand: str) -> list[str]:
        cmd = python_command("pip", subcommand)
        if subcommand in ("install", "uninstall") and self.break_system:
            cmd.append("--break-system-packages")
        return cmd

    def install(self, *args, env=None, cwd=None, check=True):
        """pip install with the given packages and flags"""
        return run_command(self._base("install") + list(args), env=env, cwd=cwd, check=check)

    def uninstall(self, *packages, check=False):
        """pip uninstall -y; missing packages are not an error by default"""
        return run_command(self._base("uninstall") + ["-y", *packages], check=check)


def get_running_driver_version() -> str | None:
    """Get the currently running NVIDIA driver version from nvidia-smi.

    Returns:
        Full version string (e.g. '575.51.03') or None if not available.
    """
    try:
        output = subprocess.run(
            "nvidia-smi --query-gpu=driver_version --format=csv,noheader",
            shell=True, capture_output=True, text=True,
        )
        if output.returncode == 0:
            version = output.stdout.strip().splitlines()[0] if output.stdout.strip() else ""
            if re.match(r'^\d+\.\d+', version):
                return version
    except OSError:
        pass
    return None


def check_internet():
    """Check internet connectivity"""
    try:
        run_command("ping -c 1 8.8.8.8", capture_output=True)
        return True
    except Exception:
        return False


def get_os_info():
    """Get OS information from /etc/os-release"""
    try:
        with open('/etc/os-release', 'r') as f:
            lines = f.readlines()

        info = {}
        for line in lines:
            if '=' in line:
                key, value = line.strip().split('=', 1)
                info[key] = value.strip('"')

        return info
    except OSError:
        return {}


def check_nvidia_gpu():
    """Check if NVIDIA GPU is present"""
    try:
        output = run_command("lspci | grep -i nvidia", capture_output=True, check=False)
        return bool(output)
    except OSError:
        return False
