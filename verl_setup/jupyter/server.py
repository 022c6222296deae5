"""Jupyter installation, remote-access configuration and launch."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Optional

from ..config import SetupConfig
from ..utils.logging import log_info, log_step, log_success
from ..utils.system import PipManager, python_command, run_command
from .poller import ServerEndpoint
from .session import TmuxSession

JUPYTER_PACKAGES = ("jupyter", "notebook", "jupyterlab")
CONFIG_FILENAME = "jupyter_notebook_config.py"

# Written for both the current ServerApp and the legacy NotebookApp.
_CONFIG_TEMPLATE = """\
c = get_config()

# Modern Jupyter (ServerApp)
c.ServerApp.ip = '{ip}'
c.ServerApp.port = {port}
c.ServerApp.open_browser = False
c.ServerApp.allow_remote_access = True
c.ServerApp.allow_origin = '{allow_origin}'

# Backward-compat (NotebookApp)
c.NotebookApp.ip = '{ip}'
c.NotebookApp.port = {port}
c.NotebookApp.open_browser = False
c.NotebookApp.allow_remote_access = True
c.NotebookApp.allow_origin = '{allow_origin}'
"""


def install_jupyter() -> None:
    log_step("Installing Jupyter packages with pip")
    PipManager().install(*JUPYTER_PACKAGES)


def render_jupyter_config(port: int, ip: str = "0.0.0.0", allow_origin: str = "*") -> str:
    return _CONFIG_TEMPLATE.format(port=int(port), ip=ip, allow_origin=allow_origin)


def write_jupyter_config(port: int, config_dir: Optional[Path] = None, generate: bool = True) -> Path:
    """Generate the default config, then overwrite it with remote-access settings.

    Returns:
        Path of the written config file.
    """
    log_step("Generating and writing Jupyter config")
    if generate:
        run_command(python_command("jupyter", "notebook", "--generate-config"),
                    capture_output=True, check=False)

    config_dir = Path(config_dir) if config_dir is not None else Path.home() / ".jupyter"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / CONFIG_FILENAME
    path.write_text(render_jupyter_config(port))
    log_info(f"Wrote {path}")
    return path


def setup_jupyter(config: SetupConfig) -> Path:
    install_jupyter()
    return write_jupyter_config(config.port)


def launch_command(port: int) -> str:
    """Login shell command that execs JupyterLab on ``port``.

    JupyterLab runs under the interpreter it was installed into, not whatever
    ``jupyter`` the login shell's PATH finds first.
    """
    lab = python_command("jupyter", "lab", f"--port={int(port)}", "--no-browser", "--allow-root")
    inner = f"exec {shlex.join(lab)}"
    return f"bash -lc {shlex.quote(inner)}"


def launch_jupyter(config: SetupConfig) -> tuple[TmuxSession, ServerEndpoint]:
    """Start JupyterLab in the configured tmux session.

    Returns:
        The session handle and an endpoint not yet resolved by polling.
    """
    log_step(f"Starting Jupyter Lab in tmux session '{config.session_name}' on port {config.port}")
    session = TmuxSession.acquire_or_recreate(config.session_name, launch_command(config.port))
    log_success("Jupyter Lab launched")
    return session, ServerEndpoint(port=config.port, session_name=session.name)
