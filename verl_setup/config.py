"""Operator configuration for a provisioning run."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PORT = 5000
DEFAULT_SESSION = "jupyter_session"
DEFAULT_CUDA_VERSION = "12.9.0"
DEFAULT_BUILD_JOBS = 32
DEFAULT_POLL_ATTEMPTS = 90
DEFAULT_POLL_INTERVAL = 1.0

APEX_REPO_URL = "https://github.com/NVIDIA/apex.git"
VERL_REPO_URL = "https://github.com/volcengine/verl.git"
PYTORCH_INDEX_URL = "https://download.pytorch.org/whl/{tag}"

# Driver bundled with each CUDA local repo installer (from NVIDIA release notes).
# Also the minimum driver the toolkit expects.
BUNDLED_DRIVER: dict[str, str] = {
    "13.0.0": "580.65.06",
    "12.9.1": "575.57.08",
    "12.9.0": "575.51.03",
    "12.8.1": "570.124.06",
    "12.8.0": "570.86.10",
    "12.6.3": "560.35.05",
}


@dataclass
class SetupConfig:
    port: int = DEFAULT_PORT
    session_name: str = DEFAULT_SESSION
    cuda_version: str = DEFAULT_CUDA_VERSION
    workdir: Path = field(default_factory=Path.cwd)
    build_jobs: int = DEFAULT_BUILD_JOBS
    use_megatron: bool = False
    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    strict_readiness: bool = False
    assume_yes: bool = False

    def __post_init__(self) -> None:
        self.workdir = Path(self.workdir)
        validate_port(self.port)
        if self.cuda_version not in BUNDLED_DRIVER:
            known = ", ".join(sorted(BUNDLED_DRIVER))
            raise ValueError(f"Unsupported CUDA version {self.cuda_version} (known: {known})")
        if not self.session_name:
            raise ValueError("tmux session name must not be empty")
        if self.build_jobs < 1:
            raise ValueError("build jobs must be at least 1")
        if self.poll_attempts < 1:
            raise ValueError("poll attempts must be at least 1")
        if self.poll_interval < 0:
            raise ValueError("poll interval must not be negative")

    @property
    def cuda_major_minor(self) -> tuple[str, str]:
        major, minor, _patch = self.cuda_version.split(".")
        return major, minor

    @property
    def bundled_driver(self) -> str:
        return BUNDLED_DRIVER[self.cuda_version]

    @property
    def pytorch_index_url(self) -> str:
        """Wheel index matching the toolkit, e.g. .../whl/cu129 for 12.9.x"""
        major, minor = self.cuda_major_minor
        return PYTORCH_INDEX_URL.format(tag=f"cu{major}{minor}")


def validate_port(port: int) -> int:
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        raise ValueError(f"Invalid port {port!r}: expected an integer between 1 and 65535")
    return port
