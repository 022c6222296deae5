"""Host CUDA Toolkit installation via NVIDIA's local repository installer.

Installs the CUDA Toolkit (nvcc, development libraries, headers) from the
local .deb repository NVIDIA publishes for each release, pinned above the
distribution's own CUDA packages.
"""

import json
import os
import re
from typing import Optional

from ..config import SetupConfig
from ..utils.logging import log_info, log_warn, log_step, log_success
from ..utils.system import run_command, AptManager, get_os_info, get_sudo_prefix, get_running_driver_version

_CUDA_BASE_URL = "https://developer.download.nvidia.com/compute/cuda"

# Profile script path for persistent environment setup.
_CUDA_PROFILE_SCRIPT = "/etc/profile.d/cuda.sh"

_PIN_DESTINATION = "/etc/apt/preferences.d/cuda-repository-pin-600"


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def detect_cuda_toolkit() -> Optional[str]:
    """Check if the CUDA Toolkit is installed on the host.

    Returns:
        Version string (e.g. "12.9") if installed, None otherwise.
    """
    output = run_command("nvcc --version 2>/dev/null", capture_output=True, check=False)
    if output and "release" in output.lower():
        # Parse "Cuda compilation tools, release 12.9, V12.9.41"
        match = re.search(r"release\s+([\d.]+)", output)
        if match:
            return match.group(1)

    # Fallback: version.json in /usr/local/cuda
    version_json = "/usr/local/cuda/version.json"
    if os.path.exists(version_json):
        try:
            with open(version_json, "r") as fh:
                data = json.load(fh)
            ver = data.get("cuda", {}).get("version")
            if ver:
                return ver
        except (OSError, ValueError):
            pass

    return None


# ---------------------------------------------------------------------------
# Repository layout
# ---------------------------------------------------------------------------

def ubuntu_repo_id(os_info: Optional[dict] = None) -> str:
    """NVIDIA's repository id for this distribution, e.g. 'ubuntu2404'."""
    if os_info is None:
        os_info = get_os_info()
    version_id = os_info.get("VERSION_ID", "24.04")
    return f"ubuntu{version_id.replace('.', '')}"


def local_installer_name(version: str, driver: str, repo_id: str) -> str:
    """File name of the local repo installer for a CUDA release.

    e.g. cuda-repo-ubuntu2404-12-9-local_12.9.0-575.51.03-1_amd64.deb
    """
    major, minor, _patch = version.split(".")
    return f"cuda-repo-{repo_id}-{major}-{minor}-local_{version}-{driver}-1_amd64.deb"


def installer_urls(config: SetupConfig, repo_id: str) -> dict[str, str]:
    """Return the pin file and local installer URLs for the configured release."""
    installer = local_installer_name(config.cuda_version, config.bundled_driver, repo_id)
    return {
        "pin": f"{_CUDA_BASE_URL}/repos/{repo_id}/x86_64/cuda-{repo_id}.pin",
        "installer": f"{_CUDA_BASE_URL}/{config.cuda_version}/local_installers/{installer}",
    }


# ---------------------------------------------------------------------------
# Compatibility
# ---------------------------------------------------------------------------

def _ver_tuple(v: str) -> tuple[int, ...]:
    return tuple(int(x) for x in re.findall(r"\d+", v))


def check_driver_compatibility(config: SetupConfig) -> bool:
    """Warn when the running driver is older than the one bundled with the toolkit.

    Returns:
        True if the driver is compatible (or couldn't be checked).
    """
    installed = get_running_driver_version()
    if not installed:
        log_warn("Could not detect the running NVIDIA driver version")
        return True

    required = config.bundled_driver
    if _ver_tuple(installed) >= _ver_tuple(required):
        log_info(f"Driver {installed} meets minimum {required} for CUDA {config.cuda_version}")
        return True

    log_warn(
        f"Running driver {installed} is older than {required}, which CUDA "
        f"{config.cuda_version} ships with. The toolkit installs, but kernels may "
        f"not run until the driver is updated and the machine rebooted."
    )
    return False


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------

def _setup_local_repository(config: SetupConfig, repo_id: str) -> None:
    """Pin NVIDIA's repository and register the local installer repo."""
    sudo = get_sudo_prefix()
    urls = installer_urls(config, repo_id)
    major, minor = config.cuda_major_minor
    workdir = config.workdir
    pin_file = workdir / f"cuda-{repo_id}.pin"
    installer = workdir / urls["installer"].rsplit("/", 1)[1]

    log_info("Downloading CUDA repository pin...")
    run_command(f"wget -qO {pin_file} {urls['pin']}")
    run_command(f"{sudo}mv {pin_file} {_PIN_DESTINATION}")

    log_info(f"Downloading CUDA {config.cuda_version} local installer...")
    run_command(f"wget -qO {installer} {urls['installer']}")
    run_command(f"{sudo}dpkg -i {installer}")

    log_info("Installing CUDA repository keyring...")
    run_command(
        f"{sudo}cp /var/cuda-repo-{repo_id}-{major}-{minor}-local/cuda-*-keyring.gpg "
        f"/usr/share/keyrings/"
    )

    # Force apt to re-read sources
    AptManager.reset_cache()


def _install_cuda_toolkit_packages(config: SetupConfig) -> None:
    major, minor = config.cuda_major_minor
    package = f"cuda-toolkit-{major}-{minor}"

    apt = AptManager()
    log_info(f"Installing {package}...")
    apt.install(package)


# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------

CUDA_PROFILE = (
    '# CUDA Toolkit environment (managed by verl-setup)\n'
    'if [ -d /usr/local/cuda/bin ]; then\n'
    '    export PATH="/usr/local/cuda/bin${PATH:+:$PATH}"\n'
    'fi\n'
    'if [ -d /usr/local/cuda/lib64 ]; then\n'
    '    export LD_LIBRARY_PATH="/usr/local/cuda/lib64${LD_LIBRARY_PATH:+:$LD_LIBRARY_PATH}"\n'
    'fi\n'
)


def _configure_cuda_environment(config: SetupConfig) -> None:
    """Install a profile.d script so CUDA is on PATH for all users."""
    log_info(f"Writing CUDA environment script to {_CUDA_PROFILE_SCRIPT}...")
    staged = config.workdir / "cuda.sh"
    try:
        staged.write_text(CUDA_PROFILE)
    except OSError as exc:
        log_warn(f"Could not stage {staged}: {exc}")
        log_info("You can manually add /usr/local/cuda/bin to your PATH")
        return

    result = run_command(
        f"{get_sudo_prefix()}install -m 644 {staged} {_CUDA_PROFILE_SCRIPT}", check=False,
    )
    if result.returncode == 0:
        log_info("CUDA environment configured (effective on next login)")
    else:
        log_warn(f"Could not install {_CUDA_PROFILE_SCRIPT}")
        log_info("You can manually add /usr/local/cuda/bin to your PATH")


def _verify_cuda_toolkit() -> bool:
    """Verify nvcc answers after sourcing the profile script."""
    log_info("Verifying CUDA Toolkit installation...")

    output = run_command(
        f"bash -c 'source {_CUDA_PROFILE_SCRIPT} 2>/dev/null; nvcc --version' 2>/dev/null",
        capture_output=True, check=False,
    )
    if output and "release" in output.lower():
        for line in output.splitlines():
            if "release" in line.lower():
                log_info(f"  {line.strip()}")
                break
        return True

    log_warn("nvcc not found on PATH (may need a new shell or reboot)")
    return False


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def install_cuda_toolkit(config: SetupConfig) -> None:
    """Install the configured CUDA Toolkit release on the host."""
    log_step(f"Installing CUDA {config.cuda_version}")

    existing = detect_cuda_toolkit()
    if existing:
        log_info(f"CUDA Toolkit already present (version: {existing}), installing {config.cuda_version} alongside")

    check_driver_compatibility(config)

    repo_id = ubuntu_repo_id()
    _setup_local_repository(config, repo_id)
    _install_cuda_toolkit_packages(config)
    _configure_cuda_environment(config)
    _verify_cuda_toolkit()

    log_success(f"CUDA Toolkit {config.cuda_version} installed")
