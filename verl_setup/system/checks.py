"""System checks and validation"""

import os
import shutil
import sys

from ..config import SetupConfig
from ..cuda.toolkit import detect_cuda_toolkit
from ..utils.logging import log_info, log_warn, log_error, log_step
from ..utils.prompts import prompt_yes_no
from ..utils.system import run_command, check_internet, get_os_info, check_nvidia_gpu, get_running_driver_version

SUPPORTED_VERSIONS = ["24.04"]


def get_system_info():
    """Gather the facts shown before provisioning starts"""
    os_info = get_os_info()
    info = {
        'os': os_info.get('PRETTY_NAME', 'Unknown OS'),
        'kernel': run_command("uname -r", capture_output=True, check=False) or "Unknown",
        'gpu': None,
        'driver_version': get_running_driver_version(),
        'cuda_toolkit': detect_cuda_toolkit(),
        'python': sys.version.split()[0],
    }

    gpu_name = run_command(
        "nvidia-smi --query-gpu=gpu_name --format=csv,noheader 2>/dev/null",
        capture_output=True, check=False,
    )
    if gpu_name:
        names = [line.strip() for line in gpu_name.splitlines() if line.strip()]
        info['gpu'] = f"{len(names)}x {names[0]}" if len(names) > 1 else names[0]

    return info


def display_system_info(info):
    """Display system information in a formatted way"""
    print("\n" + "=" * 60)
    print("                    SYSTEM INFORMATION")
    print("=" * 60)
    print(f"\n  Operating System: {info['os']}")
    print(f"  Kernel:           {info['kernel']}")
    print(f"  Python:           {info['python']}")
    print(f"  GPU:              {info['gpu'] or 'Not detected or driver not loaded'}")
    print(f"  NVIDIA Driver:    {info['driver_version'] or '[--] Not loaded'}")
    print(f"  CUDA Toolkit:     {info['cuda_toolkit'] or '[--] Not installed'}")
    print("\n" + "=" * 60)


def _confirm_or_exit(message: str, config: SetupConfig) -> None:
    """Continue past a failed check when the operator agrees (or passed --yes)."""
    if config.assume_yes:
        log_warn(f"{message} Continuing (--yes).")
        return
    if not sys.stdin.isatty():
        log_error(f"{message} Re-run with --yes to continue non-interactively.")
        sys.exit(1)
    if not prompt_yes_no(f"{message} Continue anyway?", default='n'):
        sys.exit(1)


def run_preliminary_checks(config: SetupConfig, needs_network: bool = True, needs_root: bool = True):
    """Run fast, essential gates before any step runs.

    Args:
        config: Run configuration (``assume_yes`` skips confirmations)
        needs_network: Whether selected steps download anything
        needs_root: Whether selected steps touch system packages
    """
    log_step("Running preliminary system checks...")

    if needs_root:
        _check_privileges(config)
    _check_gpu_present(config)
    _check_ubuntu_version(config)
    if needs_network:
        _check_internet_connectivity(config)


def _check_privileges(config: SetupConfig):
    if os.geteuid() == 0:
        log_info("✓ Running as root")
    elif shutil.which("sudo"):
        log_info("✓ Not root, system commands will use sudo")
    else:
        log_error("Not running as root and sudo is not available.")
        _confirm_or_exit("System package steps will fail.", config)


def _check_gpu_present(config: SetupConfig):
    if check_nvidia_gpu():
        log_info("✓ NVIDIA GPU detected")
        return
    log_error("No NVIDIA GPU detected.")
    _confirm_or_exit("CUDA and apex builds need an NVIDIA GPU.", config)


def _check_ubuntu_version(config: SetupConfig):
    """Check Ubuntu version compatibility"""
    os_info = get_os_info()
    detected_name = os_info.get('NAME', '')
    detected_version = os_info.get('VERSION_ID', '')
    pretty_name = os_info.get('PRETTY_NAME', 'Unknown OS')

    if detected_name != 'Ubuntu':
        _confirm_or_exit(
            f"This tool is designed for Ubuntu ({', '.join(SUPPORTED_VERSIONS)}), "
            f"but detected: {pretty_name}.",
            config,
        )
    elif detected_version not in SUPPORTED_VERSIONS:
        _confirm_or_exit(
            f"This tool supports Ubuntu {', '.join(SUPPORTED_VERSIONS)}, "
            f"but detected Ubuntu {detected_version}. NVIDIA's installer for "
            f"ubuntu{detected_version.replace('.', '')} will be used.",
            config,
        )
    else:
        log_info(f"Ubuntu {detected_version} detected (supported)")


def _check_internet_connectivity(config: SetupConfig):
    if not check_internet():
        log_error("No internet connectivity detected!")
        _confirm_or_exit("Downloads will fail without internet.", config)
    else:
        log_info("✓ Internet connectivity verified")
