"""verl-setup - Command Line Interface

Entry point for the verl-setup CLI command and python3 -m verl_setup.
Provisions a GPU machine for verl and leaves JupyterLab running in tmux.
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
import traceback
from pathlib import Path
from typing import Optional

from verl_setup import __version__
from verl_setup.config import (
    SetupConfig,
    BUNDLED_DRIVER,
    DEFAULT_BUILD_JOBS,
    DEFAULT_CUDA_VERSION,
    DEFAULT_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PORT,
    DEFAULT_SESSION,
)
from verl_setup.utils.logging import log_error, log_step, log_info, log_success
from verl_setup.utils.prompts import prompt_port
from verl_setup.utils.system import SetupStepFailure
from verl_setup.system.checks import run_preliminary_checks, get_system_info, display_system_info
from verl_setup.system.upgrade import upgrade_system_packages, install_operator_tools
from verl_setup.cuda.toolkit import install_cuda_toolkit
from verl_setup.cuda.pytorch import upgrade_pytorch
from verl_setup.builds.apex import install_apex
from verl_setup.builds.verl import install_verl
from verl_setup.jupyter.server import setup_jupyter, launch_jupyter
from verl_setup.jupyter.poller import ReadinessPoller, RetryPolicy
from verl_setup.jupyter.report import show_summary


# ---------------------------------------------------------------------------
# Step identifiers (stable IDs independent of position)
# ---------------------------------------------------------------------------

STEP_CUDA_TOOLKIT = "cuda_toolkit"
STEP_PYTORCH = "pytorch"
STEP_SYSTEM_UPGRADE = "system_upgrade"
STEP_APEX = "apex"
STEP_VERL = "verl"
STEP_TOOLS = "tools"
STEP_JUPYTER = "jupyter"
STEP_LAUNCH = "launch"

# Execution priority (lower = runs first).  Launch always runs last.
EXECUTION_ORDER: dict[str, int] = {
    STEP_CUDA_TOOLKIT: 1,
    STEP_PYTORCH: 2,
    STEP_SYSTEM_UPGRADE: 3,
    STEP_APEX: 4,
    STEP_VERL: 5,
    STEP_TOOLS: 6,
    STEP_JUPYTER: 7,
    STEP_LAUNCH: 8,
}

STEP_DESCRIPTIONS: dict[str, str] = {
    STEP_CUDA_TOOLKIT: "Install the CUDA toolkit from NVIDIA's local repo installer",
    STEP_PYTORCH: "Reinstall torch/torchvision from the CUDA-matched wheel index",
    STEP_SYSTEM_UPGRADE: "apt update, upgrade and dist-upgrade",
    STEP_APEX: "Build NVIDIA apex with C++/CUDA extensions",
    STEP_VERL: "Install verl, its inference engines and requirements",
    STEP_TOOLS: "Install nano and tmux",
    STEP_JUPYTER: "Install Jupyter and write the remote-access config",
    STEP_LAUNCH: "Start JupyterLab in tmux and wait for its token",
}

# Steps that download packages or sources.
_NETWORK_STEPS: set[str] = {
    STEP_CUDA_TOOLKIT, STEP_PYTORCH, STEP_SYSTEM_UPGRADE,
    STEP_APEX, STEP_VERL, STEP_TOOLS, STEP_JUPYTER,
}

# Steps that change system packages.
_ROOT_STEPS: set[str] = {STEP_CUDA_TOOLKIT, STEP_SYSTEM_UPGRADE, STEP_TOOLS}

EXIT_OK = 0
EXIT_SETUP_FAILED = 1
EXIT_NOT_READY = 2


def show_banner() -> None:
    """Display application banner."""
    banner = f"""
{"=" * 62}
               verl-setup {__version__}
     CUDA, PyTorch, apex, verl and JupyterLab for GPU hosts
{"=" * 62}
"""
    print(banner)


# ---------------------------------------------------------------------------
# Arguments and configuration
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verl-setup",
        description="Provision a GPU machine for verl and launch JupyterLab in tmux",
    )
    parser.add_argument("--port", type=int, default=None,
                        help=f"Jupyter port (default: $JUPYTER_PORT, else prompt, {DEFAULT_PORT})")
    parser.add_argument("--session", default=os.getenv("JUPYTER_SESSION", DEFAULT_SESSION),
                        help=f"tmux session name (default: $JUPYTER_SESSION, else {DEFAULT_SESSION})")
    parser.add_argument("--cuda-version", default=DEFAULT_CUDA_VERSION,
                        choices=sorted(BUNDLED_DRIVER),
                        help=f"CUDA toolkit version (default: {DEFAULT_CUDA_VERSION})")
    parser.add_argument("--workdir", type=Path, default=None,
                        help="Directory apex and verl are cloned into (default: current)")
    parser.add_argument("--jobs", type=int, default=DEFAULT_BUILD_JOBS,
                        help=f"Parallel build jobs for apex (default: {DEFAULT_BUILD_JOBS})")
    parser.add_argument("--use-megatron", action="store_true",
                        help="Install Megatron-Core with verl's inference engines")
    parser.add_argument("--poll-attempts", type=int, default=DEFAULT_POLL_ATTEMPTS,
                        help=f"Readiness checks before giving up (default: {DEFAULT_POLL_ATTEMPTS})")
    parser.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL,
                        help=f"Seconds between readiness checks (default: {DEFAULT_POLL_INTERVAL:g})")
    parser.add_argument("--skip", action="append", default=[], choices=list(EXECUTION_ORDER),
                        metavar="STEP", help="Skip a step (repeatable)")
    parser.add_argument("--only", action="append", default=[], choices=list(EXECUTION_ORDER),
                        metavar="STEP", help="Run only the named steps (repeatable)")
    parser.add_argument("--strict-readiness", action="store_true",
                        help=f"Exit {EXIT_NOT_READY} when the server never reports its URL")
    parser.add_argument("-y", "--yes", action="store_true",
                        help="Never prompt; accept defaults")
    parser.add_argument("--list-steps", action="store_true",
                        help="Print the steps in execution order and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _env_int(name: str) -> Optional[int]:
    """Integer value of an environment variable, None when unset or empty."""
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def resolve_steps(only: list[str], skip: list[str]) -> list[str]:
    """Selected steps, de-duplicated and sorted by EXECUTION_ORDER."""
    selected = set(only) if only else set(EXECUTION_ORDER)
    selected -= set(skip)
    return sorted(selected, key=lambda s: EXECUTION_ORDER[s])


def build_config(args: argparse.Namespace) -> SetupConfig:
    """Turn parsed arguments into a SetupConfig, prompting for the port if needed."""
    port = args.port
    if port is None:
        port = _env_int("JUPYTER_PORT")
    if port is None:
        if args.yes or not sys.stdin.isatty():
            port = DEFAULT_PORT
        else:
            port = prompt_port("Jupyter port", default=DEFAULT_PORT)

    return SetupConfig(
        port=port,
        session_name=args.session,
        cuda_version=args.cuda_version,
        workdir=args.workdir or Path.cwd(),
        build_jobs=args.jobs,
        use_megatron=args.use_megatron,
        poll_attempts=args.poll_attempts,
        poll_interval=args.poll_interval,
        strict_readiness=args.strict_readiness,
        assume_yes=args.yes,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def _execute_step(step: str, config: SetupConfig, poller: ReadinessPoller) -> Optional[int]:
    """Dispatch a single step by its ID.

    Returns:
        An exit status for the launch step, None for the others.
    """
    if step == STEP_CUDA_TOOLKIT:
        install_cuda_toolkit(config)

    elif step == STEP_PYTORCH:
        upgrade_pytorch(config)

    elif step == STEP_SYSTEM_UPGRADE:
        upgrade_system_packages()

    elif step == STEP_APEX:
        install_apex(config)

    elif step == STEP_VERL:
        install_verl(config)

    elif step == STEP_TOOLS:
        install_operator_tools()

    elif step == STEP_JUPYTER:
        setup_jupyter(config)

    elif step == STEP_LAUNCH:
        return launch_and_report(config, poller)

    return None


def launch_and_report(config: SetupConfig, poller: ReadinessPoller) -> int:
    """Launch the server, poll for its URL and print the summary.

    A server that never reports in is not a setup failure unless
    ``config.strict_readiness`` is set.
    """
    session, endpoint = launch_jupyter(config)

    log_step("Fetching Jupyter server token")
    endpoint = poller.poll(endpoint)

    show_summary(session, endpoint)

    if not endpoint.ready and config.strict_readiness:
        return EXIT_NOT_READY
    return EXIT_OK


def execute_steps(
    steps: list[str],
    config: SetupConfig,
    poller: Optional[ReadinessPoller] = None,
) -> int:
    """Run steps in EXECUTION_ORDER, stopping at the first failing command.

    Raises:
        SetupStepFailure: a provisioning command exited nonzero or a file
            operation failed.
    """
    if poller is None:
        poller = ReadinessPoller(policy=RetryPolicy(config.poll_attempts, config.poll_interval))

    ordered = sorted(steps, key=lambda s: EXECUTION_ORDER.get(s, 99))
    total = len(ordered)
    status = EXIT_OK
    for number, step in enumerate(ordered, 1):
        log_step(f"[{number}/{total}] Running: {step}")
        try:
            result = _execute_step(step, config, poller)
        except subprocess.CalledProcessError as exc:
            raise SetupStepFailure(step, exc.cmd, exc.returncode) from exc
        except OSError as exc:
            raise SetupStepFailure(step, reason=str(exc)) from exc
        if result is not None:
            status = result
    return status


def _list_steps() -> None:
    for step in resolve_steps([], []):
        print(f"  {step:<15} {STEP_DESCRIPTIONS[step]}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    """Main provisioning process."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_steps:
        _list_steps()
        return

    try:
        steps = resolve_steps(args.only, args.skip)
        if not steps:
            log_info("No steps selected. Goodbye!")
            return

        show_banner()
        config = build_config(args)

        log_step("Gathering System Information")
        display_system_info(get_system_info())

        run_preliminary_checks(
            config,
            needs_network=bool(_NETWORK_STEPS.intersection(steps)),
            needs_root=bool(_ROOT_STEPS.intersection(steps)),
        )

        status = execute_steps(steps, config)
        if status == EXIT_OK:
            log_success("Setup completed successfully!")
        else:
            log_error("Setup finished, but the Jupyter server did not report its URL.")
        sys.exit(status)

    except SetupStepFailure as e:
        log_error(str(e))
        log_error("Aborting. Steps before this one remain applied.")
        sys.exit(EXIT_SETUP_FAILED)
    except ValueError as e:
        log_error(f"Invalid configuration: {e}")
        sys.exit(EXIT_SETUP_FAILED)
    except KeyboardInterrupt:
        print()
        log_info("Cancelled.")
        sys.exit(EXIT_SETUP_FAILED)
    except Exception as e:
        log_error(f"Setup failed: {str(e)}")
        log_error(f"Traceback: {traceback.format_exc()}")
        sys.exit(EXIT_SETUP_FAILED)


if __name__ == "__main__":
    main()
