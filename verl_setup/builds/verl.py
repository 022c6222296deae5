"""verl, installed editable from a source checkout."""

from ..config import SetupConfig, VERL_REPO_URL
from ..utils.logging import log_info, log_step, log_success
from ..utils.system import PipManager, interpreter_path_env, run_command
from .source import clone_repo

ENGINE_INSTALL_SCRIPT = "scripts/install_vllm_sglang_mcore.sh"


def install_verl(config: SetupConfig) -> None:
    """Install verl without deps, then its inference engines, then its requirements."""
    log_step("Cloning and installing verl")
    checkout = clone_repo(VERL_REPO_URL, config.workdir)
    pip = PipManager()

    pip.install("--no-deps", "-e", ".", cwd=str(checkout))

    megatron = "1" if config.use_megatron else "0"
    log_info(f"Installing inference engines (USE_MEGATRON={megatron})...")
    env = {"USE_MEGATRON": megatron, **interpreter_path_env()}
    run_command(["bash", ENGINE_INSTALL_SCRIPT], env=env, cwd=str(checkout))

    log_info("Installing requirements from verl/requirements.txt...")
    pip.install("-r", "requirements.txt", cwd=str(checkout))

    log_success("verl installed")
