"""NVIDIA apex, built with its C++ and CUDA extensions."""

from ..config import SetupConfig, APEX_REPO_URL
from ..utils.logging import log_step, log_success
from ..utils.system import PipManager
from .source import clone_repo

APEX_BUILD_FLAGS = (
    "-v",
    "--disable-pip-version-check",
    "--no-cache-dir",
    "--no-build-isolation",
    "--config-settings", "--build-option=--cpp_ext",
    "--config-settings", "--build-option=--cuda_ext",
)


def install_apex(config: SetupConfig) -> None:
    log_step("Cloning and installing NVIDIA apex")
    checkout = clone_repo(APEX_REPO_URL, config.workdir)

    PipManager().install(
        *APEX_BUILD_FLAGS, "./",
        env={"MAX_JOBS": str(config.build_jobs)},
        cwd=str(checkout),
    )
    log_success("apex installed")
