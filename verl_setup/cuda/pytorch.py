"""PyTorch upgrade against the CUDA-matched wheel index."""

from ..config import SetupConfig
from ..utils.logging import log_info, log_step, log_success
from ..utils.system import PipManager

# Removed before reinstalling so stale CUDA builds never linger.
TORCH_PACKAGES = ("torch", "torchvision", "torchaudio")
INSTALL_PACKAGES = ("torch", "torchvision")


def upgrade_pytorch(config: SetupConfig) -> None:
    """Replace any installed PyTorch with the latest build for the toolkit."""
    log_step("Upgrading PyTorch to the latest version")
    pip = PipManager()

    log_info(f"Removing existing {', '.join(TORCH_PACKAGES)} (if any)...")
    pip.uninstall(*TORCH_PACKAGES)

    index_url = config.pytorch_index_url
    log_info(f"Installing {', '.join(INSTALL_PACKAGES)} from {index_url}")
    pip.install(*INSTALL_PACKAGES, "--index-url", index_url)

    log_success("PyTorch upgraded")
