"""OS package upgrades."""

from ..utils.logging import log_info, log_step, log_success
from ..utils.system import AptManager


def upgrade_system_packages() -> None:
    """Refresh package lists, then upgrade and dist-upgrade non-interactively."""
    log_step("Upgrading system packages")
    apt = AptManager()

    log_info("Updating package lists...")
    apt.update(force=True)

    log_info("Upgrading packages...")
    apt.upgrade()

    log_info("Performing distribution upgrade...")
    apt.dist_upgrade()

    log_success("System packages upgraded")


def install_operator_tools() -> None:
    """Editor and terminal multiplexer used to manage the notebook server."""
    log_step("Installing nano & tmux")
    AptManager().install("nano", "tmux")
    log_success("nano and tmux installed")
