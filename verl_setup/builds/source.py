"""Git checkouts for packages built from source."""

from pathlib import Path

from ..utils.logging import log_info, log_warn
from ..utils.system import run_command


def clone_repo(url: str, workdir: Path) -> Path:
    """Clone ``url`` into ``workdir`` and return the checkout path.

    An existing checkout with the same directory name is reused as-is so a
    re-run after a failed build does not trip over the previous clone.
    """
    name = url.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[:-4]
    target = Path(workdir) / name

    if (target / ".git").is_dir():
        log_warn(f"Reusing existing checkout at {target}")
        return target
    if target.exists():
        raise FileExistsError(f"{target} exists and is not a git checkout")

    log_info(f"Cloning {url}...")
    run_command(["git", "clone", url, str(target)])
    return target
