"""verl-setup - Main package

Provisions a GPU machine for verl: CUDA toolkit, PyTorch, apex and verl
from source, OS upgrades, and a JupyterLab server left running in tmux.
"""

__version__ = "1.0.0"
__package_name__ = "verl-setup"
