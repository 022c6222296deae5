from __future__ import annotations

import os
import subprocess
import sys

import pytest

from verl_setup.builds import source
from verl_setup.builds.apex import install_apex
from verl_setup.builds.source import clone_repo
from verl_setup.builds.verl import install_verl
from verl_setup.config import SetupConfig
from verl_setup.cuda import toolkit
from verl_setup.cuda.pytorch import upgrade_pytorch
from verl_setup.system.upgrade import install_operator_tools, upgrade_system_packages
from verl_setup.utils import system


@pytest.fixture
def config(tmp_path):
    return SetupConfig(workdir=tmp_path)


@pytest.fixture
def plain_pip(monkeypatch):
    monkeypatch.setattr(system, "needs_break_system_packages", lambda: False)


def _pip(*args):
    return [sys.executable, "-m", "pip", *args]


# ---------------------------------------------------------------------------
# CUDA toolkit
# ---------------------------------------------------------------------------

def test_local_installer_name():
    assert toolkit.local_installer_name("12.9.0", "575.51.03", "ubuntu2404") == (
        "cuda-repo-ubuntu2404-12-9-local_12.9.0-575.51.03-1_amd64.deb"
    )


def test_installer_urls(config):
    urls = toolkit.installer_urls(config, "ubuntu2404")

    assert urls["pin"] == (
        "https://developer.download.nvidia.com/compute/cuda/repos/ubuntu2404/x86_64/cuda-ubuntu2404.pin"
    )
    assert urls["installer"] == (
        "https://developer.download.nvidia.com/compute/cuda/12.9.0/local_installers/"
        "cuda-repo-ubuntu2404-12-9-local_12.9.0-575.51.03-1_amd64.deb"
    )


def test_ubuntu_repo_id():
    assert toolkit.ubuntu_repo_id({"VERSION_ID": "22.04"}) == "ubuntu2204"


def test_install_cuda_toolkit_sequence(commands, config, monkeypatch, tmp_path):
    monkeypatch.setattr(toolkit, "get_os_info", lambda: {"VERSION_ID": "24.04"})
    commands.respond("nvidia-smi", stdout="575.57.08\n")
    commands.respond("source", stdout="Cuda compilation tools, release 12.9, V12.9.41")

    toolkit.install_cuda_toolkit(config)

    texts = commands.texts()
    installer = tmp_path / "cuda-repo-ubuntu2404-12-9-local_12.9.0-575.51.03-1_amd64.deb"
    expected = [
        f"wget -qO {tmp_path / 'cuda-ubuntu2404.pin'} "
        "https://developer.download.nvidia.com/compute/cuda/repos/ubuntu2404/x86_64/cuda-ubuntu2404.pin",
        f"mv {tmp_path / 'cuda-ubuntu2404.pin'} /etc/apt/preferences.d/cuda-repository-pin-600",
        f"dpkg -i {installer}",
        "cp /var/cuda-repo-ubuntu2404-12-9-local/cuda-*-keyring.gpg /usr/share/keyrings/",
        "apt-get update",
        "apt-get install -y cuda-toolkit-12-9",
        f"install -m 644 {tmp_path / 'cuda.sh'} /etc/profile.d/cuda.sh",
    ]
    positions = [texts.index(cmd) for cmd in expected]
    assert positions == sorted(positions)
    assert (tmp_path / "cuda.sh").read_text() == toolkit.CUDA_PROFILE


def test_cuda_profile_installed_with_sudo_when_not_root(commands, config, monkeypatch, tmp_path):
    monkeypatch.setattr(system.os, "geteuid", lambda: 1000)
    monkeypatch.setattr(system.shutil, "which", lambda name: "/usr/bin/sudo")

    toolkit._configure_cuda_environment(config)

    assert commands.texts() == [f"sudo install -m 644 {tmp_path / 'cuda.sh'} /etc/profile.d/cuda.sh"]


def test_cuda_profile_install_failure_only_warns(commands, config, capsys):
    commands.respond("/etc/profile.d/cuda.sh", returncode=1)

    toolkit._configure_cuda_environment(config)

    assert "Could not install /etc/profile.d/cuda.sh" in capsys.readouterr().out


def test_cuda_toolkit_stops_on_failed_download(commands, config, monkeypatch):
    monkeypatch.setattr(toolkit, "get_os_info", lambda: {"VERSION_ID": "24.04"})
    commands.respond("local_installers", returncode=8)

    with pytest.raises(subprocess.CalledProcessError):
        toolkit.install_cuda_toolkit(config)

    assert commands.find("dpkg -i") == []
    assert commands.find("apt-get install") == []


def test_driver_compatibility(commands, config):
    commands.respond("nvidia-smi", stdout="570.124.06\n")
    assert not toolkit.check_driver_compatibility(config)


def test_driver_compatibility_unknown_driver_passes(commands, config):
    commands.respond("nvidia-smi", returncode=9)
    assert toolkit.check_driver_compatibility(config)


def test_detect_cuda_toolkit_from_nvcc(commands):
    commands.respond("nvcc --version", stdout="Cuda compilation tools, release 12.9, V12.9.41")

    assert toolkit.detect_cuda_toolkit() == "12.9"


# ---------------------------------------------------------------------------
# PyTorch and apt
# ---------------------------------------------------------------------------

def test_upgrade_pytorch(commands, config, plain_pip):
    commands.respond("uninstall", returncode=1)

    upgrade_pytorch(config)

    assert [c.cmd for c in commands.calls] == [
        _pip("uninstall", "-y", "torch", "torchvision", "torchaudio"),
        _pip("install", "torch", "torchvision", "--index-url", "https://download.pytorch.org/whl/cu129"),
    ]


def test_upgrade_system_packages(commands):
    upgrade_system_packages()

    assert commands.texts() == [
        "apt-get update",
        "apt-get upgrade -y",
        "apt-get dist-upgrade -y",
    ]


def test_install_operator_tools(commands):
    install_operator_tools()

    assert commands.texts()[-1] == "apt-get install -y nano tmux"


# ---------------------------------------------------------------------------
# Source builds
# ---------------------------------------------------------------------------

def test_clone_repo(commands, tmp_path):
    target = clone_repo("https://github.com/NVIDIA/apex.git", tmp_path)

    assert target == tmp_path / "apex"
    assert commands.calls[0].cmd == ["git", "clone", "https://github.com/NVIDIA/apex.git", str(target)]


def test_clone_repo_reuses_checkout(commands, tmp_path):
    (tmp_path / "verl" / ".git").mkdir(parents=True)

    assert clone_repo("https://github.com/volcengine/verl.git", tmp_path) == tmp_path / "verl"
    assert commands.calls == []


def test_clone_repo_refuses_foreign_directory(commands, tmp_path):
    (tmp_path / "apex").mkdir()

    with pytest.raises(FileExistsError):
        clone_repo("https://github.com/NVIDIA/apex.git", tmp_path)


def test_install_apex(commands, config, plain_pip):
    install_apex(config)

    build = commands.calls[-1]
    assert build.cmd == _pip(
        "install", "-v", "--disable-pip-version-check", "--no-cache-dir", "--no-build-isolation",
        "--config-settings", "--build-option=--cpp_ext",
        "--config-settings", "--build-option=--cuda_ext",
        "./",
    )
    assert build.kwargs["cwd"] == str(config.workdir / "apex")
    assert build.kwargs["env"]["MAX_JOBS"] == "32"


def test_install_verl(commands, config, plain_pip):
    install_verl(config)

    checkout = str(config.workdir / "verl")
    calls = commands.calls[1:]
    assert [c.cmd for c in calls] == [
        _pip("install", "--no-deps", "-e", "."),
        ["bash", "scripts/install_vllm_sglang_mcore.sh"],
        _pip("install", "-r", "requirements.txt"),
    ]
    assert all(c.kwargs["cwd"] == checkout for c in calls)
    assert calls[1].kwargs["env"]["USE_MEGATRON"] == "0"


def test_engine_script_finds_the_same_pip(commands, config, plain_pip, monkeypatch):
    monkeypatch.setenv("PATH", "/usr/bin")

    install_verl(config)

    path = commands.find("install_vllm_sglang_mcore")[0].kwargs["env"]["PATH"]
    assert path.split(os.pathsep) == [os.path.dirname(sys.executable), "/usr/bin"]


def test_install_verl_with_megatron(commands, tmp_path, plain_pip):
    install_verl(SetupConfig(workdir=tmp_path, use_megatron=True))

    assert commands.find("install_vllm_sglang_mcore")[0].kwargs["env"]["USE_MEGATRON"] == "1"


def test_clone_repo_handles_trailing_slash(commands, tmp_path):
    assert source.clone_repo("https://example.com/org/project/", tmp_path) == tmp_path / "project"
