from __future__ import annotations

import subprocess

import pytest

from verl_setup.jupyter.session import TmuxSession


def test_acquire_replaces_existing_session(commands):
    commands.respond("has-session", returncode=0)

    session = TmuxSession.acquire_or_recreate("jupyter_session", "bash -lc 'sleep 1'")

    assert session.name == "jupyter_session"
    assert commands.texts() == [
        "tmux has-session -t jupyter_session",
        "tmux kill-session -t jupyter_session",
        "tmux new-session -d -s jupyter_session bash -lc 'sleep 1'",
    ]


def test_acquire_creates_when_absent(commands):
    commands.respond("has-session", returncode=1)

    TmuxSession.acquire_or_recreate("lab", "jupyter lab")

    assert commands.find("kill-session") == []
    assert commands.find("new-session")[0].cmd == ["tmux", "new-session", "-d", "-s", "lab", "jupyter lab"]


def test_failed_start_raises(commands):
    commands.respond("has-session", returncode=1)
    commands.respond("new-session", returncode=1)

    with pytest.raises(subprocess.CalledProcessError):
        TmuxSession.acquire_or_recreate("lab", "jupyter lab")


def test_capture_reads_last_lines_of_first_pane(commands):
    commands.respond("capture-pane", stdout="[I ServerApp] Jupyter Server is running\n")

    output = TmuxSession("jupyter_session").capture(80)

    assert output == "[I ServerApp] Jupyter Server is running\n"
    assert commands.calls[0].cmd == [
        "tmux", "capture-pane", "-t", "jupyter_session:.+0", "-p", "-S", "-80",
    ]


def test_capture_and_list_are_best_effort(commands):
    commands.respond("capture-pane", stdout="ignored", returncode=1)
    commands.respond("tmux ls", stdout="ignored", returncode=1)

    assert TmuxSession("gone").capture() == ""
    assert TmuxSession.list_sessions() == ""


def test_capture_without_tmux_binary(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("tmux")

    monkeypatch.setattr(subprocess, "run", missing)

    assert TmuxSession("lab").capture() == ""
    assert TmuxSession.list_sessions() == ""


def test_list_sessions(commands):
    commands.respond("tmux ls", stdout="jupyter_session: 1 windows (created Mon Oct 19 10:00:00 2026)\n")

    assert TmuxSession.list_sessions().startswith("jupyter_session: 1 windows")


def test_operator_hint_commands():
    session = TmuxSession("jupyter_session")

    assert session.attach_command() == "tmux attach -t jupyter_session"
    assert session.new_window_command("setpass", "jupyter lab password") == (
        "tmux new-window -t jupyter_session -n setpass 'jupyter lab password'"
    )


def test_empty_name_rejected():
    with pytest.raises(ValueError):
        TmuxSession("")
