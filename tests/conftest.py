from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from typing import Any

import pytest

from verl_setup.utils.system import AptManager


@dataclass
class RecordedCall:
    cmd: Any
    text: str
    kwargs: dict = field(default_factory=dict)


class CommandRecorder:
    """Stand-in for subprocess.run that records commands instead of running them.

    Responses are matched by substring against the command text; the first
    registered match wins.  Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self._responses: list[tuple[str, int, str]] = []

    def respond(self, fragment: str, stdout: str = "", returncode: int = 0) -> None:
        self._responses.append((fragment, returncode, stdout))

    def texts(self) -> list[str]:
        return [c.text for c in self.calls]

    def find(self, fragment: str) -> list[RecordedCall]:
        return [c for c in self.calls if fragment in c.text]

    def __call__(self, cmd, *args, **kwargs):
        text = cmd if isinstance(cmd, str) else " ".join(str(c) for c in cmd)
        self.calls.append(RecordedCall(cmd, text, kwargs))

        returncode, stdout = 0, ""
        for fragment, code, out in self._responses:
            if fragment in text:
                returncode, stdout = code, out
                break

        if kwargs.get("check") and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")


@pytest.fixture
def commands(monkeypatch) -> CommandRecorder:
    """Record every subprocess.run call made while running as root."""
    recorder = CommandRecorder()
    monkeypatch.setattr(subprocess, "run", recorder)
    monkeypatch.setattr(os, "geteuid", lambda: 0)
    monkeypatch.setattr(AptManager, "_update_done", False)
    return recorder


@pytest.fixture
def delays() -> list[float]:
    """Pass ``delays.append`` as a sleep function to record requested waits."""
    return []
