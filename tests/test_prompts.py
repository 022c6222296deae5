from __future__ import annotations

import builtins

from verl_setup.utils.prompts import prompt_port, prompt_yes_no


def _answers(monkeypatch, *replies):
    replies = iter(replies)
    monkeypatch.setattr(builtins, "input", lambda: next(replies))


def test_prompt_port_default(monkeypatch):
    _answers(monkeypatch, "")

    assert prompt_port("Jupyter port", default=5000) == 5000


def test_prompt_port_reasks_until_valid(monkeypatch, capsys):
    _answers(monkeypatch, "abc", "70000", "8888")

    assert prompt_port("Jupyter port") == 8888
    out = capsys.readouterr().out
    assert "Please enter a valid number" in out
    assert "between 1 and 65535" in out


def test_prompt_yes_no_default_no(monkeypatch):
    _answers(monkeypatch, "")

    assert prompt_yes_no("Continue anyway?", default='n') is False
