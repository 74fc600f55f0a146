# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_git_info.py
Descrizione:
  Test dell'introspezione git. `subprocess.run` viene sostituito nel modulo
  `modforge.utils.git_info` con uno stub che risponde per argomenti.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
from _pytest.monkeypatch import MonkeyPatch

import modforge.utils.git_info as git_mod
from modforge.utils.git_info import GitInfo


class RunStub:
    """Stub tipizzato per `subprocess.run`: risposte indicizzate per argomenti git."""

    def __init__(self, answers: Dict[Tuple[str, ...], Tuple[int, str, str]]) -> None:
        self.answers = answers
        self.calls: List[List[str]] = []

    def __call__(self, cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(cmd)
        code, out, err = self.answers[tuple(cmd[1:])]
        return subprocess.CompletedProcess(cmd, code, out, err)


def test_top_level_and_remote(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    stub = RunStub(
        {
            ("rev-parse", "--show-toplevel"): (0, "/work/repo\n", ""),
            ("config", "--get", "remote.origin.url"): (0, "https://example.com/acme/repo.git\n", ""),
        }
    )
    monkeypatch.setattr(git_mod.subprocess, "run", stub)

    info = GitInfo(tmp_path, env={})
    assert info.top_level_directory() == Path("/work/repo")
    assert info.remote_url() == "https://example.com/acme/repo.git"
    assert stub.calls[0][0] == "git"


def test_branch_on_attached_head(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    stub = RunStub({("rev-parse", "--abbrev-ref", "HEAD"): (0, "feature/x\n", "")})
    monkeypatch.setattr(git_mod.subprocess, "run", stub)
    assert GitInfo(tmp_path, env={"GITHUB_REF_NAME": "main"}).current_branch() == "feature/x"


def test_detached_head_falls_back_to_ci_variable(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    stub = RunStub({("rev-parse", "--abbrev-ref", "HEAD"): (0, "HEAD\n", "")})
    monkeypatch.setattr(git_mod.subprocess, "run", stub)

    env = {"GITHUB_HEAD_REF": "", "BUILD_SOURCEBRANCHNAME": "release-1", "CI_COMMIT_REF_NAME": "other"}
    assert GitInfo(tmp_path, env=env).current_branch() == "release-1"


def test_detached_head_without_ci_variables(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    stub = RunStub({("rev-parse", "--abbrev-ref", "HEAD"): (0, "HEAD\n", "")})
    monkeypatch.setattr(git_mod.subprocess, "run", stub)
    with pytest.raises(RuntimeError):
        GitInfo(tmp_path, env={}).current_branch()


def test_git_failure_raises_with_stderr(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    stub = RunStub({("rev-parse", "--show-toplevel"): (128, "", "fatal: not a git repository")})
    monkeypatch.setattr(git_mod.subprocess, "run", stub)
    with pytest.raises(RuntimeError, match="not a git repository"):
        GitInfo(tmp_path, env={}).top_level_directory()
