# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: git_info.py
Descrizione:
  Introspezione read-only del repository tramite la CLI `git`:
    - top_level_directory(): radice del working tree.
    - current_branch(): branch corrente; con HEAD detached (tipico in CI)
      ripiega sulle variabili fornite dal runner.
    - remote_url(): URL del remote (default "origin").

  Ogni metodo corrisponde a un singolo comando git. Gli errori di git
  emergono come RuntimeError con lo stderr del comando.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional

from .structured_logging import get_logger, log_event

__all__ = ["GitInfo", "CI_BRANCH_VARIABLES"]

_logger = get_logger(__name__)

# In ordine di priorità: PR GitHub, push GitHub, Azure Pipelines, GitLab.
CI_BRANCH_VARIABLES = (
    "GITHUB_HEAD_REF",
    "GITHUB_REF_NAME",
    "BUILD_SOURCEBRANCHNAME",
    "CI_COMMIT_REF_NAME",
)


class GitInfo:
    def __init__(self, cwd: Optional[Path] = None, *, env: Optional[Mapping[str, str]] = None) -> None:
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.env = env if env is not None else os.environ

    def top_level_directory(self) -> Path:
        return Path(self._git(["rev-parse", "--show-toplevel"]).strip())

    def current_branch(self) -> str:
        out = self._git(["rev-parse", "--abbrev-ref", "HEAD"]).strip()
        if out != "HEAD":
            return out
        for var in CI_BRANCH_VARIABLES:
            value = (self.env.get(var) or "").strip()
            if value:
                log_event(_logger, "git_branch_from_ci", {"variable": var, "branch": value})
                return value
        raise RuntimeError("HEAD detached e nessuna variabile CI con il nome del branch.")

    def remote_url(self, remote: str = "origin") -> str:
        return self._git(["config", "--get", f"remote.{remote}.url"]).strip()

    def _git(self, args: List[str]) -> str:
        p = subprocess.run(
            ["git", *args],
            cwd=self.cwd,
            text=True,
            capture_output=True,
            check=False,
        )
        if p.returncode != 0:
            log_event(
                _logger,
                "git_command_failed",
                {"args": args, "returncode": p.returncode, "stderr": p.stderr.strip()},
                level=logging.ERROR,
            )
            raise RuntimeError(f"git {' '.join(args)} fallito ({p.returncode}): {p.stderr.strip()}")
        return p.stdout
