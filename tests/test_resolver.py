# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_resolver.py
Descrizione:
  Test della chiusura di dipendenze "highest wins":
    - A→X 1.0 e B→X 2.0 ⇒ X 2.0 indipendentemente dall'ordine delle radici.
    - Sostituzioni tracciate con l'evento closure_merge_upgrade.
    - Radice fallita saltata; chiusura vuota → versioni letterali.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List

import pytest

from modforge.bundle.models import ResolvedPackageSet
from modforge.bundle.resolver import resolve_closure
from modforge.providers.base import Dependency, PackageInfo


@pytest.fixture
def diamond(gallery_factory: Any) -> Any:
    return gallery_factory(
        closures={
            "A": [PackageInfo("A", "1.0.0"), PackageInfo("X", "1.0.0")],
            "B": [PackageInfo("B", "1.0.0"), PackageInfo("x", "2.0.0")],
        }
    )


@pytest.mark.parametrize("roots", [["A", "B"], ["B", "A"]])
def test_highest_wins_independent_of_order(diamond: Any, roots: List[str]) -> None:
    resolved = resolve_closure(roots, gallery=diamond)
    assert resolved.get("X") == "2.0.0"
    assert len(resolved) == 3


def test_upgrade_is_logged(diamond: Any, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="modforge.bundle.resolver"):
        resolve_closure(["A", "B"], gallery=diamond)
    events = [json.loads(r.getMessage()) for r in caplog.records if "closure_merge_upgrade" in r.getMessage()]
    assert len(events) == 1
    assert events[0]["from"] == "1.0.0" and events[0]["to"] == "2.0.0"


def test_failing_root_is_skipped(gallery_factory: Any) -> None:
    gallery = gallery_factory(closures={"A": [PackageInfo("A", "1.0.0")]}, failing=["Broken"])
    resolved = resolve_closure(["Broken", "A"], gallery=gallery)
    assert resolved.as_dict() == {"A": "1.0.0"}


def test_empty_closure_falls_back_to_literal_request(gallery_factory: Any) -> None:
    gallery = gallery_factory(failing=["A", "B"])
    resolved = resolve_closure(["A", "B"], {"a": "3.1.0"}, gallery=gallery)
    assert resolved.as_dict() == {"A": "3.1.0", "B": None}


def test_pinned_version_reaches_gallery(fake_gallery: Any) -> None:
    resolved = resolve_closure(["Az.Storage", "Az.Accounts"], {"Az.Accounts": "2.0.0"}, gallery=fake_gallery)
    # Az.Storage richiede Az.Accounts >= 2.0.0 (limite inferiore), la radice è fissata a 2.0.0
    assert resolved.as_dict() == {"Az.Storage": "5.0.0", "Az.Accounts": "2.0.0"}


def test_resolved_set_merge_semantics() -> None:
    s = ResolvedPackageSet()
    assert s.merge("Pester", "5.0.0") is None
    assert s.merge("PESTER", "4.0.0") is None
    assert s.merge("pester", None) is None
    assert s.merge("pester", "5.10.0") == "5.0.0"
    assert s.names() == ["Pester"]
    assert "pEsTeR" in s


def test_direct_request_outranks_transitive_dependency(gallery_factory: Any) -> None:
    gallery = gallery_factory(
        {
            "A": {"1.0": [Dependency("B", "1.0")]},
            "B": {"1.0": [], "2.0": []},
        }
    )
    resolved = resolve_closure(["A", "B"], {"B": "2.0"}, gallery=gallery)
    assert resolved.get("B") == "2.0"
