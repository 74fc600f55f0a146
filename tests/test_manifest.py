# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_manifest.py
Descrizione:
  Test della patch minimale del manifest: cambia solo lo span del valore,
  BOM/CRLF/commenti restano identici; la chiave è trovata anche nei
  manifest su una riga sola.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from modforge.errors import ArgumentError, NotFoundError
from modforge.manifest import read_manifest_version, set_manifest_version

MANIFEST = (
    b"\xef\xbb\xbf@{\r\n"
    b"    # ModuleVersion = '0.0.0'\r\n"
    b"    RootModule    = 'Contoso.Tools.psm1'\r\n"
    b"    ModuleVersion = '1.0.20240.5'\r\n"
    b"    Author        = \"Lorenzo Biosa\"\r\n"
    b"}\r\n"
)


@pytest.fixture
def manifest(tmp_path: Path) -> Path:
    p = tmp_path / "Contoso.Tools.psd1"
    p.write_bytes(MANIFEST)
    return p


def test_read_skips_commented_line(manifest: Path) -> None:
    assert read_manifest_version(manifest) == "1.0.20240.5"
    assert read_manifest_version(manifest, "Author") == "Lorenzo Biosa"


def test_set_changes_only_value_span(manifest: Path) -> None:
    assert set_manifest_version(manifest, "1.0.20251.17") is True
    expected = MANIFEST.replace(b"'1.0.20240.5'", b"'1.0.20251.17'")
    assert manifest.read_bytes() == expected


def test_set_same_value_is_noop(manifest: Path) -> None:
    before = manifest.stat().st_mtime_ns
    assert set_manifest_version(manifest, "1.0.20240.5") is False
    assert manifest.read_bytes() == MANIFEST
    assert manifest.stat().st_mtime_ns == before


@pytest.mark.parametrize("bad", ["", "1", "1.0.0.0.0", "v1.2", "1.2-beta"])
def test_set_rejects_invalid_versions(manifest: Path, bad: str) -> None:
    with pytest.raises(ArgumentError):
        set_manifest_version(manifest, bad)
    assert manifest.read_bytes() == MANIFEST


def test_missing_key(tmp_path: Path) -> None:
    p = tmp_path / "Empty.psd1"
    p.write_text("@{ RootModule = 'x.psm1' }\n", encoding="utf-8")
    with pytest.raises(NotFoundError):
        read_manifest_version(p)
    with pytest.raises(NotFoundError):
        set_manifest_version(p, "1.2.3")


def test_invalid_key_name(manifest: Path) -> None:
    with pytest.raises(ArgumentError):
        read_manifest_version(manifest, "Module Version")


@pytest.mark.parametrize(
    "content",
    [
        b"@{ ModuleVersion = '1.0.0' }\n",
        b"@{RootModule='X.psm1';ModuleVersion=\"1.0.0\"}\n",
        b"@{ RootModule = 'X.psm1' } # ModuleVersion = '9.9.9'\n@{ ModuleVersion = '1.0.0' }\n",
    ],
)
def test_single_line_manifest(tmp_path: Path, content: bytes) -> None:
    p = tmp_path / "X.psd1"
    p.write_bytes(content)

    assert read_manifest_version(p) == "1.0.0"
    assert set_manifest_version(p, "2.0.0") is True
    assert p.read_bytes() == content.replace(b"1.0.0", b"2.0.0")


def test_key_suffix_of_longer_key_is_ignored(tmp_path: Path) -> None:
    p = tmp_path / "X.psd1"
    p.write_bytes(b"@{ PowerShellModuleVersion = '5.1'; ModuleVersion = '1.0.0' }\n")
    assert read_manifest_version(p) == "1.0.0"
