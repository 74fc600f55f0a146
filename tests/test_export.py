# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_export.py
Descrizione:
  Test dell'export del bundle:
    - download della chiusura in Nuget/ e artefatti esistenti saltati;
    - mirror best-effort del plugin in Provider/;
    - script di installazione generato: compila, non contiene import
      relativi e porta la lista dei pacchetti e il major del runtime.
"""

from __future__ import annotations

import sys
import types
from pathlib import Path
from typing import Any

from _pytest.monkeypatch import MonkeyPatch

from modforge.bundle import export, render_installer
from modforge.bundle.installer import HostLayout


def test_export_downloads_closure_and_writes_installer(fake_gallery: Any, layout: HostLayout, share: Path) -> None:
    report = export(share, ["Az.Storage"], gallery=fake_gallery, layout=layout)

    assert report.resolved == {"Az.Storage": "5.0.0", "Az.Accounts": "2.0.0"}
    assert sorted(report.artifacts.succeeded) == ["Az.Accounts", "Az.Storage"]
    assert (share / "Nuget" / "Az.Storage.5.0.0.nupkg").is_file()
    assert (share / "Nuget" / "Az.Accounts.2.0.0.nupkg").is_file()
    assert report.installer_path == share / "Install-FromRepoFolder.py"
    assert report.installer_path.is_file()


def test_existing_artifacts_are_skipped(fake_gallery: Any, layout: HostLayout, share: Path) -> None:
    export(share, ["Pester"], gallery=fake_gallery, layout=layout)
    fake_gallery.saved.clear()

    report = export(share, ["Pester"], gallery=fake_gallery, layout=layout)

    assert report.artifacts.skipped == ["Pester"]
    assert fake_gallery.saved == []


def test_failed_download_does_not_stop_export(gallery_factory: Any, layout: HostLayout, share: Path) -> None:
    class FlakyGallery(gallery_factory):  # type: ignore[misc, valid-type]
        def save(self, name: str, version: str, destination: Path) -> Path:
            if name == "B":
                raise OSError("disk full")
            return super().save(name, version, destination)

    gallery = FlakyGallery({"A": {"1.0.0": []}, "B": {"1.0.0": []}})
    report = export(share, ["A", "B"], gallery=gallery, layout=layout)

    assert report.artifacts.succeeded == ["A"]
    assert "disk full" in report.artifacts.failed["B"]
    assert report.installer_path is not None and report.installer_path.is_file()


def test_plugin_is_mirrored_from_all_known_paths(fake_gallery: Any, layout: HostLayout, share: Path) -> None:
    for base, version in zip(layout.plugin_search_paths, ("2.8.5.201", "2.8.5.208")):
        d = base / "nuget" / version
        d.mkdir(parents=True)
        (d / "provider.dll").write_bytes(b"MZ")

    report = export(share, ["Pester"], gallery=fake_gallery, layout=layout)

    assert len(report.plugin_copied) == 2
    assert report.plugin_errors == {}
    assert (share / "Provider" / "nuget" / "2.8.5.201" / "provider.dll").is_file()
    assert (share / "Provider" / "nuget" / "2.8.5.208" / "provider.dll").is_file()


def test_export_without_plugin_still_succeeds(fake_gallery: Any, layout: HostLayout, share: Path) -> None:
    report = export(share, ["Pester"], gallery=fake_gallery, layout=layout)
    assert report.plugin_copied == []
    assert not (share / "Provider").exists()


def test_rendered_installer_is_self_contained() -> None:
    script = render_installer(["PackageManagement", "Contoso.Tools"], runtime_major=sys.version_info[0])

    compile(script, "Install-FromRepoFolder.py", "exec")
    assert "\nfrom ." not in script
    assert script.count("from __future__ import annotations") == 1
    assert "BUNDLE_PACKAGES = ['PackageManagement', 'Contoso.Tools']" in script
    assert f"BUILT_FOR_RUNTIME_MAJOR = {sys.version_info[0]}" in script
    assert "class MissingDependencyError" in script
    assert "def log_event" in script
    assert "def bootstrap_plugin" in script


def test_rendered_installer_runs_standalone(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    script = render_installer(["Contoso.Tools"])
    module = types.ModuleType("bundle_installer")
    module.__file__ = str(tmp_path / "Install-FromRepoFolder.py")
    monkeypatch.setitem(sys.modules, "bundle_installer", module)
    exec(compile(script, "Install-FromRepoFolder.py", "exec"), module.__dict__)
    namespace = module.__dict__
    assert namespace["BUNDLE_PACKAGES"] == ["Contoso.Tools"]
    assert callable(namespace["install"])
    assert callable(namespace["main"])
