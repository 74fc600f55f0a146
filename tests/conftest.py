# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/conftest.py
Descrizione:
  Fixture comuni per la suite di test:
    - fake_logger: logger configurato per i test.
    - layout: HostLayout isolato sotto tmp_path (moduli, plugin, registro).
    - share: radice di un bundle vuoto sotto tmp_path.
    - FakeGallery / fake_gallery: gallery in memoria conforme al Protocol
      `Gallery`, con registro delle chiamate.
    - make_nupkg: costruisce un .nupkg minimale (zip con .nuspec e file).
    - fake_session: sessione HTTP finta (MagicMock) con .request() e .headers.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type
from unittest.mock import MagicMock

import pytest

from modforge.bundle.installer import HostLayout, expand_nupkg, nupkg_filename
from modforge.errors import NotFoundError
from modforge.providers.base import Dependency, PackageInfo


@pytest.fixture
def fake_logger() -> logging.Logger:
    """
    Restituisce un logger di test con livello DEBUG.
    """
    logger = logging.getLogger("tests")
    logger.setLevel(logging.DEBUG)
    return logger


def build_nupkg(destination: Path, name: str, version: str, files: Optional[Dict[str, str]] = None) -> Path:
    """Scrive `<destination>/<Name>.<Version>.nupkg` con metadati NuGet e i file indicati."""
    destination.mkdir(parents=True, exist_ok=True)
    target = destination / nupkg_filename(name, version)
    content = files if files is not None else {f"{name}.psd1": f"@{{ ModuleVersion = '{version}' }}\n"}
    with zipfile.ZipFile(target, "w") as zf:
        zf.writestr(f"{name}.nuspec", f"<package><metadata><id>{name}</id><version>{version}</version></metadata></package>")
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr("_rels/.rels", "<Relationships/>")
        zf.writestr("package/services/metadata/core-properties/x.psmdcp", "<coreProperties/>")
        for rel, text in content.items():
            zf.writestr(rel, text)
    return target


@pytest.fixture
def make_nupkg() -> Callable[..., Path]:
    return build_nupkg


@pytest.fixture
def layout(tmp_path: Path) -> HostLayout:
    """Layout dell'host confinato in tmp_path: nessun percorso reale viene toccato."""
    host = tmp_path / "host"
    user_modules = host / "user" / "Modules"
    system_modules = host / "system" / "Modules"
    user_plugins = host / "user" / "ProviderAssemblies"
    system_plugins = host / "system" / "ProviderAssemblies"
    return HostLayout(
        modules_root=user_modules,
        module_paths=(user_modules, system_modules),
        plugin_root=user_plugins,
        plugin_search_paths=(user_plugins, system_plugins),
        sources_file=host / "sources.json",
    )


@pytest.fixture
def share(tmp_path: Path) -> Path:
    root = tmp_path / "share"
    root.mkdir()
    return root


class FakeGallery:
    """
    Gallery in memoria.

    packages: {nome: {versione: [Dependency, ...]}}
    closures: risposte forzate di find_with_dependencies per radice (nome minuscolo).
    failing: nomi per cui find/find_with_dependencies sollevano NotFoundError.
    """

    def __init__(
        self,
        packages: Optional[Dict[str, Dict[str, List[Dependency]]]] = None,
        *,
        closures: Optional[Dict[str, List[PackageInfo]]] = None,
        failing: Sequence[str] = (),
    ) -> None:
        self.packages = packages or {}
        self.closures = {k.lower(): v for k, v in (closures or {}).items()}
        self.failing = {n.lower() for n in failing}
        self.saved: List[Tuple[str, str]] = []
        self.installed: List[Tuple[str, str]] = []
        self.published: List[Tuple[Path, str]] = []

    def _versions(self, name: str) -> Dict[str, List[Dependency]]:
        for key, versions in self.packages.items():
            if key.lower() == name.lower():
                return versions
        raise NotFoundError(f"{name} non trovato")

    def find(self, name: str, version: Optional[str] = None) -> PackageInfo:
        if name.lower() in self.failing:
            raise NotFoundError(f"{name} non trovato")
        versions = self._versions(name)
        if version is not None:
            if version not in versions:
                raise NotFoundError(f"{name} {version} non trovato")
            return PackageInfo(name, version, versions[version])
        best = max(versions, key=lambda v: tuple(int(p) for p in v.split(".")))
        return PackageInfo(name, best, versions[best])

    def find_with_dependencies(self, name: str, version: Optional[str] = None) -> List[PackageInfo]:
        if name.lower() in self.failing:
            raise NotFoundError(f"{name} non trovato")
        if name.lower() in self.closures:
            return list(self.closures[name.lower()])
        root = self.find(name, version)
        result = [root]
        for dep in root.dependencies:
            lo = dep.bounds()[0]
            result.append(self.find(dep.name, lo))
        return result

    def save(self, name: str, version: str, destination: Path) -> Path:
        self._versions(name)
        self.saved.append((name, version))
        return build_nupkg(destination, name, version)

    def install(self, name: str, version: str, layout: HostLayout) -> Path:
        self.installed.append((name, version))
        target = layout.modules_root / name / version
        scratch = layout.modules_root.parent / ".fake-gallery"
        expand_nupkg(build_nupkg(scratch, name, version), target)
        shutil.rmtree(scratch)
        return target

    def publish(self, nupkg_path: Path, api_key: str) -> None:
        self.published.append((nupkg_path, api_key))


@pytest.fixture
def gallery_factory() -> Type[FakeGallery]:
    """Classe FakeGallery, per i test che costruiscono gallery su misura."""
    return FakeGallery


@pytest.fixture
def fake_gallery() -> FakeGallery:
    return FakeGallery(
        {
            "Az.Accounts": {"2.0.0": [], "2.1.0": []},
            "Az.Storage": {"5.0.0": [Dependency("Az.Accounts", "[2.0.0, )")]},
            "Pester": {"5.5.0": []},
        }
    )


@pytest.fixture
def fake_session() -> MagicMock:
    """
    Sessione HTTP finta con interfaccia minima compatibile con `requests.Session`.

    - Espone .headers (dict-like) e .request(method, url, **kwargs) -> response.
    - La response finta espone .status_code, .headers, .text, .content.
    - I test possono ridefinire: sess.request.return_value / side_effect.
    """
    resp = MagicMock()
    resp.status_code = 200
    resp.headers = {}
    resp.text = ""
    resp.content = b""

    sess = MagicMock(spec_set=["request", "headers"])
    sess.headers = {}
    sess.request.return_value = resp
    return sess
