# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: api.py
Descrizione:
    Client della gallery NuGet v2 (PowerShell Gallery o feed compatibili).
    - `find`: versione esatta (Packages(Id,Version)) o la più alta stabile
      (FindPackagesById, paginato tramite link rel="next").
    - `find_with_dependencies`: chiusura transitiva dal campo Dependencies
      (`Id:range:framework|...`), ogni dipendenza risolta alla versione più
      alta pubblicata entro i limiti del range.
    - `save`: download del .nupkg in `<dest>/<Name>.<Version>.nupkg`.
    - `install`: download in area temporanea ed espansione nel modules root.
    - `publish`: PUT multipart con header `X-NuGet-ApiKey`.

Dipendenze:
    - modforge.utils.http_client: get, put, request, get_session
    - modforge.utils.config: Settings (URL, verifica TLS)
    - packaging.version: ordinamento versioni

Linee guida:
    - Comportamento difensivo sull'XML Atom/OData: voci non conformi vengono
      saltate con log di warning.
    - Nessun log dell'API key.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import requests
from packaging.version import InvalidVersion, Version

from ...bundle.installer import HostLayout, expand_nupkg, nupkg_filename, replace_directory
from ...errors import NotFoundError, TransientIOError
from ...utils.config import Settings
from ...utils.http_client import get, get_session, put
from ...utils.structured_logging import get_logger, log_event
from ..base import Dependency, PackageInfo

__all__ = ["PSGalleryClient", "parse_feed", "parse_dependencies", "pick_highest"]

_logger = get_logger(__name__)

_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "d": "http://schemas.microsoft.com/ado/2007/08/dataservices",
    "m": "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata",
}
_DOWNLOAD_CHUNK = 1024 * 256


# =============================================================================
# Parsing OData
# =============================================================================
def parse_dependencies(raw: Optional[str]) -> List[Dependency]:
    """`"A:[1.0, ):|B::"` → [Dependency("A", "[1.0, )"), Dependency("B", "")]."""
    deps: List[Dependency] = []
    for chunk in (raw or "").split("|"):
        parts = chunk.split(":")
        name = parts[0].strip()
        if not name:
            continue
        deps.append(Dependency(name=name, version_range=parts[1].strip() if len(parts) > 1 else ""))
    return deps


def _text(props: ET.Element, tag: str) -> Optional[str]:
    node = props.find(f"d:{tag}", _NS)
    if node is None or node.text is None:
        return None
    return node.text.strip()


def _parse_entry(entry: ET.Element) -> Optional[PackageInfo]:
    props = entry.find("m:properties", _NS)
    if props is None:
        return None
    name = _text(props, "Id")
    if not name:
        title = entry.find("atom:title", _NS)
        name = title.text.strip() if title is not None and title.text else None
    version = _text(props, "NormalizedVersion") or _text(props, "Version")
    if not name or not version:
        return None
    return PackageInfo(
        name=name,
        version=version,
        dependencies=parse_dependencies(_text(props, "Dependencies")),
        is_prerelease=(_text(props, "IsPrerelease") or "").lower() == "true",
    )


def parse_feed(content: bytes) -> tuple[List[PackageInfo], Optional[str]]:
    """
    Estrae i pacchetti da un feed Atom (o da una singola entry) e il link `next`.
    """
    root = ET.fromstring(content)
    entries = [root] if root.tag == f"{{{_NS['atom']}}}entry" else root.findall("atom:entry", _NS)

    packages: List[PackageInfo] = []
    for entry in entries:
        info = _parse_entry(entry)
        if info is None:
            log_event(_logger, "gallery_entry_skipped", {"reason": "entry priva di Id/Version"}, level=logging.WARNING)
            continue
        packages.append(info)

    next_link: Optional[str] = None
    for link in root.findall("atom:link", _NS):
        if link.get("rel") == "next" and link.get("href"):
            next_link = link.get("href")
    return packages, next_link


def _parse_version(text: Optional[str]) -> Optional[Version]:
    if not text:
        return None
    try:
        return Version(text)
    except InvalidVersion:
        return None


def pick_highest(
    packages: List[PackageInfo],
    *,
    minimum: Optional[str] = None,
    minimum_inclusive: bool = True,
    maximum: Optional[str] = None,
    maximum_inclusive: bool = True,
    include_prerelease: bool = False,
) -> Optional[PackageInfo]:
    """Versione più alta entro i limiti; versioni non parsabili ignorate."""
    lo = _parse_version(minimum)
    hi = _parse_version(maximum)
    best: Optional[PackageInfo] = None
    best_v: Optional[Version] = None
    for pkg in packages:
        v = _parse_version(pkg.version)
        if v is None or (pkg.is_prerelease and not include_prerelease):
            continue
        if lo is not None and (v < lo or (v == lo and not minimum_inclusive)):
            continue
        if hi is not None and (v > hi or (v == hi and not maximum_inclusive)):
            continue
        if best_v is None or v > best_v:
            best, best_v = pkg, v
    return best


# =============================================================================
# Client
# =============================================================================
class PSGalleryClient:
    """Implementazione di `Gallery` sul feed OData NuGet v2."""

    def __init__(self, settings: Settings, *, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.base_url = settings.gallery_url.rstrip("/")
        self.session = session or get_session(self.base_url)

    # ------------------------------------------------------------------ find
    def _versions(self, name: str) -> Iterator[PackageInfo]:
        url: Optional[str] = f"{self.base_url}/FindPackagesById()"
        params: Optional[Dict[str, str]] = {"id": f"'{name}'"}
        page = 0
        while url:
            page += 1
            r = get(url, session=self.session, params=params, verify=self.settings.tls_verify)
            if r.status_code == 404:
                return
            r.raise_for_status()
            packages, url = parse_feed(r.content)
            params = None
            log_event(_logger, "gallery_page_ok", {"package": name, "page": page, "count": len(packages)})
            for pkg in packages:
                if pkg.name.lower() == name.lower():
                    yield pkg

    def find(self, name: str, version: Optional[str] = None) -> PackageInfo:
        if version:
            url = f"{self.base_url}/Packages(Id='{name}',Version='{version}')"
            r = get(url, session=self.session, verify=self.settings.tls_verify, expected_status={200})
            if r.status_code == 404:
                raise NotFoundError(f"{name} {version} non trovato sulla gallery.")
            r.raise_for_status()
            packages, _ = parse_feed(r.content)
            if not packages:
                raise NotFoundError(f"{name} {version} non trovato sulla gallery.")
            return packages[0]

        best = pick_highest(list(self._versions(name)))
        if best is None:
            log_event(_logger, "gallery_package_missing", {"package": name}, level=logging.WARNING)
            raise NotFoundError(f"{name} non trovato sulla gallery.")
        log_event(_logger, "gallery_package_found", {"package": best.name, "version": best.version})
        return best

    def _resolve_dependency(self, dep: Dependency) -> PackageInfo:
        lo, lo_inc, hi, hi_inc = dep.bounds()
        best = pick_highest(
            list(self._versions(dep.name)),
            minimum=lo,
            minimum_inclusive=lo_inc,
            maximum=hi,
            maximum_inclusive=hi_inc,
        )
        if best is not None:
            return best
        if lo:
            log_event(
                _logger,
                "gallery_dependency_literal",
                {"package": dep.name, "range": dep.version_range, "version": lo},
                level=logging.WARNING,
            )
            return PackageInfo(name=dep.name, version=lo)
        raise NotFoundError(f"Dipendenza {dep.name} ({dep.version_range or 'qualsiasi'}) non trovata.")

    def find_with_dependencies(self, name: str, version: Optional[str] = None) -> List[PackageInfo]:
        root = self.find(name, version)
        closure: List[PackageInfo] = [root]
        seen = {root.name.lower()}
        stack = list(reversed(root.dependencies))
        while stack:
            dep = stack.pop()
            if dep.name.lower() in seen:
                continue
            seen.add(dep.name.lower())
            resolved = self._resolve_dependency(dep)
            closure.append(resolved)
            stack.extend(reversed(resolved.dependencies))
        log_event(
            _logger,
            "gallery_closure_resolved",
            {"root": root.name, "version": root.version, "count": len(closure)},
        )
        return closure

    # ------------------------------------------------------------- download
    def save(self, name: str, version: str, destination: Path) -> Path:
        destination.mkdir(parents=True, exist_ok=True)
        target = destination / nupkg_filename(name, version)
        partial = target.with_name(target.name + ".partial")
        url = f"{self.base_url}/package/{name}/{version}"
        try:
            r = get(url, session=self.session, verify=self.settings.tls_verify, stream=True, expected_status={200})
            if r.status_code == 404:
                raise NotFoundError(f"{name} {version} non scaricabile: 404.")
            if r.status_code != 200:
                raise TransientIOError(f"Download {name} {version} fallito: HTTP {r.status_code}")
            with open(partial, "wb") as fh:
                for chunk in r.iter_content(chunk_size=_DOWNLOAD_CHUNK):
                    if chunk:
                        fh.write(chunk)
            partial.replace(target)
        except requests.RequestException as exc:
            raise TransientIOError(f"Download {name} {version} fallito: {exc}") from exc
        finally:
            if partial.exists():
                partial.unlink()

        log_event(
            _logger,
            "gallery_package_saved",
            {"package": name, "version": version, "path": str(target), "bytes": target.stat().st_size},
        )
        return target

    def install(self, name: str, version: str, layout: HostLayout) -> Path:
        target = layout.modules_root / name / version
        with tempfile.TemporaryDirectory(prefix="modforge-") as tmp:
            nupkg = self.save(name, version, Path(tmp))
            with replace_directory(target) as work:
                expand_nupkg(nupkg, work)
        log_event(_logger, "gallery_package_installed", {"package": name, "version": version, "path": str(target)})
        return target

    # -------------------------------------------------------------- publish
    def publish(self, nupkg_path: Path, api_key: str) -> None:
        if not api_key:
            raise ValueError("API key obbligatoria per la pubblicazione.")
        url = f"{self.base_url}/package/"
        # Corpo letto una volta: ogni retry rispedisce lo stesso contenuto.
        payload = Path(nupkg_path).read_bytes()
        r = put(
            url,
            session=self.session,
            files={"package": (nupkg_path.name, payload, "application/octet-stream")},
            api_key=api_key,
            verify=self.settings.tls_verify,
            expected_status={200, 201, 202},
        )
        if r.status_code not in (200, 201, 202):
            log_event(
                _logger,
                "gallery_publish_error",
                {"path": str(nupkg_path), "status": r.status_code, "body": r.text[:500]},
                level=logging.ERROR,
            )
            raise RuntimeError(f"Pubblicazione fallita ({r.status_code}): {r.text[:200]}")
        log_event(_logger, "gallery_publish_ok", {"path": str(nupkg_path), "status": r.status_code})
