# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: modules.py
Descrizione:
    Ciclo di vita dei moduli sull'host connesso, contro una `Gallery`:
      - install_modules: installa i nomi richiesti (versione esplicita o
        l'ultima stabile); già presenti → saltati, salvo force.
      - update_modules: per i moduli installati (o quelli indicati) installa
        l'ultima versione della gallery se più recente.
      - cleanup_modules: rimuove le versioni installate oltre le `keep` più
        recenti.
      - pack_module / publish_module: costruzione del .nupkg (zip + .nuspec
        generato dal manifest) e pubblicazione.

    Tutte le operazioni batch ritornano un BatchResult; un elemento fallito
    non interrompe il batch.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import logging
import shutil
import xml.etree.ElementTree as ET
import zipfile
from functools import cmp_to_key
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from ...bundle.installer import HostLayout, find_child, nupkg_filename, version_directories
from ...bundle.models import BatchResult, compare_versions
from ...errors import ArgumentError, NotFoundError
from ...manifest import read_manifest_version
from ...utils.structured_logging import get_logger, log_event, scoped_context
from ..base import Gallery

__all__ = [
    "installed_versions",
    "install_modules",
    "update_modules",
    "cleanup_modules",
    "pack_module",
    "publish_module",
]

_logger = get_logger(__name__)

_NUSPEC_NS = "http://schemas.microsoft.com/packaging/2011/08/nuspec.xsd"
_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="nuspec" ContentType="application/octet" />'
    '<Default Extension="psd1" ContentType="application/octet" />'
    '<Default Extension="psm1" ContentType="application/octet" />'
    '<Default Extension="ps1" ContentType="application/octet" />'
    "</Types>"
)


def installed_versions(name: str, layout: HostLayout) -> Dict[str, Path]:
    """versione → cartella, dal percorso modulo dello scope (più recente non garantita in testa)."""
    module_dir = find_child(layout.modules_root, name)
    if module_dir is None:
        return {}
    return {v: module_dir / v for v in version_directories(module_dir)}


def _newest(versions: Sequence[str]) -> Optional[str]:
    best: Optional[str] = None
    for v in versions:
        if best is None or compare_versions(v, best) > 0:
            best = v
    return best


def _record_error(result: BatchResult, event: str, name: str, exc: Exception) -> None:
    result.failed[name] = f"{type(exc).__name__}: {exc}"
    log_event(
        _logger,
        event,
        {"package": name, "error_type": type(exc).__name__, "error_message": str(exc)},
        level=logging.ERROR,
    )


# =============================================================================
# Install / update
# =============================================================================
def install_modules(
    names: Sequence[str],
    *,
    gallery: Gallery,
    layout: HostLayout,
    versions: Optional[Mapping[str, str]] = None,
    force: bool = False,
) -> BatchResult:
    pinned = {k.lower(): v for k, v in (versions or {}).items()}
    result = BatchResult()
    with scoped_context(component="modules", operation="install"):
        for name in names:
            try:
                version = pinned.get(name.lower()) or gallery.find(name).version
                if version in installed_versions(name, layout) and not force:
                    result.skipped.append(name)
                    log_event(_logger, "module_install_skipped", {"package": name, "version": version})
                    continue
                gallery.install(name, version, layout)
                result.succeeded.append(name)
                log_event(_logger, "module_installed", {"package": name, "version": version})
            except Exception as exc:
                _record_error(result, "module_install_error", name, exc)
    return result


def update_modules(
    names: Optional[Sequence[str]] = None,
    *,
    gallery: Gallery,
    layout: HostLayout,
) -> BatchResult:
    """
    Aggiorna all'ultima versione della gallery. Senza `names` considera
    tutti i moduli presenti nel percorso dello scope.
    """
    if names is None:
        root = layout.modules_root
        names = sorted(p.name for p in root.iterdir() if p.is_dir()) if root.is_dir() else []

    result = BatchResult()
    with scoped_context(component="modules", operation="update"):
        for name in names:
            try:
                current = _newest(list(installed_versions(name, layout)))
                latest = gallery.find(name).version
                if current is not None and compare_versions(latest, current) <= 0:
                    result.skipped.append(name)
                    log_event(_logger, "module_up_to_date", {"package": name, "version": current})
                    continue
                gallery.install(name, latest, layout)
                result.succeeded.append(name)
                log_event(_logger, "module_updated", {"package": name, "from": current, "to": latest})
            except Exception as exc:
                _record_error(result, "module_update_error", name, exc)
    return result


# =============================================================================
# Cleanup
# =============================================================================
def cleanup_modules(
    names: Optional[Sequence[str]] = None,
    *,
    layout: HostLayout,
    keep: int = 1,
) -> BatchResult:
    """Rimuove le versioni installate più vecchie, conservando le `keep` più recenti."""
    if keep < 1:
        raise ArgumentError(f"keep deve essere >= 1 (ricevuto {keep}).")
    if names is None:
        root = layout.modules_root
        names = sorted(p.name for p in root.iterdir() if p.is_dir()) if root.is_dir() else []

    result = BatchResult()
    with scoped_context(component="modules", operation="cleanup"):
        for name in names:
            versions = installed_versions(name, layout)
            ordered = sorted(versions, key=cmp_to_key(compare_versions), reverse=True)
            obsolete = ordered[keep:]
            if not obsolete:
                result.skipped.append(name)
                continue
            try:
                for v in obsolete:
                    shutil.rmtree(versions[v])
                    log_event(_logger, "module_version_removed", {"package": name, "version": v})
                result.succeeded.append(name)
            except OSError as exc:
                _record_error(result, "module_cleanup_error", name, exc)
    return result


# =============================================================================
# Pack / publish
# =============================================================================
def _find_manifest(module_dir: Path) -> Path:
    manifests = sorted(module_dir.glob("*.psd1"))
    if not manifests:
        raise NotFoundError(f"Nessun manifest .psd1 in {module_dir}.")
    preferred = [m for m in manifests if m.stem.lower() == module_dir.name.lower()]
    return (preferred or manifests)[0]


def _optional_field(manifest: Path, key: str, default: str) -> str:
    try:
        return read_manifest_version(manifest, key)
    except NotFoundError:
        return default


def build_nuspec(name: str, version: str, authors: str, description: str) -> bytes:
    package = ET.Element(f"{{{_NUSPEC_NS}}}package")
    metadata = ET.SubElement(package, f"{{{_NUSPEC_NS}}}metadata")
    for tag, text in (("id", name), ("version", version), ("authors", authors), ("description", description)):
        ET.SubElement(metadata, f"{{{_NUSPEC_NS}}}{tag}").text = text
    ET.SubElement(metadata, f"{{{_NUSPEC_NS}}}tags").text = "PSModule"
    return ET.tostring(package, encoding="utf-8", xml_declaration=True, default_namespace=_NUSPEC_NS)


def pack_module(module_dir: Path, output_dir: Path) -> Path:
    """
    Costruisce `<output_dir>/<Name>.<Version>.nupkg` dal modulo in `module_dir`.

    Nome e versione vengono dal manifest (`<Name>.psd1`, chiave ModuleVersion);
    Author e Description sono opzionali.
    """
    module_dir = Path(module_dir)
    manifest = _find_manifest(module_dir)
    name = manifest.stem
    version = read_manifest_version(manifest)
    authors = _optional_field(manifest, "Author", "unknown")
    description = _optional_field(manifest, "Description", name)

    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / nupkg_filename(name, version)
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{name}.nuspec", build_nuspec(name, version, authors, description))
        zf.writestr("[Content_Types].xml", _CONTENT_TYPES)
        for path in sorted(module_dir.rglob("*")):
            if path.is_file():
                zf.write(path, path.relative_to(module_dir).as_posix())

    log_event(_logger, "module_packed", {"package": name, "version": version, "path": str(target)})
    return target


def publish_module(module_dir: Path, *, gallery: Gallery, api_key: str, work_dir: Optional[Path] = None) -> Path:
    """Impacchetta e pubblica il modulo; ritorna il .nupkg pubblicato."""
    if not api_key:
        raise ArgumentError("API key obbligatoria per la pubblicazione (MODFORGE_API_KEY).")
    with scoped_context(component="modules", operation="publish"):
        nupkg = pack_module(module_dir, work_dir or Path(module_dir).parent / ".modforge-out")
        gallery.publish(nupkg, api_key)
        log_event(_logger, "module_published", {"path": str(nupkg)})
    return nupkg
