# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: export.py
Descrizione:
  Export del bundle offline:
    1) risoluzione della chiusura di dipendenze (resolver.resolve_closure);
    2) download dei .nupkg in `<share>/Nuget/` (file già presenti saltati);
    3) copia best-effort del plugin in `<share>/Provider/`;
    4) generazione di `Install-FromRepoFolder.py`.

  Lo script generato è autosufficiente: contiene il sorgente di errors.py,
  structured_logging.py e installer.py (solo libreria standard), la lista
  dei pacchetti e il major del runtime con cui il bundle è stato prodotto.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from ..providers.base import Gallery
from ..utils.structured_logging import get_logger, log_event, scoped_context
from .installer import INSTALLER_NAME, NUGET_DIR, RUNTIME_MAJOR, HostLayout, nupkg_filename
from .models import BatchResult, ExportReport
from .plugin import mirror_plugin
from .resolver import resolve_closure

__all__ = ["export", "render_installer", "write_installer"]

_logger = get_logger(__name__)

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent
_EMBEDDED_SOURCES = (
    _PACKAGE_ROOT / "errors.py",
    _PACKAGE_ROOT / "utils" / "structured_logging.py",
    _PACKAGE_ROOT / "bundle" / "installer.py",
)
_FUTURE_IMPORT = "from __future__ import annotations"


def _embeddable(path: Path) -> str:
    """Sorgente del modulo senza import relativi né import __future__."""
    lines: List[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped == _FUTURE_IMPORT or line.startswith("from ."):
            continue
        lines.append(line)
    return "\n".join(lines)


def render_installer(names: Sequence[str], runtime_major: int = RUNTIME_MAJOR) -> str:
    """Testo dello script di installazione per i pacchetti `names`."""
    sections = [
        "#!/usr/bin/env python3",
        "# -*- coding: utf-8 -*-",
        '"""Installer offline generato da modforge. Uso: python Install-FromRepoFolder.py [--scope AllUsers] [--name X]"""',
        _FUTURE_IMPORT,
        "",
    ]
    for path in _EMBEDDED_SOURCES:
        sections.append(f"# ---- {path.parent.name}/{path.name} ----")
        sections.append(_embeddable(path))
        sections.append("")

    sections.append("# ---- bundle ----")
    sections.append(f"BUNDLE_PACKAGES = {list(names)!r}")
    sections.append(f"BUILT_FOR_RUNTIME_MAJOR = {int(runtime_major)!r}")
    sections.append("")
    sections.append('if __name__ == "__main__":')
    sections.append(
        "    raise SystemExit(main(bundle_root=Path(__file__).resolve().parent, "
        "default_names=BUNDLE_PACKAGES, runtime_major=BUILT_FOR_RUNTIME_MAJOR))"
    )
    return "\n".join(sections) + "\n"


def write_installer(share_root: Path, names: Sequence[str], runtime_major: int = RUNTIME_MAJOR) -> Path:
    share_root.mkdir(parents=True, exist_ok=True)
    target = share_root / INSTALLER_NAME
    target.write_text(render_installer(names, runtime_major), encoding="utf-8")
    target.chmod(0o755)
    log_event(_logger, "installer_written", {"path": str(target), "packages": list(names)})
    return target


def export(
    share_root: Path,
    names: Sequence[str],
    versions: Optional[Mapping[str, str]] = None,
    *,
    gallery: Gallery,
    layout: Optional[HostLayout] = None,
    force: bool = False,
) -> ExportReport:
    """
    Esporta in `share_root` la chiusura di `names` come bundle installabile offline.

    Un download fallito viene registrato in `report.artifacts.failed` e non
    interrompe l'export; lo script viene generato comunque.
    """
    share_root = Path(share_root)
    layout = layout or HostLayout.default()
    report = ExportReport()

    with scoped_context(component="bundle", operation="export"):
        resolved = resolve_closure(names, versions, gallery=gallery)
        report.resolved = resolved.as_dict()

        nuget_dir = share_root / NUGET_DIR
        nuget_dir.mkdir(parents=True, exist_ok=True)
        artifacts = BatchResult()
        for name, version in resolved.items():
            try:
                if version is None:
                    version = gallery.find(name).version
                target = nuget_dir / nupkg_filename(name, version)
                if target.exists() and not force:
                    artifacts.skipped.append(name)
                    log_event(_logger, "export_artifact_skipped", {"package": name, "version": version})
                    continue
                gallery.save(name, version, nuget_dir)
                artifacts.succeeded.append(name)
                log_event(_logger, "export_artifact_saved", {"package": name, "version": version})
            except Exception as exc:
                artifacts.failed[name] = f"{type(exc).__name__}: {exc}"
                log_event(
                    _logger,
                    "export_artifact_error",
                    {"package": name, "version": version, "error_type": type(exc).__name__, "error_message": str(exc)},
                    level=logging.ERROR,
                )
        report.artifacts = artifacts

        report.plugin_copied, report.plugin_errors = mirror_plugin(share_root, layout)
        report.installer_path = write_installer(share_root, resolved.names())

        log_event(_logger, "export_done", report.to_dict())
    return report
