# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: staging.py
Descrizione:
  Preparazione del bundle sulla macchina connessa: copia dei moduli in
  `<share>/Modules/<name>/<version>/`.

  Sorgenti:
    - Local: versione installata più alta (o quella richiesta) cercata nei
      percorsi modulo dell'host.
    - Gallery: download del .nupkg in area temporanea ed espansione.

  Una destinazione già presente viene saltata senza alcuna scrittura, a
  meno di force=True. La copia avviene in una cartella sorella e
  sostituisce la destinazione solo se completa. Un pacchetto non trovato viene loggato e il batch
  prosegue.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Tuple

from ..errors import ArgumentError, NotFoundError
from ..providers.base import Gallery
from ..utils.structured_logging import get_logger, log_event, scoped_context
from .installer import (
    MODULES_DIR,
    HostLayout,
    expand_nupkg,
    find_child,
    highest_version,
    replace_directory,
    version_directories,
)
from .models import BatchResult, Source, StageOptions
from .plugin import stage_plugin

__all__ = ["stage", "find_installed_module"]

_logger = get_logger(__name__)


def find_installed_module(name: str, layout: HostLayout, version: Optional[str] = None) -> Tuple[Path, str]:
    """
    Cartella del modulo installato sull'host.

    Con `version` cerca quella versione esatta; senza, la più alta fra tutti
    i percorsi modulo.

    Raises:
        NotFoundError: modulo (o versione) non installato.
    """
    candidates = {}
    for base in layout.module_paths:
        module_dir = find_child(base, name)
        if module_dir is None:
            continue
        for v in version_directories(module_dir):
            candidates.setdefault(v, module_dir / v)

    if version is not None:
        if version in candidates:
            return candidates[version], version
        raise NotFoundError(f"{name} {version} non installato sull'host.")
    best = highest_version(list(candidates))
    if best is None:
        raise NotFoundError(f"{name} non installato sull'host.")
    return candidates[best], best


def _stage_local(name: str, version: Optional[str], share_root: Path, layout: HostLayout, force: bool) -> Tuple[bool, str]:
    source, selected = find_installed_module(name, layout, version)
    target = share_root / MODULES_DIR / name / selected
    if target.exists() and not force:
        return False, selected
    with replace_directory(target) as work:
        shutil.copytree(source, work, dirs_exist_ok=True)
    return True, selected


def _stage_gallery(name: str, version: Optional[str], share_root: Path, gallery: Gallery, force: bool) -> Tuple[bool, str]:
    selected = version or gallery.find(name).version
    target = share_root / MODULES_DIR / name / selected
    if target.exists() and not force:
        return False, selected
    with tempfile.TemporaryDirectory(prefix="modforge-stage-") as tmp, replace_directory(target) as work:
        nupkg = gallery.save(name, selected, Path(tmp))
        expand_nupkg(nupkg, work)
    return True, selected


def stage(
    share_root: Path,
    names: Sequence[str],
    options: Optional[StageOptions] = None,
    *,
    gallery: Optional[Gallery] = None,
    layout: Optional[HostLayout] = None,
) -> BatchResult:
    """
    Copia i moduli richiesti nel bundle.

    Returns:
        BatchResult con i nomi copiati, saltati (destinazione esistente) e falliti.

    Raises:
        ArgumentError: sorgente Gallery senza client gallery.
    """
    options = options or StageOptions()
    source = Source(options.source)
    if source is Source.GALLERY and gallery is None:
        raise ArgumentError("La sorgente Gallery richiede un client gallery.")
    layout = layout or HostLayout.default()
    pinned = {k.lower(): v for k, v in options.versions.items()}
    result = BatchResult()

    with scoped_context(component="bundle", operation="stage"):
        for name in names:
            version = pinned.get(name.lower())
            try:
                if source is Source.LOCAL:
                    copied, selected = _stage_local(name, version, share_root, layout, options.force)
                else:
                    copied, selected = _stage_gallery(name, version, share_root, gallery, options.force)
            except NotFoundError as exc:
                result.failed[name] = str(exc)
                log_event(_logger, "stage_not_found", {"package": name, "source": source.value, "error_message": str(exc)}, level=logging.WARNING)
                continue
            except Exception as exc:
                result.failed[name] = f"{type(exc).__name__}: {exc}"
                log_event(
                    _logger,
                    "stage_error",
                    {"package": name, "source": source.value, "error_type": type(exc).__name__, "error_message": str(exc)},
                    level=logging.ERROR,
                )
                continue

            if copied:
                result.succeeded.append(name)
                log_event(_logger, "stage_copied", {"package": name, "version": selected, "source": source.value})
            else:
                result.skipped.append(name)
                log_event(_logger, "stage_skipped", {"package": name, "version": selected, "reason": "destinazione esistente"})

        if options.include_support_plugin:
            label = "plugin"
            try:
                copied, selected = stage_plugin(share_root, layout, options.plugin_version, force=options.force)
                (result.succeeded if copied else result.skipped).append(f"{label}:{selected}")
            except (NotFoundError, OSError) as exc:
                result.failed[label] = str(exc)
                log_event(_logger, "stage_plugin_error", {"error_type": type(exc).__name__, "error_message": str(exc)}, level=logging.ERROR)

        log_event(_logger, "stage_done", result.to_dict())
    return result
