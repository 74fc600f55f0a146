# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: plugin.py
Descrizione:
  Ricerca e copia del plugin nativo del package manager (provider NuGet)
  lato macchina connessa:
    - locate_plugin: cerca nei percorsi noti dell'host, in ordine; se la
      versione richiesta manca ripiega sulla cartella versione più alta.
    - stage_plugin: copia versionata in `Providers/<PluginName>/<version>/`.
    - mirror_plugin: copia best-effort (unione di tutti i percorsi noti) in
      `Provider/`, usata dall'export.
  Il bootstrap lato macchina disconnessa vive in installer.py.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import NotFoundError
from ..utils.structured_logging import get_logger, log_event
from .installer import (
    PLUGIN_NAME,
    PROVIDER_DIR,
    PROVIDERS_DIR,
    HostLayout,
    find_child,
    highest_version,
    replace_directory,
    version_directories,
)

__all__ = ["locate_plugin", "stage_plugin", "mirror_plugin"]

_logger = get_logger(__name__)


def locate_plugin(layout: HostLayout, version: Optional[str] = None) -> Tuple[Path, str]:
    """
    Cartella `<base>/<plugin>/<version>` del plugin e relativa versione.

    Raises:
        NotFoundError: nessuna versione del plugin nei percorsi noti.
    """
    found: Dict[str, Path] = {}
    for base in layout.plugin_search_paths:
        plugin_dir = find_child(base, PLUGIN_NAME)
        if plugin_dir is None:
            continue
        if version and (plugin_dir / version).is_dir():
            return plugin_dir / version, version
        for v in version_directories(plugin_dir):
            found.setdefault(v, plugin_dir / v)

    best = highest_version(list(found))
    if best is None:
        log_event(
            _logger,
            "plugin_not_found",
            {"plugin": PLUGIN_NAME, "searched": [str(p) for p in layout.plugin_search_paths]},
            level=logging.WARNING,
        )
        raise NotFoundError(f"Plugin '{PLUGIN_NAME}' non trovato nei percorsi noti.")
    if version:
        log_event(
            _logger,
            "plugin_version_fallback",
            {"plugin": PLUGIN_NAME, "requested": version, "selected": best},
            level=logging.WARNING,
        )
    return found[best], best


def stage_plugin(share_root: Path, layout: HostLayout, version: Optional[str] = None, *, force: bool = False) -> Tuple[bool, str]:
    """
    Copia il plugin in `Providers/<plugin>/<version>/`.

    Returns:
        (copiato, versione): copiato=False se la destinazione esisteva già e force=False.
    """
    source, selected = locate_plugin(layout, version)
    target = share_root / PROVIDERS_DIR / PLUGIN_NAME / selected
    if target.exists() and not force:
        log_event(_logger, "plugin_stage_skipped", {"plugin": PLUGIN_NAME, "version": selected, "path": str(target)})
        return False, selected
    with replace_directory(target) as work:
        shutil.copytree(source, work, dirs_exist_ok=True)
    log_event(_logger, "plugin_staged", {"plugin": PLUGIN_NAME, "version": selected, "path": str(target)})
    return True, selected


def mirror_plugin(share_root: Path, layout: HostLayout) -> Tuple[List[str], Dict[str, str]]:
    """
    Unione best-effort del plugin da tutti i percorsi noti in `Provider/<plugin>/`.

    Returns:
        (percorsi copiati, errori per percorso). Nessuna eccezione sugli errori di copia.
    """
    target = share_root / PROVIDER_DIR / PLUGIN_NAME
    copied: List[str] = []
    errors: Dict[str, str] = {}
    for base in layout.plugin_search_paths:
        plugin_dir = find_child(base, PLUGIN_NAME)
        if plugin_dir is None:
            continue
        try:
            shutil.copytree(plugin_dir, target, dirs_exist_ok=True)
            copied.append(str(plugin_dir))
        except OSError as exc:
            errors[str(plugin_dir)] = str(exc)
            log_event(
                _logger,
                "plugin_mirror_error",
                {"source": str(plugin_dir), "error_type": type(exc).__name__, "error_message": str(exc)},
                level=logging.ERROR,
            )

    if not copied and not errors:
        log_event(_logger, "plugin_mirror_empty", {"plugin": PLUGIN_NAME}, level=logging.WARNING)
    else:
        log_event(_logger, "plugin_mirrored", {"plugin": PLUGIN_NAME, "sources": copied, "errors": len(errors)})
    return copied, errors
