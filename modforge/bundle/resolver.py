# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: resolver.py
Descrizione:
  Risoluzione della chiusura di dipendenze per l'export.

  Per ogni nome richiesto si interroga la gallery con le dipendenze
  transitive incluse; i risultati di tutte le radici vengono fusi tenendo,
  per ogni nome, la versione numericamente più alta ("highest wins").
  Non è un solver di vincoli: la versione scelta può non soddisfare il
  range dichiarato da un altro consumatore. Ogni sostituzione viene
  tracciata con l'evento `closure_merge_upgrade`.

  Una radice che fallisce viene loggata e saltata; se la chiusura resta
  vuota si ricade sui nomi richiesti con le loro versioni letterali.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from ..providers.base import Gallery
from ..utils.structured_logging import get_logger, log_event, scoped_context
from .models import ResolvedPackageSet

__all__ = ["resolve_closure"]

_logger = get_logger(__name__)


def resolve_closure(
    names: Sequence[str],
    versions: Optional[Mapping[str, str]] = None,
    *,
    gallery: Gallery,
) -> ResolvedPackageSet:
    """
    Chiusura transitiva di `names` con fusione "highest wins".

    Args:
        names: pacchetti radice.
        versions: versione esplicita per radice (nome → versione).
        gallery: client gallery.
    """
    pinned = {k.lower(): v for k, v in (versions or {}).items()}
    resolved = ResolvedPackageSet()

    with scoped_context(component="bundle", operation="resolve_closure"):
        for name in names:
            try:
                closure = gallery.find_with_dependencies(name, pinned.get(name.lower()))
            except Exception as exc:
                _logger.exception(f"Errore risolvendo le dipendenze di {name}")
                log_event(
                    _logger,
                    "closure_root_error",
                    {"package": name, "error_type": type(exc).__name__, "error_message": str(exc)},
                    level=logging.ERROR,
                )
                continue

            for pkg in closure:
                replaced = resolved.merge(pkg.name, pkg.version)
                if replaced is not None:
                    log_event(
                        _logger,
                        "closure_merge_upgrade",
                        {"package": pkg.name, "from": replaced, "to": pkg.version, "root": name},
                        level=logging.WARNING,
                    )

        if len(resolved) == 0:
            log_event(
                _logger,
                "closure_fallback_literal",
                {"packages": list(names)},
                level=logging.WARNING,
            )
            for name in names:
                resolved.merge(name, pinned.get(name.lower()))

        log_event(_logger, "closure_resolved", {"packages": resolved.as_dict()})
        return resolved
