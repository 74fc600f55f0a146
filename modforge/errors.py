# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: errors.py
Descrizione:
  Tassonomia delle eccezioni del toolkit. Ogni classe eredita anche dal tipo
  built-in più vicino, così i chiamanti possono intercettare sia la gerarchia
  modforge sia le categorie standard (ValueError, PermissionError, ...).

  Politica:
    - Fail-fast: RangeError, ArgumentError, ElevationRequiredError,
      MissingDependencyError interrompono la singola chiamata.
    - Parziale: NotFoundError e TransientIOError vengono loggate dalle
      operazioni batch e l'elemento viene marcato come saltato/fallito.

  Solo libreria standard: il modulo viene incorporato nell'installer offline.
"""

from __future__ import annotations

__all__ = [
    "ModforgeError",
    "RangeError",
    "ArgumentError",
    "RuntimeVersionError",
    "ElevationRequiredError",
    "MissingDependencyError",
    "NotFoundError",
    "TransientIOError",
]


class ModforgeError(Exception):
    """Radice della gerarchia di errori del toolkit."""


class RangeError(ModforgeError, ValueError):
    """Input fuori dai limiti rappresentabili (es. anno > 6553 nel codec)."""


class ArgumentError(ModforgeError, ValueError):
    """Input malformato (timestamp negativo, stringa versione non valida, ...)."""


class RuntimeVersionError(ArgumentError):
    """La major del runtime host non coincide con quella del bundle."""


class ElevationRequiredError(ModforgeError, PermissionError):
    """Scope AllUsers richiesto senza privilegi amministrativi."""


class MissingDependencyError(ModforgeError):
    """Plugin di supporto assente sia sull'host sia nel bundle."""


class NotFoundError(ModforgeError, LookupError):
    """Pacchetto/versione non trovati localmente o sulla gallery."""


class TransientIOError(ModforgeError, OSError):
    """Errore di copia o download su un singolo elemento."""
