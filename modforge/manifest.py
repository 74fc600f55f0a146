# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: manifest.py
Descrizione:
  Lettura e aggiornamento del campo versione in un manifest di modulo
  (`.psd1`), trattato come testo opaco con un solo campo indirizzabile:

      ModuleVersion = '1.0.20250.0'

  L'aggiornamento sostituisce solo lo span del valore tra apici; commenti,
  newline, encoding e BOM restano identici byte per byte. Le righe commentate
  (`# ModuleVersion = ...`) non corrispondono al pattern.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Pattern, Tuple, Union

from .errors import ArgumentError, NotFoundError
from .utils.structured_logging import get_logger, log_event

__all__ = ["DEFAULT_KEY", "read_manifest_version", "set_manifest_version"]

_logger = get_logger(__name__)

DEFAULT_KEY = "ModuleVersion"
_VERSION_RE = re.compile(r"^\d+(\.\d+){1,3}$")

PathLike = Union[str, Path]


def _key_pattern(key: str) -> Pattern[bytes]:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key):
        raise ArgumentError(f"Chiave manifest non valida: {key!r}")
    # La chiave può seguire `@{` o `;` sulla stessa riga; nessun `#` prima di lei.
    return re.compile(
        rb"(?mi)^(?:\xef\xbb\xbf)?[^#\r\n]*?(?<![A-Za-z0-9_.])"
        + key.encode("ascii")
        + rb"[ \t]*=[ \t]*(['\"])([^'\"\r\n]*)\1"
    )


def _locate(data: bytes, key: str, path: Path) -> Tuple[int, int]:
    match = _key_pattern(key).search(data)
    if match is None:
        log_event(
            _logger,
            "manifest_key_missing",
            {"path": str(path), "key": key},
            level=logging.ERROR,
        )
        raise NotFoundError(f"Chiave '{key}' non trovata in {path}.")
    return match.start(2), match.end(2)


def read_manifest_version(path: PathLike, key: str = DEFAULT_KEY) -> str:
    """Valore corrente della chiave `key` nel manifest."""
    p = Path(path)
    data = p.read_bytes()
    start, end = _locate(data, key, p)
    return data[start:end].decode("utf-8")


def set_manifest_version(path: PathLike, version: str, key: str = DEFAULT_KEY) -> bool:
    """
    Sostituisce il valore di `key` con `version`.

    Returns:
        True se il file è stato riscritto, False se il valore era già aggiornato.

    Raises:
        ArgumentError: versione non nel formato N.N[.N[.N]].
        NotFoundError: chiave assente nel manifest.
    """
    if not _VERSION_RE.match(version or ""):
        raise ArgumentError(f"Versione manifest non valida: {version!r}")

    p = Path(path)
    data = p.read_bytes()
    start, end = _locate(data, key, p)
    previous = data[start:end].decode("utf-8")

    if previous == version:
        log_event(_logger, "manifest_version_unchanged", {"path": str(p), "key": key, "version": version})
        return False

    p.write_bytes(data[:start] + version.encode("ascii") + data[end:])
    log_event(
        _logger,
        "manifest_version_updated",
        {"path": str(p), "key": key, "previous": previous, "version": version},
    )
    return True
