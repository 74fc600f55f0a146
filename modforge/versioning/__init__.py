# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: modforge.versioning
Descrizione:
    Codec versione basato sul tempo (granularità 64 secondi):
      - encode4/decode4: forma `Build.Major.Minor.Revision`.
      - encode3/decode3: forma compatibile PowerShell `Build.Minor.Revision`.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .codec import (
    GRANULARITY_SECONDS,
    MAX_YEAR,
    VersionTuple3,
    VersionTuple4,
    bucket_start,
    decode3,
    decode4,
    encode3,
    encode4,
    parse_version,
)

__all__ = [
    "GRANULARITY_SECONDS",
    "MAX_YEAR",
    "VersionTuple3",
    "VersionTuple4",
    "bucket_start",
    "decode3",
    "decode4",
    "encode3",
    "encode4",
    "parse_version",
]
