# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: codec.py
Descrizione:
  Codifica di un istante in una versione numerica a 4 campi
  `Build.Major.Minor.Revision` (e nella variante a 3 campi compatibile con
  PowerShell), con granularità di 64 secondi.

  Schema:
    elapsed  = secondi interi trascorsi dal 1° gennaio (UTC) dell'anno
    shifted  = elapsed >> 6                  (si scartano 6 bit: 64 s)
    Revision = shifted & 0xFFFF
    Minor    = (shifted >> 16) + anno * 10

  La parte alta di `shifted` vale al massimo 7 (366 giorni), quindi la cifra
  delle unità di `Minor` la contiene senza collisioni con l'anno. L'anno è
  limitato a 6553 perché `anno * 10 + parte alta` resti entro 65535.

  La decodifica è lossy: restituisce l'inizio del bucket di 64 secondi,
  sempre <= dell'istante originale e al più 63 secondi prima.

  Variante a 3 campi: `Build.Minor.Revision`, con Major implicito a 0.
  Chi ha codificato con Major != 0 deve usare `decode4`.

  Funzioni pure e senza stato.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Union

from ..errors import ArgumentError, RangeError

__all__ = [
    "MAX_YEAR",
    "GRANULARITY_SECONDS",
    "VersionTuple4",
    "VersionTuple3",
    "encode4",
    "decode4",
    "encode3",
    "decode3",
    "parse_version",
    "bucket_start",
]

MAX_YEAR = 6553
DROPPED_BITS = 6
GRANULARITY_SECONDS = 1 << DROPPED_BITS
_REVISION_MASK = 0xFFFF
_INT32_MAX = 2**31 - 1

TimestampLike = Union[datetime, int, float, str, None]


@dataclass(frozen=True)
class VersionTuple4:
    build: int
    major: int
    minor: int
    revision: int

    def __str__(self) -> str:
        return f"{self.build}.{self.major}.{self.minor}.{self.revision}"


@dataclass(frozen=True)
class VersionTuple3:
    """Forma a 3 campi: `major` e `minor` sono Minor e Revision della forma a 4."""

    build: int
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.build}.{self.major}.{self.minor}"


def _start_of_year(year: int) -> datetime:
    return datetime(year, 1, 1, tzinfo=timezone.utc)


def _coerce_timestamp(timestamp: TimestampLike) -> datetime:
    """Normalizza l'input in un datetime UTC consapevole del fuso."""
    if timestamp is None:
        return datetime.now(timezone.utc)
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)
    if isinstance(timestamp, bool):
        raise ArgumentError("Timestamp booleano non valido.")
    if isinstance(timestamp, (int, float)):
        if timestamp < 0:
            raise ArgumentError(f"Timestamp negativo non valido: {timestamp}")
        try:
            return datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise RangeError(f"Timestamp fuori intervallo: {timestamp}") from exc
    if isinstance(timestamp, str):
        text = timestamp.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ArgumentError(f"Timestamp ISO-8601 non valido: {timestamp!r}") from exc
        return _coerce_timestamp(parsed)
    raise ArgumentError(f"Tipo di timestamp non supportato: {type(timestamp).__name__}")


def _check_field(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ArgumentError(f"{name} deve essere un intero, ricevuto {type(value).__name__}.")
    if value < 0:
        raise ArgumentError(f"{name} non può essere negativo: {value}")
    if value > _INT32_MAX:
        raise RangeError(f"{name} eccede Int32: {value}")
    return value


def encode4(build: int, major: int, timestamp: TimestampLike = None) -> VersionTuple4:
    """
    Codifica `timestamp` (default: adesso, UTC) in `Build.Major.Minor.Revision`.

    Raises:
        RangeError: anno > 6553.
        ArgumentError: timestamp negativo/malformato o campi non validi.
    """
    _check_field("build", build)
    _check_field("major", major)
    ts = _coerce_timestamp(timestamp)
    if ts.year > MAX_YEAR:
        raise RangeError(f"Anno {ts.year} non rappresentabile (massimo {MAX_YEAR}).")

    delta = ts - _start_of_year(ts.year)
    elapsed = delta.days * 86400 + delta.seconds
    shifted = elapsed >> DROPPED_BITS
    return VersionTuple4(
        build=build,
        major=major,
        minor=(shifted >> 16) + ts.year * 10,
        revision=shifted & _REVISION_MASK,
    )


def decode4(version: VersionTuple4) -> datetime:
    """
    Ricostruisce l'inizio del bucket di 64 secondi codificato in `version`.

    Raises:
        RangeError: Revision oltre 16 bit o anno ricavato fuori da 1..6553.
    """
    if not 0 <= version.revision <= _REVISION_MASK:
        raise RangeError(f"Revision fuori da 16 bit: {version.revision}")
    year = version.minor // 10
    if not 1 <= year <= MAX_YEAR:
        raise RangeError(f"Minor {version.minor} non codifica un anno valido.")
    high = version.minor - year * 10
    shifted = (high << 16) | version.revision
    return _start_of_year(year) + timedelta(seconds=shifted << DROPPED_BITS)


def encode3(build: int, timestamp: TimestampLike = None) -> VersionTuple3:
    """Forma a 3 campi: codifica con Major = 0 e rietichetta Minor/Revision."""
    full = encode4(build, 0, timestamp)
    return VersionTuple3(build=full.build, major=full.minor, minor=full.revision)


def decode3(version: VersionTuple3) -> datetime:
    """Decodifica la forma a 3 campi assumendo che il Major originale fosse 0."""
    return decode4(VersionTuple4(build=version.build, major=0, minor=version.major, revision=version.minor))


def parse_version(text: str) -> Union[VersionTuple4, VersionTuple3]:
    """
    Converte "B.M.m.r" in VersionTuple4 o "B.M.m" in VersionTuple3.

    Raises:
        ArgumentError: numero di campi diverso da 3/4 o campi non numerici.
    """
    parts = (text or "").strip().split(".")
    if len(parts) not in (3, 4) or not all(p.isascii() and p.isdigit() for p in parts):
        raise ArgumentError(f"Versione non valida: {text!r}")
    nums = [int(p) for p in parts]
    if len(nums) == 4:
        return VersionTuple4(*nums)
    return VersionTuple3(*nums)


def bucket_start(timestamp: TimestampLike = None) -> datetime:
    """Inizio del bucket di 64 secondi che contiene `timestamp`."""
    return decode4(encode4(0, 0, timestamp))
