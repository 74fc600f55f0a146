# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_codec.py
Descrizione:
  Test del codec versione ↔ timestamp:
    - decode(encode(t)) coincide con t troncato al bucket di 64 secondi.
    - Ordinamento: t1 < t2 (bucket diversi) ⇒ versione(t1) < versione(t2).
    - Anno 6553 accettato, 6554 rifiutato.
    - Equivalenza delle forme a 3 e 4 campi con Major = 0.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from modforge.errors import ArgumentError, RangeError
from modforge.versioning import (
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

UTC = timezone.utc


def _truncate(ts: datetime) -> datetime:
    start = datetime(ts.year, 1, 1, tzinfo=UTC)
    elapsed = int((ts - start).total_seconds())
    return start + timedelta(seconds=elapsed - elapsed % 64)


@pytest.mark.parametrize(
    "ts",
    [
        datetime(2024, 1, 1, 0, 0, 0, tzinfo=UTC),
        datetime(2024, 2, 29, 13, 37, 59, tzinfo=UTC),
        datetime(2025, 12, 31, 23, 59, 59, tzinfo=UTC),
        datetime(1, 6, 15, 8, 0, 1, tzinfo=UTC),
    ],
)
def test_round_trip_truncates_to_bucket(ts: datetime) -> None:
    v = encode4(7, 3, ts)
    assert v.build == 7 and v.major == 3
    assert decode4(v) == _truncate(ts)


def test_known_encoding_layout() -> None:
    ts = datetime(2024, 1, 1, 0, 1, 4, tzinfo=UTC)  # 64 s dall'inizio anno
    assert encode4(1, 2, ts) == VersionTuple4(build=1, major=2, minor=20240, revision=1)
    assert str(encode4(1, 2, ts)) == "1.2.20240.1"


def test_late_in_year_uses_high_bits_of_minor() -> None:
    ts = datetime(2024, 12, 31, 23, 59, 0, tzinfo=UTC)
    v = encode4(0, 0, ts)
    assert v.minor // 10 == 2024
    assert v.minor % 10 >= 1
    assert 0 <= v.revision <= 0xFFFF


def test_ordering_is_monotonic_across_buckets() -> None:
    base = datetime(2023, 3, 1, tzinfo=UTC)
    moments = [base + timedelta(seconds=64 * i + 5) for i in range(0, 5000, 97)]
    moments.append(datetime(2024, 1, 1, tzinfo=UTC))
    versions = [encode4(1, 1, m) for m in moments]
    keys = [(v.build, v.major, v.minor, v.revision) for v in versions]
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)


def test_same_bucket_same_version() -> None:
    a = bucket_start(datetime(2024, 5, 5, 10, 0, 0, tzinfo=UTC))
    assert a <= datetime(2024, 5, 5, 10, 0, 0, tzinfo=UTC) < a + timedelta(seconds=64)
    assert encode4(1, 1, a) == encode4(1, 1, a + timedelta(seconds=63))
    assert encode4(1, 1, a + timedelta(seconds=64)) != encode4(1, 1, a)


def test_year_limit() -> None:
    ok = encode4(0, 0, datetime(MAX_YEAR, 12, 31, 23, 59, 59, tzinfo=UTC))
    assert ok.minor // 10 == MAX_YEAR
    with pytest.raises(RangeError):
        encode4(0, 0, datetime(MAX_YEAR + 1, 1, 1, tzinfo=UTC))


def test_three_field_equivalence() -> None:
    ts = datetime(2026, 7, 14, 9, 30, 12, tzinfo=UTC)
    v4 = encode4(12, 0, ts)
    v3 = encode3(12, ts)
    assert v3 == VersionTuple3(build=12, major=v4.minor, minor=v4.revision)
    assert decode3(v3) == decode4(v4)


def test_naive_datetime_treated_as_utc() -> None:
    naive = datetime(2024, 6, 1, 12, 0, 0)
    assert encode4(0, 0, naive) == encode4(0, 0, naive.replace(tzinfo=UTC))


def test_iso_string_and_epoch_inputs() -> None:
    ts = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)
    assert encode4(0, 0, "2024-06-01T12:00:00Z") == encode4(0, 0, ts)
    assert encode4(0, 0, ts.timestamp()) == encode4(0, 0, ts)


@pytest.mark.parametrize("bad", [-1, "not-a-date"])
def test_invalid_timestamps(bad: object) -> None:
    with pytest.raises(ArgumentError):
        encode4(0, 0, bad)  # type: ignore[arg-type]


def test_negative_build_rejected() -> None:
    with pytest.raises(ArgumentError):
        encode4(-1, 0, datetime(2024, 1, 1, tzinfo=UTC))


def test_decode_rejects_out_of_range() -> None:
    with pytest.raises(RangeError):
        decode4(VersionTuple4(0, 0, 20240, 70000))
    with pytest.raises(RangeError):
        decode4(VersionTuple4(0, 0, 5, 0))


def test_parse_version() -> None:
    assert parse_version("1.2.20240.1") == VersionTuple4(1, 2, 20240, 1)
    assert parse_version("1.20240.1") == VersionTuple3(1, 20240, 1)
    with pytest.raises(ArgumentError):
        parse_version("1.2")
    with pytest.raises(ArgumentError):
        parse_version("1.a.3")


def test_bucket_start() -> None:
    ts = datetime(2024, 1, 1, 0, 2, 10, tzinfo=UTC)
    assert bucket_start(ts) == datetime(2024, 1, 1, 0, 2, 8, tzinfo=UTC)


def test_reference_vector_2025() -> None:
    ts = datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC)
    v = encode4(1, 0, ts)
    assert str(v) == "1.0.20250.0"
    assert encode4(1, 0, ts + timedelta(seconds=64)).revision == 1


def test_decoded_value_within_bucket_and_same_year() -> None:
    ts = datetime(2031, 12, 31, 23, 59, 59, tzinfo=UTC)
    decoded = decode4(encode4(3, 1, ts))
    assert ts - timedelta(seconds=63) <= decoded <= ts
    assert decoded.year == ts.year
