# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: connectivity.py
Descrizione:
  Probe di raggiungibilità verso la gallery o altri endpoint HTTP(S):
    - una sola richiesta HEAD (fallback GET se il server risponde 405),
    - timeout breve e fisso (Settings.probe_timeout), nessun retry,
    - verifica TLS secondo Settings, per richiesta.

  Il probe non solleva mai per errori di rete: restituisce un ProbeResult
  con `reachable=False` e il messaggio d'errore, così la CLI e gli script CI
  possono decidere se procedere in modalità offline.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import requests

from .config import Settings
from .http_client import get_session, request
from .structured_logging import get_logger, log_event

__all__ = ["ProbeResult", "probe", "probe_gallery"]

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    url: str
    reachable: bool
    status_code: Optional[int] = None
    elapsed_ms: float = 0.0
    error: Optional[str] = None


def probe(url: str, *, settings: Settings, session: Optional[requests.Session] = None) -> ProbeResult:
    """
    Verifica che `url` risponda entro `settings.probe_timeout` secondi.
    Qualsiasi status HTTP < 500 conta come raggiungibile.
    """
    sess = session or get_session(url)
    start = time.perf_counter()
    ok_status = set(range(200, 500))
    try:
        resp = request(
            "HEAD",
            url,
            session=sess,
            timeout=settings.probe_timeout,
            verify=settings.tls_verify,
            expected_status=ok_status,
            max_retries=0,
        )
        if resp.status_code == 405:
            resp = request(
                "GET",
                url,
                session=sess,
                timeout=settings.probe_timeout,
                verify=settings.tls_verify,
                expected_status=ok_status,
                max_retries=0,
            )
    except requests.RequestException as exc:
        elapsed = (time.perf_counter() - start) * 1000.0
        log_event(
            _logger,
            "probe_unreachable",
            {"url": url, "elapsed_ms": round(elapsed, 2), "error_type": type(exc).__name__, "error_message": str(exc)},
            level=30,
        )
        return ProbeResult(url=url, reachable=False, elapsed_ms=round(elapsed, 2), error=str(exc))

    elapsed = (time.perf_counter() - start) * 1000.0
    reachable = resp.status_code < 500
    log_event(
        _logger,
        "probe_complete",
        {"url": url, "status": resp.status_code, "reachable": reachable, "elapsed_ms": round(elapsed, 2)},
    )
    return ProbeResult(
        url=url,
        reachable=reachable,
        status_code=resp.status_code,
        elapsed_ms=round(elapsed, 2),
        error=None if reachable else f"HTTP {resp.status_code}",
    )


def probe_gallery(settings: Settings, *, session: Optional[requests.Session] = None) -> ProbeResult:
    """Probe dell'endpoint gallery configurato."""
    return probe(settings.gallery_url, settings=settings, session=session)
