# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: http_client.py
Descrizione:
    Utilità HTTP per la gallery NuGet (PowerShell Gallery o feed privati).
    Fornisce:
      - Sessioni `requests.Session` in cache per URL base (riuso connessioni).
      - Header standard (User-Agent, Accept) + correlazione X-Request-ID.
      - Timeout (connect/read), retry con backoff esponenziale su 429/5xx ed
        errori di rete, rispetto dell'header `Retry-After`.
      - Wrapper GET/PUT e una `request` generica.

    Sicurezza:
      - L'API key viaggia solo nell'header `X-NuGet-ApiKey` e non viene loggata.
      - La verifica TLS è un parametro della singola richiesta (da Settings),
        mai un'impostazione globale di processo.

    Note:
      - Le funzioni ritornano `requests.Response`; la validazione dello status
        è demandata ai chiamanti.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Vedi LICENSE alla radice del repository.
===============================================================================
"""

from __future__ import annotations

import time
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

import requests

from .. import __version__
from .structured_logging import get_correlation_headers, get_logger, log_event

# =============================================================================
# Costanti
# =============================================================================
DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/atom+xml, application/xml, */*",
    "User-Agent": f"BiosaLabs-Modforge/{__version__}",
}

API_KEY_HEADER = "X-NuGet-ApiKey"

# Timeout (connect, read) in secondi
DEFAULT_TIMEOUT: Tuple[float, float] = (10.0, 60.0)

RETRYABLE_STATUS: Set[int] = {429, 500, 502, 503, 504}
MAX_RETRIES: int = 4
BACKOFF_BASE_SECONDS: float = 0.5
BACKOFF_MAX_SECONDS: float = 30.0

_sessions_by_base: Dict[str, requests.Session] = {}

_logger = get_logger(__name__)

TimeoutT = Union[float, Tuple[float, float]]
VerifyT = Union[bool, str]


# =============================================================================
# Sessioni
# =============================================================================
def get_session(base_url: str) -> requests.Session:
    """
    Restituisce la `requests.Session` associata a `base_url` (creata al primo uso).
    """
    key = base_url.rstrip("/").lower()
    sess = _sessions_by_base.get(key)
    if sess is not None:
        return sess

    sess = requests.Session()
    sess.headers.update(DEFAULT_HEADERS)
    _sessions_by_base[key] = sess
    return sess


def build_headers(
    *,
    api_key: Optional[str] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Header per la singola richiesta: correlazione, API key ed extra."""
    headers: Dict[str, str] = dict(get_correlation_headers())
    if api_key:
        headers[API_KEY_HEADER] = api_key
    if extra:
        headers.update(extra)
    return headers


# =============================================================================
# Richiesta con retry/backoff
# =============================================================================
def request(
    method: str,
    url: str,
    *,
    session: requests.Session,
    params: Optional[Mapping[str, Any]] = None,
    data: Optional[Any] = None,
    files: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
    api_key: Optional[str] = None,
    timeout: Optional[TimeoutT] = None,
    verify: VerifyT = True,
    stream: bool = False,
    expected_status: Optional[Set[int]] = None,
    max_retries: int = MAX_RETRIES,
) -> requests.Response:
    """
    Esegue una richiesta HTTP con retry su status transitori ed errori di rete.

    Args:
        method: verbo HTTP.
        url: URL assoluto.
        session: sessione da usare (vedi `get_session`).
        params / data / files: come in `requests`.
        headers: header extra/override.
        api_key: valore per `X-NuGet-ApiKey` (non loggato).
        timeout: float o (connect, read). Default: DEFAULT_TIMEOUT.
        verify: verifica TLS (bool o path CA bundle).
        stream: download in streaming.
        expected_status: status considerati ok. Default: {200, 201, 202, 204}.
        max_retries: tentativi aggiuntivi (0 = nessun retry, usato dai probe).

    Returns:
        `requests.Response` (non solleva su status non attesi).

    Raises:
        requests.RequestException: dopo l'esaurimento dei retry di rete.
    """
    expected = expected_status or {200, 201, 202, 204}
    req_headers = build_headers(api_key=api_key, extra=headers)
    req_timeout = timeout or DEFAULT_TIMEOUT
    verb = method.upper()

    attempt = 0
    while True:
        attempt += 1
        try:
            resp = session.request(
                method=verb,
                url=url,
                params=params,
                data=data,
                files=files,
                headers=req_headers,
                timeout=req_timeout,
                verify=verify,
                stream=stream,
            )
        except requests.RequestException as exc:
            if attempt <= max_retries:
                sleep_s = _backoff_seconds(attempt)
                log_event(
                    _logger,
                    "network_retry",
                    {"method": verb, "url": url, "attempt": attempt, "sleep": round(sleep_s, 3), "error": str(exc)},
                    level=30,
                )
                time.sleep(sleep_s)
                continue
            raise

        if resp.status_code in expected:
            return resp

        if resp.status_code in RETRYABLE_STATUS and attempt <= max_retries:
            sleep_s = _retry_after_seconds(resp) or _backoff_seconds(attempt)
            resp.close()
            log_event(
                _logger,
                "http_retry",
                {"method": verb, "url": url, "status": resp.status_code, "attempt": attempt, "sleep": round(sleep_s, 3)},
                level=30,
            )
            time.sleep(sleep_s)
            continue

        log_event(
            _logger,
            "http_unexpected_status",
            {"method": verb, "url": url, "status": resp.status_code},
            level=30,
        )
        return resp


def get(url: str, *, session: requests.Session, **kwargs: Any) -> requests.Response:
    """Wrapper GET con retry/backoff."""
    return request("GET", url, session=session, **kwargs)


def put(url: str, *, session: requests.Session, **kwargs: Any) -> requests.Response:
    """Wrapper PUT con retry/backoff (publish)."""
    return request("PUT", url, session=session, **kwargs)


# =============================================================================
# Helpers
# =============================================================================
def _retry_after_seconds(resp: requests.Response) -> Optional[float]:
    """Secondi indicati da `Retry-After` (solo forma numerica), limitati al backoff massimo."""
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return max(0.0, min(value, BACKOFF_MAX_SECONDS))


def _backoff_seconds(attempt: int) -> float:
    """Backoff esponenziale con jitter deterministico."""
    base: float = min(BACKOFF_MAX_SECONDS, BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)))
    jitter: float = base * 0.1
    fraction: float = float(time.time() % 1)
    return max(0.0, base + jitter * (2.0 * fraction - 1.0))
