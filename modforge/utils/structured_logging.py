# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: structured_logging.py
Descrizione:
    Logging strutturato del toolkit, con:
      - JSON logger (default) o plain text.
      - Configurazione idempotente del root logger (una sola volta per processo,
        dall'entrypoint CLI o dall'installer offline).
      - Eventi coerenti: `log_event(logger, event, payload, level=...)`.
      - `request_id` (ContextVar) incluso in ogni record e propagato alla
        gallery tramite `X-Request-ID`.
      - Contesto esplicito per l'attribuzione dei log (componente, operazione)
        tramite `scoped_context(...)`: nessuna ispezione dello stack.
      - Redazione automatica di campi sensibili (api_key, token, password...).
      - File logging con rotazione opzionale (LOG_FILE / LOG_MAX_BYTES /
        LOG_BACKUP_COUNT).

Variabili d'ambiente supportate:
    LOG_LEVEL        = DEBUG|INFO|WARNING|ERROR|CRITICAL (default: INFO)
    LOG_JSON         = true|false                         (default: true)
    LOG_CONSOLE      = true|false                         (default: false)
    LOG_FILE         = path al file di log (disabilitato se vuoto)
    LOG_MAX_BYTES    = dimensione rotazione in byte (default: 5_000_000)
    LOG_BACKUP_COUNT = numero file di backup (default: 3)

Uso tipico:
    setup_logging(console=True)
    logger = get_logger(__name__)

    with scoped_context(component="bundle", operation="export"):
        log_event(logger, "export_begin", {"packages": 3})

Nota:
    Solo libreria standard: il modulo viene incorporato così com'è nello
    script Install-FromRepoFolder.py generato dall'export.

Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import socket
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterator, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_event",
    "REQUEST_ID_HEADER",
    "new_request_id",
    "get_request_id",
    "request_id_context",
    "get_context",
    "scoped_context",
    "get_correlation_headers",
]

_configured: bool = False
_DEFAULT_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"
_DEFAULT_PLAIN_FMT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

REQUEST_ID_HEADER = "X-Request-ID"

# -----------------------------------------------------------------------------
# Request ID
# -----------------------------------------------------------------------------
_request_id_cv: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def new_request_id() -> str:
    """Genera e imposta un nuovo request_id nel contesto corrente."""
    rid = uuid.uuid4().hex
    _request_id_cv.set(rid)
    return rid


def get_request_id() -> str:
    """Restituisce il request_id corrente, generandolo al primo accesso."""
    rid = _request_id_cv.get()
    if not rid:
        rid = new_request_id()
    return rid


@contextlib.contextmanager
def request_id_context(request_id: Optional[str] = None) -> Iterator[str]:
    """Imposta un request_id temporaneo e ripristina il precedente all'uscita."""
    rid = request_id or uuid.uuid4().hex
    token = _request_id_cv.set(rid)
    try:
        yield rid
    finally:
        _request_id_cv.reset(token)


# -----------------------------------------------------------------------------
# Contesto esplicito (component / operation / campi liberi)
# -----------------------------------------------------------------------------
_context_cv: ContextVar[Optional[Dict[str, Any]]] = ContextVar("log_context", default=None)


def get_context() -> Dict[str, Any]:
    """Copia del contesto corrente (vuota se non impostato)."""
    return dict(_context_cv.get() or {})


@contextlib.contextmanager
def scoped_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Aggiunge campi di contesto (es. component="bundle", operation="install")
    a tutti i log emessi nel blocco. I blocchi annidati ereditano e possono
    sovrascrivere i campi esterni.
    """
    merged = get_context()
    merged.update(fields)
    token = _context_cv.set(merged)
    try:
        yield merged
    finally:
        _context_cv.reset(token)


# -----------------------------------------------------------------------------
# Redazione segreti
# -----------------------------------------------------------------------------
_SENSITIVE_KEYS = {
    "token",
    "authorization",
    "password",
    "secret",
    "api_key",
    "apikey",
    "nuget_api_key",
    "x-nuget-apikey",
    "private_key",
}


def _redact_value(v: Any) -> str:
    s = str(v)
    if len(s) <= 8:
        return "***"
    return f"{s[:4]}***{s[-4:]}"


def _redact_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    safe: Dict[str, Any] = {}
    for k, v in payload.items():
        if k.lower() in _SENSITIVE_KEYS:
            safe[k] = _redact_value(v)
            continue
        try:
            json.dumps(v)
            safe[k] = v
        except (TypeError, ValueError):
            safe[k] = str(v)
    return safe


# -----------------------------------------------------------------------------
# Formatter JSON
# -----------------------------------------------------------------------------
_RECORD_SKIP = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class _JsonLogFormatter(logging.Formatter):
    """Serializza il record in una riga JSON con request_id e contesto."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        base: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "host": socket.gethostname(),
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        ctx = get_context()
        if ctx:
            base["context"] = _redact_payload(ctx)

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_SKIP or key in base:
                continue
            try:
                json.dumps(value)
                base[key] = value
            except (TypeError, ValueError):
                base[key] = str(value)

        return json.dumps(base, ensure_ascii=False)


def _build_formatter(use_json: bool) -> logging.Formatter:
    if use_json:
        return _JsonLogFormatter()
    return logging.Formatter(fmt=_DEFAULT_PLAIN_FMT, datefmt=_DEFAULT_DATEFMT)


# -----------------------------------------------------------------------------
# Configurazione
# -----------------------------------------------------------------------------
def setup_logging(
    level: Optional[str] = None,
    json_mode: Optional[bool] = None,
    *,
    console: Optional[bool] = None,
) -> None:
    """
    Configura il root logger in modo idempotente.

    Args:
        level: DEBUG/INFO/WARNING/ERROR/CRITICAL (default: LOG_LEVEL o INFO).
        json_mode: True → JSON, False → plain (default: LOG_JSON o True).
        console: abilita lo stream su stderr (default: LOG_CONSOLE o False).
    """
    global _configured
    if _configured:
        return

    use_json = json_mode if json_mode is not None else _env_flag("LOG_JSON", default=True)
    use_console = console if console is not None else _env_flag("LOG_CONSOLE", default=False)

    root = logging.getLogger()
    root.setLevel(_parse_level(level if level is not None else os.getenv("LOG_LEVEL")))

    if use_console:
        ch = logging.StreamHandler()
        ch.setFormatter(_build_formatter(use_json))
        root.addHandler(ch)
    else:
        root.addHandler(logging.NullHandler())

    log_file = os.getenv("LOG_FILE", "").strip()
    if log_file:
        fh = RotatingFileHandler(
            log_file,
            maxBytes=int(os.getenv("LOG_MAX_BYTES", "5000000")),
            backupCount=int(os.getenv("LOG_BACKUP_COUNT", "3")),
            encoding="utf-8",
        )
        fh.setFormatter(_build_formatter(use_json))
        root.addHandler(fh)

    _configured = True


def get_logger(name: str, *, level: Optional[str] = None) -> logging.Logger:
    """Logger di modulo; il livello opzionale vale solo per questo logger."""
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(_parse_level(level))
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    payload: Optional[Dict[str, Any]] = None,
    *,
    level: int = logging.INFO,
) -> None:
    """
    Registra un evento applicativo come riga JSON:
    ts, event, request_id, contesto (component/operation) e payload redatto.
    """
    entry: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "request_id": get_request_id(),
    }
    ctx = get_context()
    if ctx:
        entry.update(_redact_payload(ctx))
    entry.update(_redact_payload(payload or {}))
    logger.log(level, json.dumps(entry, ensure_ascii=False))


def get_correlation_headers() -> Dict[str, str]:
    """Header di correlazione da inviare alla gallery."""
    return {REQUEST_ID_HEADER: get_request_id()}


# -----------------------------------------------------------------------------
# Helper
# -----------------------------------------------------------------------------
def _parse_level(value: Optional[str]) -> int:
    if value is None:
        return logging.INFO
    mapping = {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }
    return mapping.get(value.upper().strip(), logging.INFO)


def _env_flag(name: str, *, default: bool = True) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")
