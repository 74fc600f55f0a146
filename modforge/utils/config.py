# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: config.py
Descrizione:
    Configurazione centralizzata del toolkit. Fornisce:
      - Parsing tollerante di variabili d'ambiente (bool, liste CSV, interi, float).
      - Dataclass `Settings` immutabile con gallery, API key, timeout di probe,
        verifica TLS e preferenze di logging.
      - `get_settings(**override)`: aggrega ENV e override espliciti.

    Linee guida:
      - Le impostazioni sono un valore esplicito passato a ogni operazione:
        nessun toggle globale di processo (es. protocolli TLS, verbosità).
      - In CI definire le variabili d'ambiente; non salvare mai API key
        nel repository.
      - Nessun log di segreti: l'API key viene tracciata solo come presenza.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional, Union

from .structured_logging import get_logger, log_event

_logger = get_logger(__name__)

DEFAULT_GALLERY_URL = "https://www.powershellgallery.com/api/v2"
DEFAULT_PROBE_TIMEOUT = 3.0
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# =============================================================================
# Helper di parsing ENV
# =============================================================================
def _parse_bool(value: Optional[str], *, default: bool = False) -> bool:
    """
    Converte una stringa in booleano: "1/true/yes/y/on" → True,
    "0/false/no/n/off" → False, altrimenti default.
    """
    if value is None:
        return default
    val = value.strip().lower()
    if val in ("1", "true", "yes", "y", "on"):
        return True
    if val in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_csv(value: Optional[str]) -> List[str]:
    """CSV → lista di stringhe non vuote (trim)."""
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def _parse_int(
    value: Optional[str],
    *,
    default: int,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    """Intero con default se assente, non valido o fuori vincoli."""
    if value is None or not value.strip():
        return default
    try:
        num = int(value.strip())
    except ValueError:
        return default
    if min_value is not None and num < min_value:
        return default
    if max_value is not None and num > max_value:
        return default
    return num


def _parse_float(value: Optional[str], *, default: float, min_value: float = 0.0) -> float:
    if value is None or not value.strip():
        return default
    try:
        num = float(value.strip())
    except ValueError:
        return default
    return num if num > min_value else default


# =============================================================================
# Settings
# =============================================================================
@dataclass(frozen=True)
class Settings:
    """
    Impostazioni tipizzate del toolkit.

    Attributi:
        gallery_url: endpoint NuGet v2 della gallery (senza slash finale).
        api_key: chiave di pubblicazione (opzionale, solo per publish).
        probe_timeout: timeout in secondi dei probe di connettività.
        tls_verify: True/False oppure path di un CA bundle, passato a ogni richiesta.
        log_level / log_json: preferenze di logging per l'entrypoint.
        trusted_sources: nomi di sorgenti considerate attendibili.
    """

    gallery_url: str = DEFAULT_GALLERY_URL
    api_key: Optional[str] = None
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    tls_verify: Union[bool, str] = True
    log_level: str = "INFO"
    log_json: bool = True
    trusted_sources: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.gallery_url.strip():
            raise ValueError("gallery_url obbligatorio e non può essere vuoto.")
        if self.probe_timeout <= 0:
            raise ValueError("probe_timeout deve essere positivo.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level non valido: {self.log_level}")


def get_settings(
    *,
    gallery_url: Optional[str] = None,
    api_key: Optional[str] = None,
    probe_timeout: Optional[float] = None,
    tls_verify: Optional[Union[bool, str]] = None,
    log_level: Optional[str] = None,
    log_json: Optional[bool] = None,
) -> Settings:
    """
    Costruisce le impostazioni aggregando ENV e override.

    ENV supportate:
      - MODFORGE_GALLERY_URL   : endpoint gallery (default PowerShell Gallery v2).
      - MODFORGE_API_KEY       : API key di pubblicazione (fallback NUGET_API_KEY).
      - MODFORGE_PROBE_TIMEOUT : secondi, > 0 (default 3).
      - MODFORGE_TLS_VERIFY    : "true"/"false" (default true).
      - MODFORGE_CA_BUNDLE     : path CA bundle (prevale su MODFORGE_TLS_VERIFY).
      - MODFORGE_TRUSTED       : CSV di sorgenti attendibili.
      - LOG_LEVEL / LOG_JSON   : preferenze di logging.

    Raises:
        ValueError: se i valori risultanti violano i vincoli di Settings.
    """
    url = (gallery_url or os.environ.get("MODFORGE_GALLERY_URL") or DEFAULT_GALLERY_URL).strip()

    key_raw: Optional[str]
    if api_key is not None:
        key_raw = api_key
    else:
        key_raw = os.environ.get("MODFORGE_API_KEY") or os.environ.get("NUGET_API_KEY")
    key = (key_raw or "").strip() or None

    timeout = (
        probe_timeout
        if probe_timeout is not None
        else _parse_float(os.environ.get("MODFORGE_PROBE_TIMEOUT"), default=DEFAULT_PROBE_TIMEOUT)
    )

    verify: Union[bool, str]
    if tls_verify is not None:
        verify = tls_verify
    else:
        ca_bundle = os.environ.get("MODFORGE_CA_BUNDLE", "").strip()
        verify = ca_bundle or _parse_bool(os.environ.get("MODFORGE_TLS_VERIFY"), default=True)

    level = ((log_level or os.environ.get("LOG_LEVEL") or "INFO").strip().upper()) or "INFO"
    if level not in _LOG_LEVELS:
        log_event(_logger, "log_level_normalized", {"invalid_level": level, "normalized_to": "INFO"})
        level = "INFO"

    use_json = log_json if log_json is not None else _parse_bool(os.environ.get("LOG_JSON"), default=True)

    settings = Settings(
        gallery_url=url.rstrip("/"),
        api_key=key,
        probe_timeout=timeout,
        tls_verify=verify,
        log_level=level,
        log_json=use_json,
        trusted_sources=tuple(_parse_csv(os.environ.get("MODFORGE_TRUSTED"))),
    )

    log_event(
        _logger,
        "settings_built",
        {
            "gallery_url": settings.gallery_url,
            "api_key_present": settings.api_key is not None,
            "probe_timeout": settings.probe_timeout,
            "tls_verify": settings.tls_verify,
            "log_level": settings.log_level,
            "log_json": settings.log_json,
        },
    )
    return settings
