# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: modforge.utils
Descrizione:
    Utilità comuni riutilizzabili:
      - Logging universale (setup/get_logger/log_event).
      - Configurazione (parsing ENV, Settings).
      - HTTP helpers (session cache, retry/backoff), probe di connettività,
        introspezione git.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .config import Settings, get_settings
from .structured_logging import get_logger, log_event, scoped_context, setup_logging

__all__ = [
    "Settings",
    "get_logger",
    "get_settings",
    "log_event",
    "scoped_context",
    "setup_logging",
]
