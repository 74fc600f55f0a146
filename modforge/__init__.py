# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: modforge
Descrizione:
    Toolkit di supporto alla pubblicazione di moduli PowerShell. Contiene:
      - Codec versione basato sul tempo (versioning).
      - Patch del campo versione nei manifest (manifest).
      - Client gallery NuGet v2 e ciclo di vita moduli (providers).
      - Gestione bundle offline per host air-gapped (bundle).
      - Utilità comuni (config, logging, HTTP, git, probe di connettività).
      - Entrypoint CLI (vedi modforge/main.py).

Note:
    Questo __init__ definisce metadati e versione del pacchetto. Evitare import
    pesanti o esecuzione di codice con side-effect.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
Licenza:
    Vedi LICENSE alla radice del repository.
===============================================================================
"""

from __future__ import annotations

# Metadati pacchetto
__title__ = "modforge"
__author__ = "Lorenzo Biosa"
__email__ = "lorenzo@biosa-labs.com"
__license__ = "Repository License"
__version__ = "0.1.0"

__all__ = [
    "__title__",
    "__author__",
    "__email__",
    "__license__",
    "__version__",
]
