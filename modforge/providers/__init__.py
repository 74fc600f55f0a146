# -*- coding: utf-8 -*-
"""
===============================================================================
Pacchetto: modforge.providers
Descrizione:
    Interfaccia della gallery di pacchetti (Gallery) e implementazione
    PowerShell Gallery / NuGet v2.

Linee guida:
    - Non importare automaticamente i sottopacchetti per evitare overhead.
    - Esporre solo l'interfaccia base comune (Gallery).

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Copyright:
    © 2026 Biosa Labs. Tutti i diritti riservati.
===============================================================================
"""

from __future__ import annotations

from .base import Dependency, Gallery, PackageInfo

__all__ = ["Dependency", "Gallery", "PackageInfo"]
