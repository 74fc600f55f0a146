# -*- coding: utf-8 -*-
"""
===============================================================================
Modulo: base.py
Descrizione:
    Astrazione della gallery di pacchetti usata dal toolkit. Il nucleo (bundle,
    ciclo di vita moduli) vede solo questa interfaccia stretta:
        find(name, version?)                 → PackageInfo
        find_with_dependencies(name, version?) → [PackageInfo] (radice inclusa)
        save(name, version, destination)     → Path del .nupkg
        install(name, version, layout)       → Path della cartella installata
        publish(nupkg_path, api_key)         → None

    Nessuna ispezione degli interni della gallery oltre a nome/versione/dipendenze.

Linee guida:
    - Le implementazioni sollevano NotFoundError per pacchetti/versioni assenti.
    - I test usano gallery finte che rispettano lo stesso Protocol.

Autore: Lorenzo Biosa <lorenzo@biosa-labs.com>
Licenza:
    Questo file è rilasciato secondo i termini della licenza del repository.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Tuple

if TYPE_CHECKING:
    from ..bundle.installer import HostLayout


def _empty_deps() -> List["Dependency"]:
    return []


@dataclass(frozen=True)
class Dependency:
    """Dipendenza dichiarata: nome e range NuGet grezzo (es. "[1.0, )")."""

    name: str
    version_range: str = ""

    def bounds(self) -> Tuple[Optional[str], bool, Optional[str], bool]:
        """
        Limiti del range NuGet: (minimo, minimo_incluso, massimo, massimo_incluso).
        "1.0" equivale a "[1.0, )"; "[1.0]" è esatto; "" non pone vincoli.
        """
        raw = self.version_range.strip()
        if not raw:
            return None, True, None, True
        if raw[0] not in "[(":
            return raw, True, None, True
        lo_inc = raw[0] == "["
        hi_inc = raw[-1] == "]"
        inner = raw[1:-1]
        if "," not in inner:
            exact = inner.strip() or None
            return exact, True, exact, True
        lo, hi = (part.strip() or None for part in inner.split(",", 1))
        return lo, lo_inc, hi, hi_inc


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    dependencies: List[Dependency] = field(default_factory=_empty_deps)
    is_prerelease: bool = False


class Gallery(Protocol):
    def find(self, name: str, version: Optional[str] = None) -> PackageInfo: ...

    def find_with_dependencies(self, name: str, version: Optional[str] = None) -> List[PackageInfo]: ...

    def save(self, name: str, version: str, destination: Path) -> Path: ...

    def install(self, name: str, version: str, layout: HostLayout) -> Path: ...

    def publish(self, nupkg_path: Path, api_key: str) -> None: ...
