# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: models.py
Descrizione:
  Strutture dati del gestore bundle offline e delle operazioni batch:
    - PackageRequest: nome + versione richiesta opzionale.
    - ResolvedPackageSet: nome → versione più alta vista ("highest wins").
    - BatchResult: esito strutturato {succeeded, skipped, failed} delle
      operazioni su liste di nomi, dove un elemento fallito non interrompe
      il batch.
    - StageOptions / Source: parametri di `stage()`.
    - ExportReport: esito di `export()`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from packaging.version import InvalidVersion, Version

from .installer import version_key


class Source(str, Enum):
    LOCAL = "Local"
    GALLERY = "Gallery"


@dataclass(frozen=True)
class PackageRequest:
    name: str
    required_version: Optional[str] = None


def compare_versions(a: str, b: str) -> int:
    """-1/0/1; PEP 440 quando possibile, altrimenti confronto numerico tollerante."""
    try:
        va, vb = Version(a), Version(b)
    except InvalidVersion:
        ka, kb = version_key(a), version_key(b)
        return (ka > kb) - (ka < kb)
    return (va > vb) - (va < vb)


class ResolvedPackageSet:
    """
    Mappa nome → versione con politica "highest wins". I nomi sono confrontati
    senza distinzione di maiuscole; resta la prima grafia incontrata.

    Non verifica che la versione scelta soddisfi i range di tutti i consumatori:
    è la semplificazione accettata della risoluzione di chiusura.
    """

    def __init__(self) -> None:
        self._items: Dict[str, Tuple[str, Optional[str]]] = {}

    def merge(self, name: str, version: Optional[str]) -> Optional[str]:
        """
        Inserisce o aggiorna `name`. Ritorna la versione sostituita se `version`
        è più alta di quella già presente, altrimenti None.
        """
        key = name.lower()
        current = self._items.get(key)
        if current is None:
            self._items[key] = (name, version)
            return None
        spelling, old = current
        if version is None:
            return None
        if old is None or compare_versions(version, old) > 0:
            self._items[key] = (spelling, version)
            return old
        return None

    def get(self, name: str) -> Optional[str]:
        item = self._items.get(name.lower())
        return item[1] if item else None

    def items(self) -> List[Tuple[str, Optional[str]]]:
        return list(self._items.values())

    def names(self) -> List[str]:
        return [n for n, _ in self._items.values()]

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {n: v for n, v in self._items.values()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ResolvedPackageSet({self.as_dict()!r})"


def _str_list() -> List[str]:
    return []


def _str_dict() -> Dict[str, str]:
    return {}


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=_str_list)
    skipped: List[str] = field(default_factory=_str_list)
    failed: Dict[str, str] = field(default_factory=_str_dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, object]:
        return {"succeeded": list(self.succeeded), "skipped": list(self.skipped), "failed": dict(self.failed)}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


@dataclass(frozen=True)
class StageOptions:
    source: Source = Source.LOCAL
    versions: Mapping[str, str] = field(default_factory=dict)
    include_support_plugin: bool = False
    plugin_version: Optional[str] = None
    force: bool = False


@dataclass
class ExportReport:
    resolved: Dict[str, Optional[str]] = field(default_factory=dict)
    artifacts: BatchResult = field(default_factory=BatchResult)
    plugin_copied: List[str] = field(default_factory=_str_list)
    plugin_errors: Dict[str, str] = field(default_factory=_str_dict)
    installer_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "resolved": dict(self.resolved),
            "artifacts": self.artifacts.to_dict(),
            "plugin_copied": list(self.plugin_copied),
            "plugin_errors": dict(self.plugin_errors),
            "installer_path": str(self.installer_path) if self.installer_path else None,
        }
