# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: installer.py
Descrizione:
  Installazione da un bundle offline su macchina disconnessa.

  Flusso di `install()`:
    Start → controlli (runtime, elevazione) → bootstrap plugin →
    registrazione sorgente temporanea → pacchetti prioritari → restanti →
    deregistrazione sorgente (sempre) → fine.

  Layout del bundle:
    <root>/Nuget/<Name>.<Version>.nupkg
    <root>/Provider/<plugin>/<version>/...
    <root>/Modules/<name>/<version>/...
    <root>/Providers/<PluginName>/<version>/...
    <root>/Install-FromRepoFolder.py

  Vincolo: solo libreria standard e import relativi su una riga. L'export
  incorpora questo modulo (insieme a errors.py e structured_logging.py)
  nello script generato, che deve girare senza alcuna installazione.
"""

from __future__ import annotations

import argparse
import contextlib
import json
import logging
import os
import re
import shutil
import sys
import tempfile
import uuid
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple
from urllib.parse import unquote

from ..errors import ArgumentError, ElevationRequiredError, MissingDependencyError, NotFoundError, RuntimeVersionError
from ..utils.structured_logging import get_logger, log_event, scoped_context, setup_logging

_logger = get_logger("modforge.bundle.installer")

# =============================================================================
# Costanti di layout
# =============================================================================
NUGET_DIR = "Nuget"
PROVIDER_DIR = "Provider"
MODULES_DIR = "Modules"
PROVIDERS_DIR = "Providers"
INSTALLER_NAME = "Install-FromRepoFolder.py"

PLUGIN_NAME = "nuget"
PRIORITY_PACKAGES: Tuple[str, ...] = (
    "PackageManagement",
    "PowerShellGet",
    "Microsoft.PowerShell.PSResourceGet",
)
RUNTIME_MAJOR = sys.version_info[0]
TEMP_SOURCE_PREFIX = "modforge-offline-"

# Metadati NuGet presenti nel .nupkg ma non nel modulo installato.
_NUPKG_METADATA_PREFIXES = ("_rels/", "package/")
_NUPKG_METADATA_FILES = {"[content_types].xml"}

_NUPKG_NAME_RE = re.compile(
    r"^(?P<name>.+?)\.(?P<version>\d+(?:\.\d+)*(?:-[0-9A-Za-z.-]+)?)\.nupkg$", re.IGNORECASE
)


class Scope(str, Enum):
    CURRENT_USER = "CurrentUser"
    ALL_USERS = "AllUsers"


# =============================================================================
# Layout dell'host
# =============================================================================
@dataclass(frozen=True)
class HostLayout:
    """
    Percorsi dell'host per uno scope.

    Attributi:
        modules_root: destinazione delle installazioni di moduli.
        module_paths: percorsi in cui cercare moduli installati (ordine di ricerca).
        plugin_root: destinazione del plugin nativo (ProviderAssemblies).
        plugin_search_paths: percorsi noti in cui cercare il plugin, in ordine.
        sources_file: registro JSON delle sorgenti pacchetti.
    """

    modules_root: Path
    module_paths: Tuple[Path, ...]
    plugin_root: Path
    plugin_search_paths: Tuple[Path, ...]
    sources_file: Path

    @classmethod
    def default(cls, scope: Scope = Scope.CURRENT_USER, env: Optional[Mapping[str, str]] = None) -> "HostLayout":
        env = env if env is not None else os.environ
        home = Path(env.get("USERPROFILE") or env.get("HOME") or str(Path.home()))
        if os.name == "nt":
            program_files = Path(env.get("ProgramFiles", r"C:\Program Files"))
            program_files_x86 = Path(env.get("ProgramFiles(x86)", r"C:\Program Files (x86)"))
            local_appdata = Path(env.get("LOCALAPPDATA", str(home / "AppData" / "Local")))
            user_modules = home / "Documents" / "WindowsPowerShell" / "Modules"
            system_modules = program_files / "WindowsPowerShell" / "Modules"
            user_plugins = local_appdata / "PackageManagement" / "ProviderAssemblies"
            system_plugins = program_files / "PackageManagement" / "ProviderAssemblies"
            extra_plugins: Tuple[Path, ...] = (program_files_x86 / "PackageManagement" / "ProviderAssemblies",)
            sources_file = local_appdata / "modforge" / "sources.json"
        else:
            data_home = Path(env.get("XDG_DATA_HOME") or str(home / ".local" / "share"))
            config_home = Path(env.get("XDG_CONFIG_HOME") or str(home / ".config"))
            user_modules = data_home / "powershell" / "Modules"
            system_modules = Path("/usr/local/share/powershell/Modules")
            user_plugins = data_home / "PackageManagement" / "ProviderAssemblies"
            system_plugins = Path("/usr/local/share/PackageManagement/ProviderAssemblies")
            extra_plugins = ()
            sources_file = config_home / "modforge" / "sources.json"

        ps_module_path = [Path(p) for p in (env.get("PSModulePath") or "").split(os.pathsep) if p.strip()]
        module_paths = _unique_paths([user_modules, system_modules, *ps_module_path])
        plugin_paths = _unique_paths([user_plugins, system_plugins, *extra_plugins])

        if Scope(scope) is Scope.ALL_USERS:
            return cls(system_modules, module_paths, system_plugins, plugin_paths, sources_file)
        return cls(user_modules, module_paths, user_plugins, plugin_paths, sources_file)


def _unique_paths(paths: Sequence[Path]) -> Tuple[Path, ...]:
    seen: Dict[str, Path] = {}
    for p in paths:
        seen.setdefault(os.path.normcase(str(p)), p)
    return tuple(seen.values())


# =============================================================================
# Versioni e artefatti
# =============================================================================
def version_key(text: str) -> Tuple[Tuple[int, ...], int, str]:
    """Chiave d'ordinamento numerica; a parità di numeri la prerelease precede la release."""
    core, _, pre = text.partition("-")
    nums = tuple(int(p) if p.isdigit() else 0 for p in core.split("."))
    # "1.0" e "1.0.0" devono confrontarsi uguali
    while len(nums) > 1 and nums[-1] == 0:
        nums = nums[:-1]
    return nums, 0 if pre else 1, pre


def highest_version(versions: Sequence[str]) -> Optional[str]:
    return max(versions, key=version_key) if versions else None


def parse_nupkg_name(filename: str) -> Optional[Tuple[str, str]]:
    """`Az.Accounts.2.1.0.nupkg` → ("Az.Accounts", "2.1.0"); None se non conforme."""
    match = _NUPKG_NAME_RE.match(filename)
    if match is None:
        return None
    return match.group("name"), match.group("version")


def nupkg_filename(name: str, version: str) -> str:
    return f"{name}.{version}.nupkg"


def version_directories(root: Path) -> List[str]:
    """Nomi delle sottocartelle di `root` che iniziano con una cifra (versioni)."""
    if not root.is_dir():
        return []
    return [p.name for p in root.iterdir() if p.is_dir() and p.name[:1].isdigit()]


def find_child(parent: Path, name: str) -> Optional[Path]:
    """Sottocartella di `parent` con nome `name` (confronto case-insensitive)."""
    if not parent.is_dir():
        return None
    exact = parent / name
    if exact.is_dir():
        return exact
    for child in parent.iterdir():
        if child.is_dir() and child.name.lower() == name.lower():
            return child
    return None


def expand_nupkg(nupkg_path: Path, destination: Path) -> Path:
    """
    Espande un .nupkg in `destination`, escludendo i metadati NuGet
    (`_rels/`, `package/`, `[Content_Types].xml`, `*.nuspec` in radice).

    Raises:
        ArgumentError: archivio con percorsi fuori da `destination`.
    """
    destination.mkdir(parents=True, exist_ok=True)
    root = destination.resolve()
    with zipfile.ZipFile(nupkg_path) as archive:
        for info in archive.infolist():
            name = unquote(info.filename.replace("\\", "/"))
            lowered = name.lower()
            if info.is_dir() or lowered in _NUPKG_METADATA_FILES or lowered.startswith(_NUPKG_METADATA_PREFIXES):
                continue
            if "/" not in lowered and lowered.endswith(".nuspec"):
                continue
            target = (root / PurePosixPath(name)).resolve()
            if root != target and root not in target.parents:
                raise ArgumentError(f"Voce fuori dalla destinazione in {nupkg_path.name}: {name}")
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
    return destination


@contextlib.contextmanager
def replace_directory(target: Path) -> Iterator[Path]:
    """
    Cartella di lavoro sorella di `target`, da riempire nel blocco `with`.

    A blocco concluso senza errori prende il posto di `target`; con un errore
    viene rimossa e `target` resta com'era.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    work = Path(tempfile.mkdtemp(prefix=f".{target.name}.", suffix=".partial", dir=target.parent))
    try:
        yield work
        if target.exists():
            shutil.rmtree(target)
        work.rename(target)
    finally:
        if work.exists():
            shutil.rmtree(work, ignore_errors=True)


def discover_staged_packages(share_root: Path) -> Dict[str, str]:
    """Pacchetti presenti nel bundle: nome → versione più alta (Nuget/ prevale su Modules/)."""
    found: Dict[str, List[str]] = {}
    spelling: Dict[str, str] = {}

    modules_dir = share_root / MODULES_DIR
    if modules_dir.is_dir():
        for module_dir in sorted(modules_dir.iterdir()):
            versions = version_directories(module_dir)
            if versions:
                spelling[module_dir.name.lower()] = module_dir.name
                found.setdefault(module_dir.name.lower(), []).extend(versions)

    nuget_dir = share_root / NUGET_DIR
    if nuget_dir.is_dir():
        for artifact in sorted(nuget_dir.glob("*.nupkg")):
            parsed = parse_nupkg_name(artifact.name)
            if parsed is None:
                continue
            name, version = parsed
            spelling[name.lower()] = name
            found.setdefault(name.lower(), []).append(version)

    return {spelling[k]: highest_version(v) or "" for k, v in found.items()}


# =============================================================================
# Registro sorgenti
# =============================================================================
class SourceRegistry:
    """
    Registro JSON delle sorgenti pacchetti dell'host:
    {"<name>": {"location": "...", "trusted": true}}.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> Dict[str, Dict[str, object]]:
        if not self.path.is_file():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ArgumentError(f"Registro sorgenti non valido: {self.path}")
        return data

    def _save(self, data: Dict[str, Dict[str, object]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def names(self) -> List[str]:
        return sorted(self._load())

    def get(self, name: str) -> Optional[Dict[str, object]]:
        return self._load().get(name)

    def register(self, name: str, location: Path, *, trusted: bool = True) -> None:
        data = self._load()
        if name in data:
            raise ArgumentError(f"Sorgente già registrata: {name}")
        data[name] = {"location": str(location), "trusted": trusted}
        self._save(data)

    def unregister(self, name: str) -> None:
        data = self._load()
        if data.pop(name, None) is not None:
            self._save(data)


class SourceRegistryLike(Protocol):
    def names(self) -> List[str]: ...

    def register(self, name: str, location: Path, *, trusted: bool = True) -> None: ...

    def unregister(self, name: str) -> None: ...


@contextlib.contextmanager
def temporary_source(registry: SourceRegistryLike, location: Path) -> Iterator[str]:
    """Registra `location` con un nome univoco e la deregistra su ogni percorso d'uscita."""
    name = f"{TEMP_SOURCE_PREFIX}{uuid.uuid4().hex[:12]}"
    registry.register(name, location, trusted=True)
    log_event(_logger, "temp_source_registered", {"source": name, "location": str(location)})
    try:
        yield name
    finally:
        registry.unregister(name)
        log_event(_logger, "temp_source_unregistered", {"source": name})


# =============================================================================
# Installazione pacchetti
# =============================================================================
class PackageInstaller(Protocol):
    def install(self, name: str, version: Optional[str], source: Path, layout: HostLayout) -> str: ...


class LocalSourceInstaller:
    """
    Installa da una sorgente locale: `.nupkg` in `source` (espansi) oppure
    cartelle `Modules/<name>/<version>/` del bundle (copiate).
    """

    def __init__(self, modules_dir: Optional[Path] = None) -> None:
        self.modules_dir = modules_dir

    def install(self, name: str, version: Optional[str], source: Path, layout: HostLayout) -> str:
        candidates: Dict[str, Path] = {}
        for artifact in source.glob("*.nupkg") if source.is_dir() else []:
            parsed = parse_nupkg_name(artifact.name)
            if parsed and parsed[0].lower() == name.lower():
                candidates[parsed[1]] = artifact

        if candidates:
            chosen = version if version in candidates else highest_version(list(candidates))
            if chosen is None or (version and chosen != version):
                raise NotFoundError(f"{name} {version} non presente nella sorgente {source}")
            with replace_directory(layout.modules_root / name / chosen) as work:
                expand_nupkg(candidates[chosen], work)
            return chosen

        module_dir = find_child(self.modules_dir, name) if self.modules_dir else None
        versions = version_directories(module_dir) if module_dir else []
        if module_dir is None or not versions:
            raise NotFoundError(f"{name} non presente nel bundle")
        chosen = version if version in versions else highest_version(versions)
        if chosen is None or (version and chosen != version):
            raise NotFoundError(f"{name} {version} non presente nel bundle")
        target = layout.modules_root / module_dir.name / chosen
        shutil.copytree(module_dir / chosen, target, dirs_exist_ok=True)
        return chosen


# =============================================================================
# Plugin nativo
# =============================================================================
def is_elevated() -> bool:
    if os.name == "nt":
        import ctypes

        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    return os.geteuid() == 0


def plugin_present(layout: HostLayout) -> bool:
    """True se almeno una cartella versione del plugin esiste nei percorsi noti."""
    for base in (layout.plugin_root, *layout.plugin_search_paths):
        plugin_dir = find_child(base, PLUGIN_NAME)
        if plugin_dir is not None and any(
            any((plugin_dir / v).iterdir()) for v in version_directories(plugin_dir)
        ):
            return True
    return False


def bootstrap_plugin(share_root: Path, layout: HostLayout) -> bool:
    """
    Copia il plugin dal bundle nella destinazione dello scope se l'host ne è privo.

    Returns:
        True se è stata eseguita la copia, False se il plugin era già presente.

    Raises:
        MissingDependencyError: plugin assente sia sull'host sia nel bundle.
    """
    if plugin_present(layout):
        log_event(_logger, "plugin_already_present", {"plugin": PLUGIN_NAME})
        return False

    mirrored = find_child(share_root / PROVIDER_DIR, PLUGIN_NAME)
    staged = find_child(share_root / PROVIDERS_DIR, PLUGIN_NAME)
    source = next((p for p in (mirrored, staged) if p is not None and version_directories(p)), None)
    if source is None:
        log_event(
            _logger,
            "plugin_missing",
            {"plugin": PLUGIN_NAME, "bundle": str(share_root)},
            level=logging.ERROR,
        )
        raise MissingDependencyError(
            f"Plugin '{PLUGIN_NAME}' assente sull'host e nel bundle ({PROVIDER_DIR}/, {PROVIDERS_DIR}/)."
        )

    target = layout.plugin_root / PLUGIN_NAME
    shutil.copytree(source, target, dirs_exist_ok=True)
    log_event(_logger, "plugin_bootstrapped", {"plugin": PLUGIN_NAME, "source": str(source), "target": str(target)})
    return True


# =============================================================================
# Install
# =============================================================================
@dataclass
class InstallResult:
    installed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    source_name: Optional[str] = None
    source_unregistered: bool = False
    plugin_bootstrapped: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, object]:
        return {
            "installed": list(self.installed),
            "failed": dict(self.failed),
            "source_name": self.source_name,
            "source_unregistered": self.source_unregistered,
            "plugin_bootstrapped": self.plugin_bootstrapped,
        }


def _install_order(requested: Sequence[str], staged: Mapping[str, str]) -> List[str]:
    """Pacchetti d'infrastruttura (richiesti o presenti nel bundle) prima di tutti gli altri."""
    requested_lower = {n.lower(): n for n in requested}
    staged_lower = {n.lower(): n for n in staged}
    priority: List[str] = []
    for pkg in PRIORITY_PACKAGES:
        key = pkg.lower()
        if key in requested_lower:
            priority.append(requested_lower[key])
        elif key in staged_lower:
            priority.append(staged_lower[key])
    taken = {p.lower() for p in priority}
    remaining = [n for n in requested if n.lower() not in taken]
    return priority + remaining


def install(
    share_root: Path,
    names: Optional[Sequence[str]] = None,
    scope: Scope = Scope.CURRENT_USER,
    *,
    versions: Optional[Mapping[str, str]] = None,
    layout: Optional[HostLayout] = None,
    registry: Optional[SourceRegistryLike] = None,
    installer: Optional[PackageInstaller] = None,
    elevated: Optional[bool] = None,
    runtime_major: int = RUNTIME_MAJOR,
) -> InstallResult:
    """
    Installa i pacchetti del bundle in `share_root` sull'host corrente.

    Args:
        share_root: radice del bundle.
        names: pacchetti da installare (default: tutti quelli nel bundle).
        scope: CurrentUser o AllUsers.
        versions: versione esplicita per nome (default: la più alta nel bundle).
        layout / registry / installer: collaboratori dell'host (default reali).
        elevated: override del controllo privilegi (default: is_elevated()).
        runtime_major: major del runtime per cui il bundle è stato generato.

    Returns:
        InstallResult con installati, falliti (nome → errore) e stato della sorgente.

    Raises:
        RuntimeVersionError, ElevationRequiredError, MissingDependencyError,
        ArgumentError: precondizioni, prima di qualsiasi installazione.
    """
    scope = Scope(scope)
    share_root = Path(share_root)
    with scoped_context(component="bundle", operation="install"):
        if runtime_major != sys.version_info[0]:
            raise RuntimeVersionError(
                f"Runtime host {sys.version_info[0]}.x diverso da quello del bundle ({runtime_major}.x)."
            )
        if scope is Scope.ALL_USERS and not (elevated if elevated is not None else is_elevated()):
            log_event(_logger, "install_elevation_required", {"scope": scope.value}, level=logging.ERROR)
            raise ElevationRequiredError("Lo scope AllUsers richiede privilegi amministrativi.")

        layout = layout or HostLayout.default(scope)
        registry = registry if registry is not None else SourceRegistry(layout.sources_file)

        nuget_dir = share_root / NUGET_DIR
        modules_dir = share_root / MODULES_DIR
        if nuget_dir.is_dir():
            location = nuget_dir
        elif modules_dir.is_dir():
            location = modules_dir
        else:
            raise ArgumentError(f"Bundle privo di {NUGET_DIR}/ e {MODULES_DIR}/: {share_root}")

        result = InstallResult()
        result.plugin_bootstrapped = bootstrap_plugin(share_root, layout)

        staged = discover_staged_packages(share_root)
        requested = list(names) if names else sorted(staged)
        order = _install_order(requested, staged)
        pinned = {k.lower(): v for k, v in (versions or {}).items()}
        worker = installer or LocalSourceInstaller(modules_dir if modules_dir.is_dir() else None)

        log_event(
            _logger,
            "install_start",
            {"bundle": str(share_root), "scope": scope.value, "order": order, "plugin_bootstrapped": result.plugin_bootstrapped},
        )

        with temporary_source(registry, location) as source_name:
            result.source_name = source_name
            for name in order:
                try:
                    version = worker.install(name, pinned.get(name.lower()), location, layout)
                    result.installed.append(name)
                    log_event(_logger, "install_package_ok", {"package": name, "version": version})
                except Exception as exc:
                    _logger.exception(f"Errore installando {name}")
                    result.failed[name] = f"{type(exc).__name__}: {exc}"
                    log_event(
                        _logger,
                        "install_package_error",
                        {"package": name, "error_type": type(exc).__name__, "error_message": str(exc)},
                        level=logging.ERROR,
                    )

        result.source_unregistered = source_name not in registry.names()
        log_event(
            _logger,
            "install_complete",
            {"installed": len(result.installed), "failed": len(result.failed), "source_unregistered": result.source_unregistered},
        )
        return result


# =============================================================================
# CLI dello script generato
# =============================================================================
def main(
    argv: Optional[Sequence[str]] = None,
    *,
    bundle_root: Path,
    default_names: Sequence[str] = (),
    runtime_major: int = RUNTIME_MAJOR,
) -> int:
    parser = argparse.ArgumentParser(
        prog=INSTALLER_NAME,
        description="Installa i moduli del bundle offline su questa macchina.",
    )
    parser.add_argument("--scope", choices=[s.value for s in Scope], default=Scope.CURRENT_USER.value)
    parser.add_argument("--name", dest="names", action="append", help="Pacchetto da installare (ripetibile)")
    parser.add_argument("--log-level", default=None, help="DEBUG|INFO|WARNING|ERROR|CRITICAL")
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, json_mode=None, console=True)
    try:
        result = install(
            bundle_root,
            args.names or list(default_names) or None,
            Scope(args.scope),
            runtime_major=runtime_major,
        )
    except (ArgumentError, ElevationRequiredError, MissingDependencyError) as exc:
        sys.stderr.write(f"Errore: {exc}\n")
        return 2

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.ok else 1
