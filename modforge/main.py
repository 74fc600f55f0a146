# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: main.py
Descrizione:
  Entrypoint CLI `modforge`. Ogni subcomando è invocabile in modo
  indipendente con opzioni nominate:
    - version encode|decode   : codec versione ↔ timestamp (bucket 64 s).
    - manifest get|set        : lettura/patch della versione nel manifest.
    - git info                : radice, branch (con fallback CI) e remote.
    - probe                   : raggiungibilità della gallery.
    - modules install|update|cleanup|publish
    - bundle stage|export|install

  Codici di uscita:
    0 successo; 1 batch terminato con elementi falliti; 2 errore (messaggio
    su stderr).

  Osservabilità:
    - Logging centralizzato via modforge.utils.structured_logging
      (JSON di default, LOG_JSON=false per testo; livello da LOG_LEVEL o
      --log-level). Nessun log di segreti (API key).

Licenza:
  Questo file è rilasciato secondo i termini della licenza del repository.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from modforge import __version__
from modforge.bundle import Scope, Source, StageOptions, export, install, stage
from modforge.bundle.installer import HostLayout
from modforge.errors import ArgumentError, ModforgeError
from modforge.manifest import DEFAULT_KEY, read_manifest_version, set_manifest_version
from modforge.providers.psgallery import (
    PSGalleryClient,
    cleanup_modules,
    install_modules,
    publish_module,
    update_modules,
)
from modforge.utils.config import Settings, get_settings
from modforge.utils.connectivity import probe, probe_gallery
from modforge.utils.git_info import GitInfo
from modforge.utils.structured_logging import get_logger, log_event, request_id_context, setup_logging
from modforge.versioning import VersionTuple4, decode3, decode4, encode3, encode4, parse_version


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _parse_pins(items: Optional[List[str]]) -> Dict[str, str]:
    """["Name=1.2.3", ...] → {"Name": "1.2.3"}."""
    pins: Dict[str, str] = {}
    for item in items or []:
        name, sep, version = item.partition("=")
        if not sep or not name.strip() or not version.strip():
            raise ArgumentError(f"Formato atteso Nome=Versione, ricevuto {item!r}")
        pins[name.strip()] = version.strip()
    return pins


def _settings(args: argparse.Namespace) -> Settings:
    return get_settings(
        gallery_url=getattr(args, "gallery_url", None),
        log_level=args.log_level,
        log_json=args.log_json,
    )


def _batch_exit(result_ok: bool) -> int:
    return 0 if result_ok else 1


# =============================================================================
# version
# =============================================================================
def _cmd_version_encode(args: argparse.Namespace) -> int:
    if args.three:
        print(encode3(args.build, args.timestamp))
    else:
        print(encode4(args.build, args.major, args.timestamp))
    return 0


def _cmd_version_decode(args: argparse.Namespace) -> int:
    parsed = parse_version(args.version)
    moment = decode4(parsed) if isinstance(parsed, VersionTuple4) else decode3(parsed)
    print(moment.isoformat())
    return 0


# =============================================================================
# manifest / git / probe
# =============================================================================
def _cmd_manifest_get(args: argparse.Namespace) -> int:
    print(read_manifest_version(args.path, args.key))
    return 0


def _cmd_manifest_set(args: argparse.Namespace) -> int:
    changed = set_manifest_version(args.path, args.version, args.key)
    _print_json({"path": str(args.path), "version": args.version, "changed": changed})
    return 0


def _cmd_git_info(args: argparse.Namespace) -> int:
    git = GitInfo(args.cwd)
    info: Dict[str, Optional[str]] = {
        "top_level": str(git.top_level_directory()),
        "branch": git.current_branch(),
    }
    try:
        info["remote_url"] = git.remote_url(args.remote)
    except RuntimeError:
        info["remote_url"] = None
    _print_json(info)
    return 0


def _cmd_probe(args: argparse.Namespace) -> int:
    settings = _settings(args)
    result = probe(args.url, settings=settings) if args.url else probe_gallery(settings)
    _print_json(asdict(result))
    return 0 if result.reachable else 1


# =============================================================================
# modules
# =============================================================================
def _cmd_modules_install(args: argparse.Namespace) -> int:
    gallery = PSGalleryClient(_settings(args))
    result = install_modules(
        args.names,
        gallery=gallery,
        layout=HostLayout.default(Scope(args.scope)),
        versions=_parse_pins(args.pins),
        force=args.force,
    )
    _print_json(result.to_dict())
    return _batch_exit(result.ok)


def _cmd_modules_update(args: argparse.Namespace) -> int:
    gallery = PSGalleryClient(_settings(args))
    result = update_modules(args.names, gallery=gallery, layout=HostLayout.default(Scope(args.scope)))
    _print_json(result.to_dict())
    return _batch_exit(result.ok)


def _cmd_modules_cleanup(args: argparse.Namespace) -> int:
    result = cleanup_modules(args.names, layout=HostLayout.default(Scope(args.scope)), keep=args.keep)
    _print_json(result.to_dict())
    return _batch_exit(result.ok)


def _cmd_modules_publish(args: argparse.Namespace) -> int:
    settings = _settings(args)
    nupkg = publish_module(
        args.path,
        gallery=PSGalleryClient(settings),
        api_key=settings.api_key or "",
        work_dir=args.out,
    )
    _print_json({"published": str(nupkg)})
    return 0


# =============================================================================
# bundle
# =============================================================================
def _cmd_bundle_stage(args: argparse.Namespace) -> int:
    source = Source(args.source)
    gallery = PSGalleryClient(_settings(args)) if source is Source.GALLERY else None
    options = StageOptions(
        source=source,
        versions=_parse_pins(args.pins),
        include_support_plugin=args.include_plugin,
        plugin_version=args.plugin_version,
        force=args.force,
    )
    result = stage(args.share, args.names, options, gallery=gallery)
    _print_json(result.to_dict())
    return _batch_exit(result.ok)


def _cmd_bundle_export(args: argparse.Namespace) -> int:
    report = export(
        args.share,
        args.names,
        _parse_pins(args.pins),
        gallery=PSGalleryClient(_settings(args)),
        force=args.force,
    )
    _print_json(report.to_dict())
    return _batch_exit(report.artifacts.ok)


def _cmd_bundle_install(args: argparse.Namespace) -> int:
    result = install(args.share, args.names, Scope(args.scope), versions=_parse_pins(args.pins))
    _print_json(result.to_dict())
    return _batch_exit(result.ok)


# =============================================================================
# Parser CLI
# =============================================================================
def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="DEBUG|INFO|WARNING|ERROR|CRITICAL (override LOG_LEVEL)",
    )
    p.add_argument(
        "--log-json",
        type=lambda x: x.strip().lower() in ("1", "true", "yes", "y", "on"),
        default=None,
        help="Forza log JSON true/false (override LOG_JSON)",
    )


def _add_gallery(p: argparse.ArgumentParser) -> None:
    p.add_argument("--gallery-url", default=None, help="Endpoint NuGet v2 (override MODFORGE_GALLERY_URL)")


def _add_names(p: argparse.ArgumentParser, *, required: bool) -> None:
    p.add_argument("--name", dest="names", action="append", required=required, help="Nome pacchetto (ripetibile)")


def _add_pins(p: argparse.ArgumentParser) -> None:
    p.add_argument("--version", dest="pins", action="append", default=None, help="Nome=Versione (ripetibile)")


def _add_scope(p: argparse.ArgumentParser) -> None:
    p.add_argument("--scope", choices=[s.value for s in Scope], default=Scope.CURRENT_USER.value)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="modforge",
        description="Modforge: versioning, pubblicazione e bundle offline di moduli PowerShell.",
    )
    p.add_argument("--version-info", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)
    leaves: List[argparse.ArgumentParser] = []

    # version
    version = sub.add_parser("version", help="Codec versione ↔ timestamp").add_subparsers(dest="action", required=True)
    sp = version.add_parser("encode", help="Timestamp → versione")
    sp.add_argument("--build", type=int, required=True)
    sp.add_argument("--major", type=int, default=0)
    sp.add_argument("--timestamp", default=None, help="ISO-8601 (default: adesso, UTC)")
    sp.add_argument("--three", action="store_true", help="Forma a 3 campi (Build.Minor.Revision)")
    sp.set_defaults(_func=_cmd_version_encode)
    leaves.append(sp)
    sp = version.add_parser("decode", help="Versione → inizio del bucket")
    sp.add_argument("--version", required=True, help="B.M.m.r oppure B.M.m")
    sp.set_defaults(_func=_cmd_version_decode)
    leaves.append(sp)

    # manifest
    manifest = sub.add_parser("manifest", help="Versione nel manifest modulo").add_subparsers(dest="action", required=True)
    sp = manifest.add_parser("get")
    sp.add_argument("--path", type=Path, required=True)
    sp.add_argument("--key", default=DEFAULT_KEY)
    sp.set_defaults(_func=_cmd_manifest_get)
    leaves.append(sp)
    sp = manifest.add_parser("set")
    sp.add_argument("--path", type=Path, required=True)
    sp.add_argument("--version", required=True)
    sp.add_argument("--key", default=DEFAULT_KEY)
    sp.set_defaults(_func=_cmd_manifest_set)
    leaves.append(sp)

    # git
    git = sub.add_parser("git", help="Introspezione repository").add_subparsers(dest="action", required=True)
    sp = git.add_parser("info")
    sp.add_argument("--cwd", type=Path, default=None)
    sp.add_argument("--remote", default="origin")
    sp.set_defaults(_func=_cmd_git_info)
    leaves.append(sp)

    # probe
    sp = sub.add_parser("probe", help="Raggiungibilità gallery/URL")
    sp.add_argument("--url", default=None)
    _add_gallery(sp)
    sp.set_defaults(_func=_cmd_probe)
    leaves.append(sp)

    # modules
    modules = sub.add_parser("modules", help="Ciclo di vita moduli").add_subparsers(dest="action", required=True)
    sp = modules.add_parser("install")
    _add_names(sp, required=True)
    _add_pins(sp)
    _add_scope(sp)
    _add_gallery(sp)
    sp.add_argument("--force", action="store_true")
    sp.set_defaults(_func=_cmd_modules_install)
    leaves.append(sp)
    sp = modules.add_parser("update")
    _add_names(sp, required=False)
    _add_scope(sp)
    _add_gallery(sp)
    sp.set_defaults(_func=_cmd_modules_update)
    leaves.append(sp)
    sp = modules.add_parser("cleanup")
    _add_names(sp, required=False)
    _add_scope(sp)
    sp.add_argument("--keep", type=int, default=1)
    sp.set_defaults(_func=_cmd_modules_cleanup)
    leaves.append(sp)
    sp = modules.add_parser("publish")
    sp.add_argument("--path", type=Path, required=True, help="Cartella del modulo")
    sp.add_argument("--out", type=Path, default=None, help="Cartella di output del .nupkg")
    _add_gallery(sp)
    sp.set_defaults(_func=_cmd_modules_publish)
    leaves.append(sp)

    # bundle
    bundle = sub.add_parser("bundle", help="Bundle offline").add_subparsers(dest="action", required=True)
    sp = bundle.add_parser("stage")
    sp.add_argument("--share", type=Path, required=True)
    _add_names(sp, required=True)
    _add_pins(sp)
    sp.add_argument("--source", choices=[s.value for s in Source], default=Source.LOCAL.value)
    sp.add_argument("--include-plugin", action="store_true")
    sp.add_argument("--plugin-version", default=None)
    sp.add_argument("--force", action="store_true")
    _add_gallery(sp)
    sp.set_defaults(_func=_cmd_bundle_stage)
    leaves.append(sp)
    sp = bundle.add_parser("export")
    sp.add_argument("--share", type=Path, required=True)
    _add_names(sp, required=True)
    _add_pins(sp)
    sp.add_argument("--force", action="store_true")
    _add_gallery(sp)
    sp.set_defaults(_func=_cmd_bundle_export)
    leaves.append(sp)
    sp = bundle.add_parser("install")
    sp.add_argument("--share", type=Path, required=True)
    _add_names(sp, required=False)
    _add_pins(sp)
    _add_scope(sp)
    sp.set_defaults(_func=_cmd_bundle_install)
    leaves.append(sp)

    for leaf in leaves:
        _add_common(leaf)
    return p


# =============================================================================
# Main
# =============================================================================
def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, json_mode=args.log_json, console=True)
    logger = get_logger(__name__)
    func: Callable[[argparse.Namespace], int] = args._func

    with request_id_context():
        try:
            return func(args)
        except (ModforgeError, ValueError, RuntimeError, OSError, requests.RequestException) as exc:
            log_event(
                logger,
                "command_error",
                {"cmd": args.cmd, "action": getattr(args, "action", None), "error_type": type(exc).__name__, "error_message": str(exc)},
                level=logging.ERROR,
            )
            sys.stderr.write(f"Errore: {exc}\n")
            return 2


if __name__ == "__main__":
    sys.exit(main())
