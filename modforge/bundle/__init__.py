# -*- coding: utf-8 -*-
"""
Gestione dei bundle offline: stage, risoluzione della chiusura, export e
installazione su macchina disconnessa.
"""

from .export import export, render_installer, write_installer
from .installer import HostLayout, InstallResult, Scope, SourceRegistry, install
from .models import BatchResult, ExportReport, PackageRequest, ResolvedPackageSet, Source, StageOptions
from .resolver import resolve_closure
from .staging import stage

__all__ = [
    "BatchResult",
    "ExportReport",
    "HostLayout",
    "InstallResult",
    "PackageRequest",
    "ResolvedPackageSet",
    "Scope",
    "Source",
    "SourceRegistry",
    "StageOptions",
    "export",
    "install",
    "render_installer",
    "resolve_closure",
    "stage",
    "write_installer",
]
