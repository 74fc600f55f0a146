# -*- coding: utf-8 -*-
"""Client della gallery NuGet v2 e ciclo di vita dei moduli."""

from __future__ import annotations

from .api import PSGalleryClient
from .modules import cleanup_modules, install_modules, pack_module, publish_module, update_modules

__all__ = [
    "PSGalleryClient",
    "cleanup_modules",
    "install_modules",
    "pack_module",
    "publish_module",
    "update_modules",
]
