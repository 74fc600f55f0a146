# -*- coding: utf-8 -*-
"""
Autore:        Lorenzo Biosa
Email:         lorenzo@biosa-labs.com
Copyright:
  © 2026 Biosa Labs. Tutti i diritti riservati.

Modulo: tests/test_connectivity.py
Descrizione:
  Test del probe di connettività e del wrapper HTTP:
    - HEAD ok → raggiungibile; 405 → ripiego su GET.
    - Errore di rete → risultato non raggiungibile, nessuna eccezione e
      nessun retry.
    - Timeout e verifica TLS presi dalle Settings.
    - Retry su 503 rispettando Retry-After.
"""

from __future__ import annotations

from typing import Dict, List, Optional
from unittest.mock import MagicMock

import requests
from _pytest.monkeypatch import MonkeyPatch

import modforge.utils.http_client as http_mod
from modforge.utils.config import Settings
from modforge.utils.connectivity import probe, probe_gallery


def _resp(status: int, headers: Optional[Dict[str, str]] = None) -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.headers = headers or {}
    return r


def test_probe_reachable(fake_session: MagicMock) -> None:
    settings = Settings(gallery_url="https://gallery.example/api/v2", probe_timeout=1.5, tls_verify="/etc/ca.pem")
    fake_session.request.return_value = _resp(200)

    result = probe_gallery(settings, session=fake_session)

    assert result.reachable is True
    assert result.status_code == 200
    kwargs = fake_session.request.call_args.kwargs
    assert kwargs["method"] == "HEAD"
    assert kwargs["timeout"] == 1.5
    assert kwargs["verify"] == "/etc/ca.pem"
    assert "X-Request-ID" in kwargs["headers"]


def test_probe_falls_back_to_get_on_405(fake_session: MagicMock) -> None:
    fake_session.request.side_effect = [_resp(405), _resp(200)]
    result = probe("https://gallery.example/", settings=Settings(), session=fake_session)
    assert result.reachable is True
    methods = [c.kwargs["method"] for c in fake_session.request.call_args_list]
    assert methods == ["HEAD", "GET"]


def test_probe_connection_error_is_unreachable(fake_session: MagicMock) -> None:
    fake_session.request.side_effect = requests.ConnectionError("refused")
    result = probe("https://offline.example/", settings=Settings(), session=fake_session)
    assert result.reachable is False
    assert result.status_code is None
    assert "refused" in (result.error or "")
    assert fake_session.request.call_count == 1


def test_probe_server_error_is_unreachable(fake_session: MagicMock) -> None:
    fake_session.request.return_value = _resp(503)
    result = probe("https://gallery.example/", settings=Settings(), session=fake_session)
    assert result.reachable is False
    assert result.status_code == 503
    assert fake_session.request.call_count == 1


def test_request_retries_on_503_with_retry_after(monkeypatch: MonkeyPatch, fake_session: MagicMock) -> None:
    sleeps: List[float] = []
    monkeypatch.setattr(http_mod.time, "sleep", lambda s: sleeps.append(s))
    fake_session.request.side_effect = [_resp(503, {"Retry-After": "2"}), _resp(200)]

    r = http_mod.get("https://gallery.example/x", session=fake_session)

    assert r.status_code == 200
    assert sleeps == [2.0]


def test_api_key_header_only_when_given() -> None:
    assert http_mod.API_KEY_HEADER not in http_mod.build_headers()
    assert http_mod.build_headers(api_key="k")[http_mod.API_KEY_HEADER] == "k"
