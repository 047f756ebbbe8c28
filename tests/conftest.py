"""Shared fixtures: in-memory config store, recording HTTP transport, API client"""
import json
import sys
from pathlib import Path
from typing import Dict, List

import httpx
import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from biolink_api.core.config import settings
from biolink_api.core.config_store import InMemoryConfigStore, get_config_store
from biolink_api.core.dispatcher import EventDispatcher, get_dispatcher


def make_config(facebook=(), ga4=(), tiktok=(), **extra) -> Dict:
    """Stored-shape owner config with the given credentials"""
    config = {
        "pixelsAdvanced": {
            "facebook": list(facebook),
            "ga4": list(ga4),
            "tiktok": list(tiktok),
        },
        "customBundles": [],
    }
    config.update(extra)
    return config


def fb(pixel_id: str, token: str = "fb-token", test_code: str = "") -> Dict:
    return {"pixelId": pixel_id, "accessToken": token, "testEventCode": test_code}


def ga(measurement_id: str, secret: str = "ga-secret") -> Dict:
    return {"measurementId": measurement_id, "apiSecret": secret}


def tt(pixel_code: str, token: str = "tt-token") -> Dict:
    return {"pixelCode": pixel_code, "accessToken": token}


class RecordingTransport:
    """
    httpx transport that records every outbound call.

    Calls whose URL contains one of `fail_on` raise a connection error,
    calls matching `status_for` get that status; everything else gets 200.
    """

    def __init__(self, fail_on=(), status_for=None):
        self.calls: List[httpx.Request] = []
        self.fail_on = tuple(fail_on)
        self.status_for = dict(status_for or {})
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = str(request.url)
        if any(marker in url for marker in self.fail_on):
            raise httpx.ConnectError("connection refused", request=request)
        for marker, code in self.status_for.items():
            if marker in url:
                return httpx.Response(code, json={"error": {"message": "rejected"}})
        return httpx.Response(200, json={"events_received": 1})

    def bodies(self, host_fragment: str = "") -> List[Dict]:
        return [json.loads(c.content) for c in self.calls if host_fragment in str(c.url)]


@pytest.fixture
def store():
    """Store with a default tenant, two brands and users on each"""
    return InMemoryConfigStore({
        "tenant:default": make_config(facebook=[fb("DEFAULT_PIXEL")]),
        "tenant:brandA": make_config(
            facebook=[fb("PIXEL_A1"), fb("PIXEL_A2", test_code="TEST123")],
            ga4=[ga("G-BRANDA")],
        ),
        "tenant:brandB": make_config(tiktok=[tt("TT_BRANDB")]),
        "user:alice": make_config(tenant="brandB", ga4=[ga("G-ALICE")]),
        "user:bob": make_config(tenant="brandA", tiktok=[tt("TT_BOB")]),
    })


@pytest.fixture
def recorder():
    return RecordingTransport()


@pytest.fixture
def app_client(store, recorder, monkeypatch):
    """TestClient wired to the in-memory store and recording transport"""
    from fastapi.testclient import TestClient
    from biolink_api.main import app

    monkeypatch.setattr(settings, "api_key", "")
    monkeypatch.setattr(settings, "tenant_domain_map", "")
    dispatcher = EventDispatcher(transport=recorder.transport)
    app.dependency_overrides[get_config_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
