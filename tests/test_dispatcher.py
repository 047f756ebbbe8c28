"""
Tests for provider fan-out

These tests verify that:
1. All calls for one event are in flight at the same time
2. A failing provider never affects its siblings or the caller
3. Failure logs never contain request URLs (they carry access tokens)
"""
import asyncio
import logging

import httpx
import pytest

from biolink_api.core.dispatcher import EventDispatcher
from biolink_api.core.providers import GA4_MP, META_CAPI, TIKTOK_EVENTS
from biolink_api.models.events import ProviderRequest

from conftest import RecordingTransport


def meta(pixel="P1"):
    return ProviderRequest(
        provider=META_CAPI,
        url=f"https://graph.facebook.com/v20.0/{pixel}/events",
        params={"access_token": "SECRET-TOKEN"},
        json_body={"data": [{"event_id": "e1"}]},
    )


def ga4():
    return ProviderRequest(
        provider=GA4_MP,
        url="https://www.google-analytics.com/mp/collect",
        params={"measurement_id": "G-1", "api_secret": "SECRET-GA"},
        json_body={"client_id": "c", "events": []},
    )


def tiktok():
    return ProviderRequest(
        provider=TIKTOK_EVENTS,
        url="https://business-api.tiktok.com/open_api/v1.3/pixel/track/",
        headers={"Access-Token": "SECRET-TT"},
        json_body={"event": "Lead"},
    )


class TestDispatch:

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        recorder = RecordingTransport()
        dispatcher = EventDispatcher(transport=recorder.transport)

        results = await dispatcher.dispatch([meta(), ga4(), tiktok()], "tenant:brandA")
        await dispatcher.close()

        assert [r.ok for r in results] == [True, True, True]
        assert [r.provider for r in results] == [META_CAPI, GA4_MP, TIKTOK_EVENTS]
        assert all(r.owner == "tenant:brandA" for r in results)
        assert len(recorder.calls) == 3

    @pytest.mark.asyncio
    async def test_request_shape_on_the_wire(self):
        recorder = RecordingTransport()
        dispatcher = EventDispatcher(transport=recorder.transport)

        await dispatcher.dispatch([meta(), tiktok()], "tenant:x")
        await dispatcher.close()

        fb_call = next(c for c in recorder.calls if c.url.host == "graph.facebook.com")
        tt_call = next(c for c in recorder.calls if c.url.host == "business-api.tiktok.com")
        assert fb_call.method == "POST"
        assert fb_call.url.params["access_token"] == "SECRET-TOKEN"
        assert recorder.bodies("graph.facebook.com") == [{"data": [{"event_id": "e1"}]}]
        assert tt_call.headers["Access-Token"] == "SECRET-TT"

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        dispatcher = EventDispatcher(transport=RecordingTransport().transport)
        assert await dispatcher.dispatch([], "tenant:x") == []
        assert dispatcher._client is None

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self):
        """Each handler waits until all three are in flight; sequential sends would time out"""
        in_flight = 0
        all_started = asyncio.Event()

        async def handler(request):
            nonlocal in_flight
            in_flight += 1
            if in_flight == 3:
                all_started.set()
            await asyncio.wait_for(all_started.wait(), timeout=2)
            return httpx.Response(200)

        dispatcher = EventDispatcher(transport=httpx.MockTransport(handler))
        results = await dispatcher.dispatch([meta("P1"), meta("P2"), ga4()], "tenant:x")
        await dispatcher.close()

        assert all(r.ok for r in results), [r.error for r in results]


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        recorder = RecordingTransport(status_for={"graph.facebook.com": 400})
        dispatcher = EventDispatcher(transport=recorder.transport)

        results = await dispatcher.dispatch([meta(), ga4()], "tenant:x")
        await dispatcher.close()

        fb_result, ga_result = results
        assert not fb_result.ok
        assert fb_result.status_code == 400
        assert "HTTP 400" in fb_result.error
        assert ga_result.ok

    @pytest.mark.asyncio
    async def test_network_error(self):
        recorder = RecordingTransport(fail_on=["tiktok.com"])
        dispatcher = EventDispatcher(transport=recorder.transport)

        results = await dispatcher.dispatch([meta(), tiktok(), ga4()], "tenant:x")
        await dispatcher.close()

        assert [r.ok for r in results] == [True, False, True]
        assert "ConnectError" in results[1].error
        assert results[1].status_code is None

    @pytest.mark.asyncio
    async def test_unexpected_exception(self):
        def handler(request):
            if "tiktok" in str(request.url):
                raise ValueError("bad state")
            return httpx.Response(200)

        dispatcher = EventDispatcher(transport=httpx.MockTransport(handler))
        results = await dispatcher.dispatch([tiktok(), meta()], "tenant:x")
        await dispatcher.close()

        assert not results[0].ok
        assert "ValueError" in results[0].error
        assert results[1].ok

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        dispatcher = EventDispatcher(timeout=0.1, transport=httpx.MockTransport(handler))
        results = await dispatcher.dispatch([ga4()], "tenant:x")
        await dispatcher.close()

        assert not results[0].ok
        assert "ReadTimeout" in results[0].error

    @pytest.mark.asyncio
    async def test_failure_logs_have_no_secrets(self, caplog):
        caplog.set_level(logging.INFO, logger="biolink_api")
        recorder = RecordingTransport(fail_on=["graph.facebook.com", "tiktok.com"], status_for={"google": 403})
        dispatcher = EventDispatcher(transport=recorder.transport)

        results = await dispatcher.dispatch([meta(), ga4(), tiktok()], "tenant:x")
        await dispatcher.close()

        assert not any(r.ok for r in results)
        ours = "\n".join(r.getMessage() for r in caplog.records if r.name.startswith("biolink_api"))
        assert "provider=meta_capi owner=tenant:x" in ours
        for secret in ("SECRET-TOKEN", "SECRET-GA", "SECRET-TT"):
            assert secret not in ours


class TestClientLifecycle:

    @pytest.mark.asyncio
    async def test_client_reused_and_closed(self):
        dispatcher = EventDispatcher(transport=RecordingTransport().transport)
        first = await dispatcher._get_client()
        assert await dispatcher._get_client() is first
        await dispatcher.close()
        assert dispatcher._client is None
