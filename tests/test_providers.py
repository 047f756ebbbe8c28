"""Tests for the Meta CAPI, GA4 MP and TikTok payload builders"""
import re
from datetime import datetime, timezone

import pytest

from biolink_api.core.providers import (
    GA4_MP,
    META_CAPI,
    TIKTOK_EVENTS,
    build_ga4_request,
    build_meta_request,
    build_provider_requests,
    build_tiktok_request,
    iso_timestamp,
    new_client_id,
)
from biolink_api.models.events import HashedUserData, TrackedEvent
from biolink_api.models.schemas import (
    FacebookCredential,
    Ga4Credential,
    OwnerConfig,
    TikTokCredential,
)

from conftest import fb, ga, make_config, tt

NOW = datetime(2024, 1, 1, 12, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def event():
    return TrackedEvent(
        name="Lead",
        params={"value": 10, "currency": "USD"},
        event_id="evt-123",
        page_url="https://site.com/brandA",
    )


@pytest.fixture
def user_data():
    return HashedUserData(
        client_ip_address="203.0.113.7",
        client_user_agent="Mozilla/5.0",
        fbp="fb.1.123.456",
        em="a" * 64,
    )


class TestMetaRequest:

    def test_shape(self, event, user_data):
        cred = FacebookCredential(pixelId="123456", accessToken="tok")
        req = build_meta_request(event, user_data, cred, NOW)

        assert req.provider == META_CAPI
        assert req.url == "https://graph.facebook.com/v20.0/123456/events"
        assert req.params == {"access_token": "tok"}
        data = req.json_body["data"][0]
        assert data["event_name"] == "Lead"
        assert data["event_id"] == "evt-123"
        assert data["event_time"] == int(NOW.timestamp())
        assert data["action_source"] == "website"
        assert data["event_source_url"] == "https://site.com/brandA"
        assert data["custom_data"] == {"value": 10, "currency": "USD"}
        assert "test_event_code" not in req.json_body

    def test_user_data_omits_missing_keys(self, event, user_data):
        req = build_meta_request(event, user_data, FacebookCredential(pixelId="1", accessToken="t"), NOW)
        ud = req.json_body["data"][0]["user_data"]
        assert ud == {
            "client_ip_address": "203.0.113.7",
            "client_user_agent": "Mozilla/5.0",
            "fbp": "fb.1.123.456",
            "em": "a" * 64,
        }

    def test_test_event_code(self, event, user_data):
        cred = FacebookCredential(pixelId="1", accessToken="t", testEventCode=" TEST123 ")
        req = build_meta_request(event, user_data, cred, NOW)
        assert req.json_body["test_event_code"] == "TEST123"

    def test_pixel_id_is_path_quoted(self, event, user_data):
        cred = FacebookCredential(pixelId="12/../34", accessToken="t")
        req = build_meta_request(event, user_data, cred, NOW)
        assert req.url.endswith("/12%2F..%2F34/events")


class TestGa4Request:

    def test_shape(self, event):
        req = build_ga4_request(event, Ga4Credential(measurementId="G-ABC", apiSecret="s3cret"), client_id="cid")
        assert req.provider == GA4_MP
        assert req.url == "https://www.google-analytics.com/mp/collect"
        assert req.params == {"measurement_id": "G-ABC", "api_secret": "s3cret"}
        assert req.json_body == {
            "client_id": "cid",
            "events": [
                {"name": "Lead", "params": {"value": 10, "currency": "USD", "event_id": "evt-123"}},
            ],
        }

    def test_generated_client_id(self, event):
        req = build_ga4_request(event, Ga4Credential(measurementId="G-ABC", apiSecret="s"))
        assert re.fullmatch(r"[0-9a-z]{16}", req.json_body["client_id"])

    def test_client_ids_differ(self):
        assert new_client_id() != new_client_id()


class TestTikTokRequest:

    def test_shape(self, event, user_data):
        req = build_tiktok_request(event, user_data, TikTokCredential(pixelCode="TTPIX", accessToken="tt"), NOW)
        assert req.provider == TIKTOK_EVENTS
        assert req.url == "https://business-api.tiktok.com/open_api/v1.3/pixel/track/"
        assert req.headers["Access-Token"] == "tt"
        assert req.headers["Content-Type"] == "application/json"
        body = req.json_body
        assert body["pixel_code"] == "TTPIX"
        assert body["event"] == "Lead"
        assert body["timestamp"] == "2024-01-01T12:30:00.000Z"
        assert body["context"] == {
            "page": {"url": "https://site.com/brandA"},
            "user": {"user_agent": "Mozilla/5.0"},
        }
        assert body["properties"]["event_id"] == "evt-123"
        assert body["properties"]["value"] == 10

    def test_iso_timestamp_converts_to_utc(self):
        from datetime import timedelta
        local = datetime(2024, 1, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        assert iso_timestamp(local) == "2024-01-01T12:30:00.000Z"


class TestBuildProviderRequests:

    def test_one_request_per_configured_credential(self, event, user_data):
        config = OwnerConfig.model_validate(make_config(
            facebook=[fb("P1"), fb("P2")],
            ga4=[ga("G-1")],
            tiktok=[tt("T1")],
        ))
        requests = build_provider_requests(event, user_data, config, NOW)
        assert [r.provider for r in requests] == [META_CAPI, META_CAPI, GA4_MP, TIKTOK_EVENTS]

    def test_blank_credentials_skipped(self, event, user_data):
        config = OwnerConfig.model_validate(make_config(
            facebook=[fb("", token=""), fb("P1", token=" "), fb("P2")],
            ga4=[ga("G-1", secret="")],
            tiktok=[tt("", token="x")],
        ))
        requests = build_provider_requests(event, user_data, config, NOW)
        assert len(requests) == 1
        assert "/P2/" in requests[0].url

    def test_no_credentials(self, event, user_data):
        assert build_provider_requests(event, user_data, OwnerConfig(), NOW) == []

    def test_null_and_numeric_credential_values(self, event, user_data):
        config = OwnerConfig.model_validate({
            "pixelsAdvanced": {
                "facebook": [None, {"pixelId": 123456, "accessToken": "t"}],
                "ga4": None,
            }
        })
        requests = build_provider_requests(event, user_data, config, NOW)
        assert len(requests) == 1
        assert "/123456/" in requests[0].url

    def test_same_event_id_everywhere(self, event, user_data):
        config = OwnerConfig.model_validate(make_config(
            facebook=[fb("P1")], ga4=[ga("G-1")], tiktok=[tt("T1")],
        ))
        ids = set()
        for req in build_provider_requests(event, user_data, config, NOW):
            body = req.json_body
            if req.provider == META_CAPI:
                ids.add(body["data"][0]["event_id"])
            elif req.provider == GA4_MP:
                ids.add(body["events"][0]["params"]["event_id"])
            else:
                ids.add(body["properties"]["event_id"])
        assert ids == {"evt-123"}
