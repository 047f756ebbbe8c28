"""
Conversions API payload builders.

Each builder turns the canonical event into exactly one outbound request
for one credential. They do no I/O; the dispatcher sends what they build.
"""

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

from biolink_api.core.config import settings
from biolink_api.models.events import HashedUserData, ProviderRequest, TrackedEvent
from biolink_api.models.schemas import (
    FacebookCredential,
    Ga4Credential,
    OwnerConfig,
    TikTokCredential,
)

logger = logging.getLogger(__name__)

META_CAPI = "meta_capi"
GA4_MP = "ga4_mp"
TIKTOK_EVENTS = "tiktok_events"

_CLIENT_ID_ALPHABET = string.digits + string.ascii_lowercase
CLIENT_ID_LENGTH = 16


def new_client_id() -> str:
    # Fresh per request: GA4 does not stitch these events to a returning visitor
    return "".join(secrets.choice(_CLIENT_ID_ALPHABET) for _ in range(CLIENT_ID_LENGTH))


def iso_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_meta_request(
    event: TrackedEvent,
    user_data: HashedUserData,
    credential: FacebookCredential,
    now: datetime,
) -> ProviderRequest:
    body = {
        "data": [
            {
                "event_name": event.name,
                "event_time": int(now.timestamp()),
                "event_id": event.event_id,
                "action_source": "website",
                "event_source_url": event.page_url,
                "user_data": user_data.to_payload(),
                "custom_data": dict(event.params),
            }
        ]
    }
    if credential.test_event_code.strip():
        body["test_event_code"] = credential.test_event_code.strip()

    pixel_id = quote(credential.pixel_id.strip(), safe="")
    return ProviderRequest(
        provider=META_CAPI,
        url=f"{settings.meta_capi_base}/{settings.graph_api_version}/{pixel_id}/events",
        params={"access_token": credential.access_token.strip()},
        json_body=body,
    )


def build_ga4_request(
    event: TrackedEvent,
    credential: Ga4Credential,
    client_id: Optional[str] = None,
) -> ProviderRequest:
    body = {
        "client_id": client_id or new_client_id(),
        "events": [
            {"name": event.name, "params": {**event.params, "event_id": event.event_id}},
        ],
    }
    return ProviderRequest(
        provider=GA4_MP,
        url=settings.ga4_collect_url,
        params={
            "measurement_id": credential.measurement_id.strip(),
            "api_secret": credential.api_secret.strip(),
        },
        json_body=body,
    )


def build_tiktok_request(
    event: TrackedEvent,
    user_data: HashedUserData,
    credential: TikTokCredential,
    now: datetime,
) -> ProviderRequest:
    body = {
        "pixel_code": credential.pixel_code.strip(),
        "event": event.name,
        "timestamp": iso_timestamp(now),
        "context": {
            "page": {"url": event.page_url},
            "user": {"user_agent": user_data.client_user_agent},
        },
        "properties": {**event.params, "event_id": event.event_id},
    }
    return ProviderRequest(
        provider=TIKTOK_EVENTS,
        url=settings.tiktok_events_url,
        headers={
            "Access-Token": credential.access_token.strip(),
            "Content-Type": "application/json",
        },
        json_body=body,
    )


def build_provider_requests(
    event: TrackedEvent,
    user_data: HashedUserData,
    config: OwnerConfig,
    now: Optional[datetime] = None,
) -> List[ProviderRequest]:
    """One request per configured credential, across every provider"""
    now = now or datetime.now(timezone.utc)
    pixels = config.pixels_advanced
    requests: List[ProviderRequest] = []
    skipped = 0

    for fb in pixels.facebook:
        if not fb.is_configured:
            skipped += 1
            continue
        requests.append(build_meta_request(event, user_data, fb, now))

    for ga in pixels.ga4:
        if not ga.is_configured:
            skipped += 1
            continue
        requests.append(build_ga4_request(event, ga))

    for tt in pixels.tiktok:
        if not tt.is_configured:
            skipped += 1
            continue
        requests.append(build_tiktok_request(event, user_data, tt, now))

    if skipped:
        logger.debug(f"[PROVIDERS] Skipped {skipped} blank credential(s) for event_id={event.event_id}")
    return requests
