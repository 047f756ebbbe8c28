"""Event ingest: owner resolution, PII hashing and provider fan-out"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Mapping, Optional

from biolink_api.core.dispatcher import EventDispatcher
from biolink_api.core.providers import build_provider_requests
from biolink_api.core.resolver import OwnerResolver
from biolink_api.models.events import (
    EVENT_ID_MAX_LEN,
    DispatchResult,
    HashedUserData,
    RawUserData,
    TrackedEvent,
)
from biolink_api.models.schemas import TrackEventRequest
from biolink_api.utils.hashing import normalize_and_hash

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "Event"


def client_ip(headers: Mapping[str, str], peer: Optional[str]) -> str:
    """First X-Forwarded-For hop, else the socket peer address"""
    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    return forwarded or peer or ""


def build_tracked_event(body: TrackEventRequest) -> TrackedEvent:
    """Apply boundary defaults; a client event_id wins over a generated one"""
    event_id = (body.event_id or "").strip()[:EVENT_ID_MAX_LEN] or str(uuid.uuid4())
    return TrackedEvent(
        name=body.name or DEFAULT_EVENT_NAME,
        params=dict(body.params),
        event_id=event_id,
        page_url=body.url or "",
        user_data=RawUserData(**body.user_data.model_dump()),
    )


def build_user_data(raw: RawUserData, ip: str, user_agent: str) -> HashedUserData:
    """fbp/fbc are opaque browser ids and pass through; PII is hashed"""
    return HashedUserData(
        client_ip_address=ip,
        client_user_agent=user_agent,
        fbp=raw.fbp or None,
        fbc=raw.fbc or None,
        external_id=normalize_and_hash(raw.external_id),
        em=normalize_and_hash(raw.email),
        ph=normalize_and_hash(raw.phone),
    )


class TrackingService:
    """Resolves the page owner and fans one event out to all its credentials"""

    def __init__(self, resolver: OwnerResolver, dispatcher: EventDispatcher):
        self.resolver = resolver
        self.dispatcher = dispatcher

    async def ingest(
        self,
        event: TrackedEvent,
        ip: str,
        user_agent: str,
        now: Optional[datetime] = None,
    ) -> List[DispatchResult]:
        owner = await self.resolver.resolve(event.page_url)
        user_data = build_user_data(event.user_data, ip, user_agent)
        requests = build_provider_requests(
            event, user_data, owner.config, now or datetime.now(timezone.utc)
        )

        logger.info(
            f"[TRACK] event={event.name!r} event_id={event.event_id} "
            f"owner={owner.key} destinations={len(requests)}"
        )
        return await self.dispatcher.dispatch(requests, owner.key)
