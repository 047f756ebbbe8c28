"""POST /api/track - server-side fan-out to Meta CAPI, GA4 MP and TikTok Events API"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from biolink_api.core.config import settings
from biolink_api.core.config_store import ConfigStore, get_config_store
from biolink_api.core.dispatcher import EventDispatcher, get_dispatcher
from biolink_api.core.resolver import OwnerResolver
from biolink_api.core.tracking import TrackingService, build_tracked_event, client_ip
from biolink_api.models.errors import ValidationError
from biolink_api.models.schemas import TrackEventRequest, TrackEventResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def get_tracking_service(
    store: ConfigStore = Depends(get_config_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> TrackingService:
    resolver = OwnerResolver(store, settings.domain_tenants())
    return TrackingService(resolver, dispatcher)


async def _parse_body(request: Request) -> TrackEventRequest:
    """
    Read the beacon body regardless of Content-Type.

    navigator.sendBeacon may post JSON as text/plain, so the raw body is
    decoded here instead of relying on FastAPI's JSON body parsing.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("Request body is not valid JSON", hint=str(e)) from e
    if not isinstance(payload, dict):
        # Parsable but shapeless: every field takes its default
        payload = {}
    try:
        return TrackEventRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Request body has an invalid shape", hint=str(e)) from e


@router.post("/track", response_model=TrackEventResponse)
async def track_event(request: Request, service: TrackingService = Depends(get_tracking_service)):
    """
    Receive a client event and relay it to every configured provider.

    Provider failures are logged and never change the response: the click
    this event accompanies has already happened.
    """
    body = await _parse_body(request)
    event = build_tracked_event(body)

    try:
        results = await service.ingest(
            event,
            ip=client_ip(request.headers, request.client.host if request.client else None),
            user_agent=request.headers.get("user-agent", ""),
        )
    except Exception as e:
        logger.exception(f"[TRACK] Unhandled error for event_id={event.event_id}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})

    failed = [r for r in results if not r.ok]
    if failed:
        logger.info(f"[TRACK] event_id={event.event_id} completed with {len(failed)} provider failure(s)")
    return TrackEventResponse(ok=True, event_id=event.event_id)
