"""Canonical tracking event models"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from biolink_api.models.schemas import OwnerConfig

EVENT_ID_MAX_LEN = 36


class RawUserData(BaseModel):
    """Match keys as received from the page"""
    fbp: Optional[str] = None
    fbc: Optional[str] = None
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class TrackedEvent(BaseModel):
    """One logical user action, shared by every fan-out destination"""
    name: str = "Event"
    params: Dict[str, Any] = Field(default_factory=dict)
    event_id: str = Field(..., max_length=EVENT_ID_MAX_LEN)
    page_url: str = ""
    user_data: RawUserData = Field(default_factory=RawUserData)


class HashedUserData(BaseModel):
    """
    Meta CAPI user_data block.

    Field names are the CAPI match keys: em/ph/external_id carry SHA-256
    hashes, fbp/fbc are browser cookies passed through as-is.
    """
    client_ip_address: str = ""
    client_user_agent: str = ""
    fbp: Optional[str] = None
    fbc: Optional[str] = None
    external_id: Optional[str] = None
    em: Optional[str] = None
    ph: Optional[str] = None

    def to_payload(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)


class ResolvedOwner(BaseModel):
    """Config record plus the store key it came from (for logs)"""
    key: str
    config: OwnerConfig


class ProviderRequest(BaseModel):
    """A single outbound HTTP call, fully shaped"""
    provider: str
    method: str = "POST"
    url: str
    params: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    json_body: Dict[str, Any] = Field(default_factory=dict)


class DispatchResult(BaseModel):
    """Settled outcome of one provider call"""
    provider: str
    owner: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
