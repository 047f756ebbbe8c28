"""API request/response schemas and owner configuration models"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_str(v: Any) -> Optional[str]:
    """Loose JSON scalars become strings; blanks become None"""
    if v is None or isinstance(v, (dict, list)):
        return None
    if isinstance(v, bool):
        v = str(v).lower()
    v = str(v)
    return v if v.strip() else None


# ---------------------------------------------------------------------------
# Owner configuration
# ---------------------------------------------------------------------------

class _Credential(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_scalar(cls, v):
        return _coerce_str(v) or ""


class FacebookCredential(_Credential):
    """Meta Pixel + Conversions API token"""

    pixel_id: str = Field(default="", alias="pixelId")
    access_token: str = Field(default="", alias="accessToken")
    test_event_code: str = Field(default="", alias="testEventCode")

    @property
    def is_configured(self) -> bool:
        return bool(self.pixel_id.strip() and self.access_token.strip())


class Ga4Credential(_Credential):
    """GA4 Measurement Protocol stream"""

    measurement_id: str = Field(default="", alias="measurementId")
    api_secret: str = Field(default="", alias="apiSecret")

    @property
    def is_configured(self) -> bool:
        return bool(self.measurement_id.strip() and self.api_secret.strip())


class TikTokCredential(_Credential):
    """TikTok Events API pixel"""

    pixel_code: str = Field(default="", alias="pixelCode")
    access_token: str = Field(default="", alias="accessToken")

    @property
    def is_configured(self) -> bool:
        return bool(self.pixel_code.strip() and self.access_token.strip())


class PixelsAdvanced(BaseModel):
    """Server-side credentials, any number per provider"""
    model_config = ConfigDict(extra="ignore")

    facebook: List[FacebookCredential] = Field(default_factory=list)
    ga4: List[Ga4Credential] = Field(default_factory=list)
    tiktok: List[TikTokCredential] = Field(default_factory=list)

    @field_validator("facebook", "ga4", "tiktok", mode="before")
    @classmethod
    def drop_null_entries(cls, v):
        if v is None:
            return []
        if isinstance(v, list):
            return [item for item in v if isinstance(item, dict)]
        return v


class OwnerConfig(BaseModel):
    """
    Tenant- or user-level configuration record.

    Only the fields the tracking core reads are typed; profile, links,
    gallery and the rest are kept as extra fields so a load/save cycle
    never drops them.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tenant: Optional[str] = None
    pixels_simple: Dict[str, Any] = Field(default_factory=dict, alias="pixelsSimple")
    pixels_advanced: PixelsAdvanced = Field(default_factory=PixelsAdvanced, alias="pixelsAdvanced")
    custom_bundles: List[str] = Field(default_factory=list, alias="customBundles")

    def to_store(self) -> Dict[str, Any]:
        """Serialize with the stored (camelCase) keys"""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# POST /api/track
# ---------------------------------------------------------------------------

class TrackUserData(BaseModel):
    """Raw match keys sent by the page; hashed before leaving the server"""
    model_config = ConfigDict(extra="ignore")

    fbp: Optional[str] = None
    fbc: Optional[str] = None
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("fbp", "fbc", "external_id", "email", "phone", mode="before")
    @classmethod
    def coerce_scalar(cls, v):
        return _coerce_str(v)


class TrackEventRequest(BaseModel):
    """POST /api/track request body"""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    event_id: Optional[str] = None
    url: Optional[str] = None
    user_data: TrackUserData = Field(default_factory=TrackUserData)

    @field_validator("name", "event_id", "url", mode="before")
    @classmethod
    def coerce_scalar(cls, v):
        return _coerce_str(v)

    @field_validator("params", mode="before")
    @classmethod
    def params_mapping(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("user_data", mode="before")
    @classmethod
    def user_data_mapping(cls, v):
        return v if isinstance(v, dict) else {}


class TrackEventResponse(BaseModel):
    """POST /api/track response"""
    ok: bool = True
    event_id: str


# ---------------------------------------------------------------------------
# Admin API
# ---------------------------------------------------------------------------

class CreateTenantRequest(BaseModel):
    slug: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_\-]+$")


class CreateUserRequest(BaseModel):
    slug: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_\-]+$")
    tenant: str = Field(default="default", min_length=1, max_length=64)


class BundleRequest(BaseModel):
    """Custom HTML/CSS/JS bundle submitted by a tenant admin"""
    bundle: str = ""


class ProfileBackground(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "gradient"
    from_: str = Field(default="#0f172a", alias="from")
    to: str = "#020617"
    image: str = ""

    @field_validator("type", "from_", "to", mode="before")
    @classmethod
    def blank_is_default(cls, v, info):
        return _coerce_str(v) or cls.model_fields[info.field_name].default

    @field_validator("image", mode="before")
    @classmethod
    def coerce_image(cls, v):
        return _coerce_str(v) or ""


class ProfileUpdate(BaseModel):
    """
    Page profile edit.

    Blank text fields keep the stored value; the background is always
    replaced (missing parts take the default gradient).
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    theme: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    bio: Optional[str] = None
    avatar: Optional[str] = None
    cover: Optional[str] = None
    background: ProfileBackground = Field(default_factory=ProfileBackground)
    footer: Optional[str] = None

    @field_validator("theme", "display_name", "bio", "avatar", "cover", "footer", mode="before")
    @classmethod
    def coerce_scalar(cls, v):
        return _coerce_str(v)

    @field_validator("background", mode="before")
    @classmethod
    def background_mapping(cls, v):
        return v if isinstance(v, dict) else {}

    def profile_fields(self) -> Dict[str, str]:
        """Non-blank profile values under their stored names"""
        return self.model_dump(
            by_alias=True,
            exclude_none=True,
            include={"display_name", "bio", "avatar", "cover"},
        )


SIMPLE_PIXEL_KINDS = ("facebook", "tiktok", "ga4", "gtm", "googleAds", "twitter")


class PixelsSimpleUpdate(BaseModel):
    """Client-side pixel ids; only kinds sent as a list are replaced"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    facebook: Optional[List[str]] = None
    tiktok: Optional[List[str]] = None
    ga4: Optional[List[str]] = None
    gtm: Optional[List[str]] = None
    google_ads: Optional[List[str]] = Field(default=None, alias="googleAds")
    twitter: Optional[List[str]] = None

    @field_validator("*", mode="before")
    @classmethod
    def id_list(cls, v):
        if not isinstance(v, list):
            return None
        return [str(x) if x else "" for x in v]


class LinkItem(BaseModel):
    """One button on the bio-link page"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    url: str = ""
    icon: str = "🔗"
    badge: str = ""
    highlight: bool = False
    utm: Dict[str, Any] = Field(default_factory=dict)
    event_name: str = Field(default="LinkClick", alias="eventName")

    @field_validator("title", "url", "badge", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _coerce_str(v) or ""

    @field_validator("icon", mode="before")
    @classmethod
    def default_icon(cls, v):
        return _coerce_str(v) or "🔗"

    @field_validator("event_name", mode="before")
    @classmethod
    def default_event_name(cls, v):
        return _coerce_str(v) or "LinkClick"

    @field_validator("highlight", mode="before")
    @classmethod
    def truthy(cls, v):
        return bool(v)

    @field_validator("utm", mode="before")
    @classmethod
    def utm_mapping(cls, v):
        return v if isinstance(v, dict) else {}

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class GalleryItem(BaseModel):
    url: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """Error response"""
    ok: bool = False
    error: str
    error_id: Optional[str] = None
    code: Optional[str] = None
    hint: Optional[str] = None
    retryable: bool = False
