"""Page owner resolution: which tenant or user config a page URL belongs to"""

import logging
from typing import Dict, List, Optional
from urllib.parse import unquote, urlsplit

from biolink_api.core.config_store import (
    DEFAULT_TENANT,
    ConfigStore,
    tenant_key,
    user_key,
)
from biolink_api.models.events import ResolvedOwner
from biolink_api.models.schemas import OwnerConfig

logger = logging.getLogger(__name__)

USER_SHORTCUT = "_u"
BUILTIN_KEY = "builtin:empty"


def path_segments(page_url: str) -> List[str]:
    """Non-empty path segments of an absolute or relative URL"""
    try:
        path = urlsplit(page_url or "").path
    except ValueError:
        return []
    return [unquote(seg) for seg in path.split("/") if seg]


def url_host(page_url: str) -> Optional[str]:
    try:
        return urlsplit(page_url or "").hostname
    except ValueError:
        return None


class OwnerResolver:
    """
    Resolves a page URL to its owner config.

    Lookup order:
        /_u/<user>            -> user
        /<tenant>/<user>      -> user, only if user.tenant == tenant
        /<tenant>[/...]       -> tenant
        /  on a mapped domain -> mapped tenant
        anything else         -> "default" tenant, then an empty config

    Never raises: tracking a click must not fail because the owner is
    ambiguous or the store is unavailable.
    """

    def __init__(self, store: ConfigStore, domain_tenants: Optional[Dict[str, str]] = None):
        self.store = store
        self.domain_tenants = domain_tenants or {}

    async def resolve(self, page_url: str) -> ResolvedOwner:
        try:
            owner = await self._resolve(page_url)
            if owner is not None:
                return owner
        except Exception as e:
            logger.warning(f"[RESOLVER] Lookup failed for url={page_url!r}: {e!r}; using default")
        return await self._default()

    async def _resolve(self, page_url: str) -> Optional[ResolvedOwner]:
        seg = path_segments(page_url)

        if len(seg) >= 2:
            user = await self.store.get(user_key(seg[1]))
            if user is not None:
                if seg[0] == USER_SHORTCUT:
                    return ResolvedOwner(key=user_key(seg[1]), config=user)
                if user.tenant == seg[0]:
                    return ResolvedOwner(key=user_key(seg[1]), config=user)
                logger.info(
                    f"[RESOLVER] User {seg[1]!r} belongs to {user.tenant!r}, not {seg[0]!r}; "
                    f"falling back to tenant"
                )

        if seg:
            tenant = await self.store.get(tenant_key(seg[0]))
            if tenant is not None:
                return ResolvedOwner(key=tenant_key(seg[0]), config=tenant)
            return None

        host = url_host(page_url)
        mapped = self.domain_tenants.get(host) if host else None
        if mapped:
            tenant = await self.store.get(tenant_key(mapped))
            if tenant is not None:
                return ResolvedOwner(key=tenant_key(mapped), config=tenant)
        return None

    async def _default(self) -> ResolvedOwner:
        try:
            config = await self.store.get(tenant_key(DEFAULT_TENANT))
        except Exception as e:
            logger.error(f"[RESOLVER] Default tenant unavailable: {e!r}")
            config = None
        if config is None:
            return ResolvedOwner(key=BUILTIN_KEY, config=OwnerConfig())
        return ResolvedOwner(key=tenant_key(DEFAULT_TENANT), config=config)
