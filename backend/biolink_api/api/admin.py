"""Admin configuration API: tenants, users, profile, pixels, links, gallery, HTML bundles"""

import logging
from enum import Enum
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status

from biolink_api.core.auth import verify_api_key
from biolink_api.core.config_store import (
    DEFAULT_TENANT,
    TENANT_PREFIX,
    USER_PREFIX,
    ConfigStore,
    default_tenant_config,
    get_config_store,
    tenant_key,
    user_key,
)
from biolink_api.models.errors import NotFoundError, ValidationError
from biolink_api.models.schemas import (
    BundleRequest,
    CreateTenantRequest,
    CreateUserRequest,
    GalleryItem,
    LinkItem,
    OwnerConfig,
    PixelsAdvanced,
    PixelsSimpleUpdate,
    ProfileUpdate,
)
from biolink_api.utils.sanitization import sanitize

router = APIRouter(dependencies=[Depends(verify_api_key)])
logger = logging.getLogger(__name__)


class OwnerScope(str, Enum):
    TENANTS = "tenants"
    USERS = "users"

    def key(self, slug: str) -> str:
        return tenant_key(slug) if self is OwnerScope.TENANTS else user_key(slug)


# ============================================================================
# Helper Functions
# ============================================================================

async def _load(store: ConfigStore, scope: OwnerScope, slug: str) -> OwnerConfig:
    config = await store.get(scope.key(slug))
    if config is None:
        raise NotFoundError(f"No {scope.value[:-1]} named {slug!r}")
    return config


def _check_index(items: List, idx: int, what: str) -> None:
    if idx < 0 or idx >= len(items):
        raise ValidationError(f"{what.capitalize()} index {idx} out of range", hint=f"{len(items)} {what}(s) stored")


def _extra_list(config: OwnerConfig, field: str) -> List:
    """A free-form list field (links, gallery), empty when missing or malformed"""
    items = (config.model_extra or {}).get(field)
    return list(items) if isinstance(items, list) else []


def _summary(scope: OwnerScope, slug: str, config: OwnerConfig) -> Dict[str, Any]:
    return {"scope": scope.value, "slug": slug, "config": config.to_store()}


# ============================================================================
# Tenants
# ============================================================================

@router.get("/tenants")
async def list_tenants(store: ConfigStore = Depends(get_config_store)):
    keys = await store.keys(TENANT_PREFIX)
    return {"tenants": [k[len(TENANT_PREFIX):] for k in keys]}


@router.post("/tenants", status_code=status.HTTP_201_CREATED)
async def create_tenant(body: CreateTenantRequest, store: ConfigStore = Depends(get_config_store)):
    """Create a tenant from the default template. Existing tenants are left as-is."""
    existing = await store.get(tenant_key(body.slug))
    if existing is not None:
        return {"slug": body.slug, "created": False}
    await store.set(tenant_key(body.slug), default_tenant_config())
    logger.info(f"[ADMIN] Created tenant {body.slug!r}")
    return {"slug": body.slug, "created": True}


@router.delete("/tenants/{slug}")
async def delete_tenant(slug: str, store: ConfigStore = Depends(get_config_store)):
    """Delete a tenant and every user page under it"""
    if slug == DEFAULT_TENANT:
        raise ValidationError("The default tenant cannot be deleted")
    if not await store.delete(tenant_key(slug)):
        raise NotFoundError(f"No tenant named {slug!r}")

    removed_users = []
    for key in await store.keys(USER_PREFIX):
        user = await store.get(key)
        if user is not None and user.tenant == slug:
            await store.delete(key)
            removed_users.append(key[len(USER_PREFIX):])

    logger.info(f"[ADMIN] Deleted tenant {slug!r} and {len(removed_users)} user(s)")
    return {"slug": slug, "deleted": True, "users_deleted": removed_users}


# ============================================================================
# Users
# ============================================================================

@router.get("/users")
async def list_users(store: ConfigStore = Depends(get_config_store)):
    users = []
    for key in await store.keys(USER_PREFIX):
        user = await store.get(key)
        if user is not None:
            users.append({"slug": key[len(USER_PREFIX):], "tenant": user.tenant})
    return {"users": users}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(body: CreateUserRequest, store: ConfigStore = Depends(get_config_store)):
    """Create a user page seeded with a copy of its tenant's config"""
    tenant = await store.get(tenant_key(body.tenant))
    if tenant is None:
        raise ValidationError(f"Tenant {body.tenant!r} does not exist")

    existing = await store.get(user_key(body.slug))
    if existing is not None:
        return {"slug": body.slug, "tenant": existing.tenant, "created": False}

    user = tenant.model_copy(deep=True)
    user.tenant = body.tenant
    await store.set(user_key(body.slug), user)
    logger.info(f"[ADMIN] Created user {body.slug!r} under tenant {body.tenant!r}")
    return {"slug": body.slug, "tenant": body.tenant, "created": True}


@router.delete("/users/{slug}")
async def delete_user(slug: str, store: ConfigStore = Depends(get_config_store)):
    if not await store.delete(user_key(slug)):
        raise NotFoundError(f"No user named {slug!r}")
    logger.info(f"[ADMIN] Deleted user {slug!r}")
    return {"slug": slug, "deleted": True}


# ============================================================================
# Per-owner configuration
# ============================================================================

@router.get("/{scope}/{slug}")
async def get_config(scope: OwnerScope, slug: str, store: ConfigStore = Depends(get_config_store)):
    config = await _load(store, scope, slug)
    return _summary(scope, slug, config)


@router.put("/{scope}/{slug}/pixels-advanced")
async def update_pixels_advanced(
    scope: OwnerScope,
    slug: str,
    body: PixelsAdvanced,
    store: ConfigStore = Depends(get_config_store),
):
    """Replace all server-side credentials of one owner"""
    config = await _load(store, scope, slug)
    config.pixels_advanced = body
    await store.set(scope.key(slug), config)
    logger.info(
        f"[ADMIN] {scope.key(slug)} credentials updated: facebook={len(body.facebook)} "
        f"ga4={len(body.ga4)} tiktok={len(body.tiktok)}"
    )
    return _summary(scope, slug, config)


@router.put("/{scope}/{slug}/profile")
async def update_profile(
    scope: OwnerScope,
    slug: str,
    body: ProfileUpdate,
    store: ConfigStore = Depends(get_config_store),
):
    """Edit display name, bio, images, background, theme and footer"""
    config = await _load(store, scope, slug)
    stored = (config.model_extra or {}).get("profile")
    profile = dict(stored) if isinstance(stored, dict) else {}
    profile.update(body.profile_fields())
    profile["background"] = body.background.model_dump(by_alias=True)
    config.profile = profile
    if body.theme:
        config.theme = body.theme
    if body.footer:
        config.footer = body.footer
    await store.set(scope.key(slug), config)
    return _summary(scope, slug, config)


@router.put("/{scope}/{slug}/pixels-simple")
async def update_pixels_simple(
    scope: OwnerScope,
    slug: str,
    body: PixelsSimpleUpdate,
    store: ConfigStore = Depends(get_config_store),
):
    """Replace the client-side pixel ids of each kind sent"""
    config = await _load(store, scope, slug)
    config.pixels_simple.update(body.model_dump(by_alias=True, exclude_none=True))
    await store.set(scope.key(slug), config)
    return _summary(scope, slug, config)


@router.post("/{scope}/{slug}/links", status_code=status.HTTP_201_CREATED)
async def add_link(
    scope: OwnerScope,
    slug: str,
    body: LinkItem,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    links = _extra_list(config, "links")
    links.append(body.to_store())
    config.links = links
    await store.set(scope.key(slug), config)
    return {"index": len(links) - 1, "link": links[-1]}


@router.delete("/{scope}/{slug}/links/{idx}")
async def delete_link(
    scope: OwnerScope,
    slug: str,
    idx: int,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    links = _extra_list(config, "links")
    _check_index(links, idx, "link")
    del links[idx]
    config.links = links
    await store.set(scope.key(slug), config)
    return {"index": idx, "deleted": True, "remaining": len(links)}


@router.post("/{scope}/{slug}/gallery", status_code=status.HTTP_201_CREATED)
async def add_gallery_image(
    scope: OwnerScope,
    slug: str,
    body: GalleryItem,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    gallery = _extra_list(config, "gallery")
    gallery.append(body.url)
    config.gallery = gallery
    await store.set(scope.key(slug), config)
    return {"index": len(gallery) - 1, "url": body.url}


@router.delete("/{scope}/{slug}/gallery/{idx}")
async def delete_gallery_image(
    scope: OwnerScope,
    slug: str,
    idx: int,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    gallery = _extra_list(config, "gallery")
    _check_index(gallery, idx, "gallery image")
    del gallery[idx]
    config.gallery = gallery
    await store.set(scope.key(slug), config)
    return {"index": idx, "deleted": True, "remaining": len(gallery)}


@router.post("/{scope}/{slug}/bundles", status_code=status.HTTP_201_CREATED)
async def add_bundle(
    scope: OwnerScope,
    slug: str,
    body: BundleRequest,
    store: ConfigStore = Depends(get_config_store),
):
    """Append a custom HTML bundle; it is sanitized before it is stored"""
    config = await _load(store, scope, slug)
    config.custom_bundles.append(sanitize(body.bundle))
    await store.set(scope.key(slug), config)
    return {"index": len(config.custom_bundles) - 1, "bundle": config.custom_bundles[-1]}


@router.put("/{scope}/{slug}/bundles/{idx}")
async def update_bundle(
    scope: OwnerScope,
    slug: str,
    idx: int,
    body: BundleRequest,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    _check_index(config.custom_bundles, idx, "bundle")
    config.custom_bundles[idx] = sanitize(body.bundle)
    await store.set(scope.key(slug), config)
    return {"index": idx, "bundle": config.custom_bundles[idx]}


@router.delete("/{scope}/{slug}/bundles/{idx}")
async def delete_bundle(
    scope: OwnerScope,
    slug: str,
    idx: int,
    store: ConfigStore = Depends(get_config_store),
):
    config = await _load(store, scope, slug)
    _check_index(config.custom_bundles, idx, "bundle")
    del config.custom_bundles[idx]
    await store.set(scope.key(slug), config)
    return {"index": idx, "deleted": True, "remaining": len(config.custom_bundles)}
