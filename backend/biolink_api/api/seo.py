"""GET /robots.txt and /sitemap.xml"""

from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response

from biolink_api.core.config_store import TENANT_PREFIX, USER_PREFIX, ConfigStore, get_config_store
from biolink_api.utils.sanitization import escape_html

router = APIRouter()


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.get("/robots.txt")
async def robots(request: Request) -> Response:
    body = f"User-agent: *\nAllow: /\nSitemap: {_base_url(request)}/sitemap.xml"
    return Response(content=body, media_type="text/plain")


@router.get("/sitemap.xml")
async def sitemap(request: Request, store: ConfigStore = Depends(get_config_store)) -> Response:
    """Every tenant page and every user page under its tenant"""
    host = _base_url(request)
    urls = [f"{host}/{quote(k[len(TENANT_PREFIX):])}" for k in await store.keys(TENANT_PREFIX)]

    for key in await store.keys(USER_PREFIX):
        user = await store.get(key)
        if user is None or not user.tenant:
            continue
        urls.append(f"{host}/{quote(user.tenant)}/{quote(key[len(USER_PREFIX):])}")

    lastmod = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    entries = "\n".join(
        f"  <url><loc>{escape_html(u)}</loc><lastmod>{lastmod}</lastmod></url>" for u in urls
    )
    xml = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{entries}\n"
        "</urlset>"
    )
    return Response(content=xml, media_type="application/xml")
