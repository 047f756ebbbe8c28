"""Concurrent fan-out of provider requests with per-call failure isolation"""

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from biolink_api.core.config import settings
from biolink_api.models.errors import ProviderDispatchError
from biolink_api.models.events import DispatchResult, ProviderRequest

logger = logging.getLogger(__name__)

ERROR_DETAIL_MAX = 300


def _response_detail(response: httpx.Response) -> str:
    try:
        text = response.text
    except Exception:
        text = ""
    return f"HTTP {response.status_code}: {text[:ERROR_DETAIL_MAX]}"


class EventDispatcher:
    """
    Sends provider requests over one shared async HTTP client.

    Every call settles into a DispatchResult; nothing raised by one provider
    reaches its siblings or the caller. No retries.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, request: ProviderRequest, owner: str) -> DispatchResult:
        """Perform one call; failures come back as ok=False results"""
        try:
            client = await self._get_client()
            response = await client.request(
                request.method,
                request.url,
                params=request.params,
                headers=request.headers,
                json=request.json_body,
            )
            if response.is_error:
                raise ProviderDispatchError(
                    request.provider, owner, _response_detail(response), status_code=response.status_code
                )
            return DispatchResult(
                provider=request.provider, owner=owner, ok=True, status_code=response.status_code
            )
        except ProviderDispatchError as e:
            return self._failed(e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._failed(ProviderDispatchError(request.provider, owner, f"{type(e).__name__}: {e}"))
        except Exception as e:
            logger.exception(f"[DISPATCH] Unexpected error calling {request.provider} for {owner}")
            return self._failed(ProviderDispatchError(request.provider, owner, f"{type(e).__name__}: {e}"))

    @staticmethod
    def _failed(error: ProviderDispatchError) -> DispatchResult:
        # Request URLs can carry access tokens; only provider/owner/detail are logged
        logger.warning(
            f"[DISPATCH] ✗ provider={error.provider} owner={error.owner} "
            f"status={error.status_code} error={error.message}"
        )
        return DispatchResult(
            provider=error.provider,
            owner=error.owner,
            ok=False,
            status_code=error.status_code,
            error=error.message,
        )

    async def dispatch(self, requests: Sequence[ProviderRequest], owner: str) -> List[DispatchResult]:
        """Send all requests concurrently and wait until every one has settled"""
        if not requests:
            return []

        settled = await asyncio.gather(
            *(self.send(request, owner) for request in requests),
            return_exceptions=True,
        )

        results: List[DispatchResult] = []
        for request, outcome in zip(requests, settled):
            if isinstance(outcome, BaseException):
                outcome = self._failed(
                    ProviderDispatchError(request.provider, owner, f"{type(outcome).__name__}: {outcome}")
                )
            results.append(outcome)

        ok = sum(1 for r in results if r.ok)
        logger.info(f"[DISPATCH] owner={owner} sent={len(results)} ok={ok} failed={len(results) - ok}")
        return results


# Global dispatcher instance
event_dispatcher = EventDispatcher()


def get_dispatcher() -> EventDispatcher:
    """FastAPI dependency"""
    return event_dispatcher
