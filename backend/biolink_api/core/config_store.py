"""Tenant/user configuration storage"""

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from biolink_api.core.config import settings
from biolink_api.models.errors import ApplicationError, ErrorCode
from biolink_api.models.schemas import OwnerConfig

logger = logging.getLogger(__name__)

TENANT_PREFIX = "tenant:"
USER_PREFIX = "user:"
DEFAULT_TENANT = "default"


def tenant_key(slug: str) -> str:
    return f"{TENANT_PREFIX}{slug}"


def user_key(slug: str) -> str:
    return f"{USER_PREFIX}{slug}"


def default_tenant_config() -> OwnerConfig:
    """Template for new tenants: blank placeholder credentials, no bundles"""
    return OwnerConfig.model_validate({
        "profile": {"displayName": "", "bio": "", "avatar": "", "cover": ""},
        "pixelsSimple": {
            "facebook": [], "tiktok": [], "ga4": [], "gtm": [], "googleAds": [], "twitter": [],
        },
        "pixelsAdvanced": {
            "facebook": [{"pixelId": "", "accessToken": "", "testEventCode": ""}],
            "ga4": [{"measurementId": "", "apiSecret": ""}],
            "tiktok": [{"pixelCode": "", "accessToken": ""}],
        },
        "customBundles": [],
        "gallery": [],
        "links": [],
    })


class ConfigStore(ABC):
    """
    Key/value store for owner configuration.

    Keys are "tenant:<slug>" or "user:<slug>". Implementations return a
    fresh OwnerConfig on every get, so callers never mutate stored state.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[OwnerConfig]:
        ...

    @abstractmethod
    async def set(self, key: str, config: OwnerConfig) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryConfigStore(ConfigStore):
    """Dict-backed store for tests and local runs"""

    def __init__(self, records: Optional[Dict[str, Union[OwnerConfig, Dict[str, Any]]]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        for key, config in (records or {}).items():
            if isinstance(config, OwnerConfig):
                config = config.to_store()
            self._records[key] = copy.deepcopy(config)

    async def get(self, key: str) -> Optional[OwnerConfig]:
        raw = self._records.get(key)
        if raw is None:
            return None
        return OwnerConfig.model_validate(copy.deepcopy(raw))

    async def set(self, key: str, config: OwnerConfig) -> None:
        self._records[key] = config.to_store()

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._records if k.startswith(prefix))


class JsonFileConfigStore(ConfigStore):
    """
    Single JSON document {key: config} on disk.

    File I/O runs in a worker thread so the event loop is never blocked;
    writes are serialized by a lock and replace the file atomically.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).resolve()
        self._lock = asyncio.Lock()
        self._seeded = False
        logger.info(f"[STORE] Using config file: {self.path}")

    def _seed_if_missing(self) -> None:
        if self.path.exists():
            return
        self._write({tenant_key(DEFAULT_TENANT): default_tenant_config().to_store()})
        logger.info(f"[STORE] Seeded {self.path} with default tenant")

    async def _ensure_seeded(self) -> None:
        """Create the file once, under the write lock"""
        if self._seeded:
            return
        async with self._lock:
            if not self._seeded:
                await asyncio.to_thread(self._seed_if_missing)
                self._seeded = True

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ApplicationError(
                ErrorCode.CONFIGURATION_ERROR,
                f"Config file {self.path.name} is not valid JSON",
                hint=str(e),
            ) from e
        if not isinstance(data, dict):
            raise ApplicationError(
                ErrorCode.CONFIGURATION_ERROR,
                f"Config file {self.path.name} must contain a JSON object",
            )
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".db-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def get(self, key: str) -> Optional[OwnerConfig]:
        await self._ensure_seeded()
        data = await asyncio.to_thread(self._read)
        raw = data.get(key)
        if raw is None:
            return None
        return OwnerConfig.model_validate(raw)

    async def set(self, key: str, config: OwnerConfig) -> None:
        await self._ensure_seeded()
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = config.to_store()
            await asyncio.to_thread(self._write, data)

    async def delete(self, key: str) -> bool:
        await self._ensure_seeded()
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if key not in data:
                return False
            del data[key]
            await asyncio.to_thread(self._write, data)
            return True

    async def keys(self, prefix: str = "") -> List[str]:
        await self._ensure_seeded()
        data = await asyncio.to_thread(self._read)
        return sorted(k for k in data if k.startswith(prefix))


_store: Optional[ConfigStore] = None


def get_config_store() -> ConfigStore:
    """FastAPI dependency: process-wide store, created on first use"""
    global _store
    if _store is None:
        _store = JsonFileConfigStore(settings.config_store_path)
    return _store
