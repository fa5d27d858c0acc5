"""
Object store backends for raw uploaded files.

Both backends expose the same narrow contract:

    upload(path, data, content_type, upsert=False)
    download(path) -> bytes
    remove(paths)
    check() -> bool

and raise ``ObjectStoreError`` on failure.

* ``LocalObjectStore``    — files under UPLOAD_DIR, written with aiofiles
* ``SupabaseObjectStore`` — Supabase Storage REST API over httpx
"""
from __future__ import annotations

import logging
import os
from typing import Optional, Protocol, Sequence

import aiofiles
import httpx

from app.config import Settings

logger = logging.getLogger(__name__)


class ObjectStoreError(RuntimeError):
    """A storage operation failed."""


class ConfigurationError(RuntimeError):
    """Required configuration is missing."""


class ObjectStore(Protocol):
    async def upload(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None: ...

    async def download(self, path: str) -> bytes: ...

    async def remove(self, paths: Sequence[str]) -> None: ...

    async def check(self) -> bool: ...


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------

class LocalObjectStore:
    """Stores objects as files below *root*; object paths map to relative file paths."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if not full.startswith(self.root + os.sep):
            raise ObjectStoreError(f"Invalid object path: {path!r}")
        return full

    async def upload(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None:
        full = self._resolve(path)
        if os.path.exists(full) and not upsert:
            raise ObjectStoreError(f"Object already exists: {path}")
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            async with aiofiles.open(full, "wb") as out:
                await out.write(data)
        except OSError as exc:
            raise ObjectStoreError(f"Failed to write {path}: {exc}") from exc
        logger.info("Stored %s (%d bytes, %s)", path, len(data), content_type)

    async def download(self, path: str) -> bytes:
        full = self._resolve(path)
        try:
            async with aiofiles.open(full, "rb") as src:
                return await src.read()
        except FileNotFoundError as exc:
            raise ObjectStoreError(f"Object not found: {path}") from exc
        except OSError as exc:
            raise ObjectStoreError(f"Failed to read {path}: {exc}") from exc

    async def remove(self, paths: Sequence[str]) -> None:
        for path in paths:
            full = self._resolve(path)
            try:
                os.remove(full)
            except FileNotFoundError:
                logger.warning("remove: %s already gone", path)
            except OSError as exc:
                raise ObjectStoreError(f"Failed to remove {path}: {exc}") from exc

    async def check(self) -> bool:
        return os.path.isdir(self.root) and os.access(self.root, os.W_OK)


# ---------------------------------------------------------------------------
# Supabase Storage
# ---------------------------------------------------------------------------

class SupabaseObjectStore:
    """Supabase Storage bucket accessed with the service-role key."""

    def __init__(
        self,
        url: str,
        service_role_key: str,
        bucket: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.service_role_key = service_role_key
        self.bucket = bucket
        self.timeout = httpx.Timeout(60.0, connect=10.0)
        self._transport = transport

    @property
    def _object_url(self) -> str:
        return f"{self.url}/storage/v1/object/{self.bucket}"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def upload(
        self, path: str, data: bytes, content_type: str, upsert: bool = False
    ) -> None:
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            async with self._client() as client:
                resp = await client.post(f"{self._object_url}/{path}", content=data, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ObjectStoreError(f"Storage upload failed for {path}: {exc}") from exc

    async def download(self, path: str) -> bytes:
        try:
            async with self._client() as client:
                resp = await client.get(f"{self._object_url}/{path}", headers=self._headers())
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ObjectStoreError(f"Storage download failed for {path}: {exc}") from exc
        return resp.content

    async def remove(self, paths: Sequence[str]) -> None:
        try:
            async with self._client() as client:
                resp = await client.request(
                    "DELETE",
                    self._object_url,
                    json={"prefixes": list(paths)},
                    headers=self._headers(),
                )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ObjectStoreError(f"Storage remove failed: {exc}") from exc

    async def check(self) -> bool:
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{self.url}/storage/v1/bucket/{self.bucket}", headers=self._headers()
                )
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.error("Supabase storage check failed: %s", exc)
            return False


def build_object_store(config: Settings) -> ObjectStore:
    """Create the backend selected by OBJECT_STORE_BACKEND."""
    backend = config.OBJECT_STORE_BACKEND.lower()
    if backend == "local":
        return LocalObjectStore(config.UPLOAD_DIR)
    if backend == "supabase":
        if not config.SUPABASE_URL:
            raise ConfigurationError("Missing env var: SUPABASE_URL")
        if not config.SUPABASE_SERVICE_ROLE_KEY:
            raise ConfigurationError("Missing env var: SUPABASE_SERVICE_ROLE_KEY")
        return SupabaseObjectStore(
            config.SUPABASE_URL,
            config.SUPABASE_SERVICE_ROLE_KEY,
            config.SUPABASE_UPLOAD_BUCKET,
        )
    raise ConfigurationError(f"Unknown OBJECT_STORE_BACKEND: {config.OBJECT_STORE_BACKEND!r}")
