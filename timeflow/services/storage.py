"""Hosted object storage (``/storage/v1``): public URLs, listings, uploads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx

from ..core.config import settings
from ..core.errors import BackendError, BackendNotConfigured

logger = logging.getLogger(__name__)

LIST_LIMIT = 100


@dataclass
class StorageObject:
    name: str
    # ``None`` for folder placeholders returned by the listing endpoint.
    id: str | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_folder(self) -> bool:
        return self.id is None


def _quote_path(path: str) -> str:
    return quote(path.lstrip("/"), safe="/")


class StorageClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _ensure_configured(self) -> None:
        if not self.base_url or not self.api_key:
            raise BackendNotConfigured("Object storage is not configured")

    def _send(self, method: str, path: str, *, token: str | None = None, **kwargs: Any) -> httpx.Response:
        self._ensure_configured()
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {token or self.api_key}"}
        headers.update(kwargs.pop("headers", None) or {})
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("storage.request_failed", extra={"extra_data": {"path": path, "error": str(exc)}})
            raise BackendError("Object storage is unreachable") from exc
        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("message") or body.get("error") or response.text
            except ValueError:
                message = response.text
            raise BackendError(message or f"HTTP {response.status_code}", status_code=response.status_code, code="storage_error")
        return response

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/public/{bucket}/{_quote_path(path)}"

    def list_objects(self, bucket: str, prefix: str = "", *, limit: int = LIST_LIMIT, token: str | None = None) -> list[StorageObject]:
        response = self._send(
            "POST",
            f"/object/list/{bucket}",
            token=token,
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
        )
        items = response.json() or []
        return [
            StorageObject(name=item.get("name", ""), id=item.get("id"), metadata=item.get("metadata"))
            for item in items
            if isinstance(item, dict) and item.get("name")
        ]

    def list_files_recursive(self, bucket: str, prefix: str = "", *, token: str | None = None) -> list[str]:
        files: list[str] = []
        for item in self.list_objects(bucket, prefix, token=token):
            full_path = f"{prefix}/{item.name}" if prefix else item.name
            if item.is_folder:
                try:
                    files.extend(self.list_files_recursive(bucket, full_path, token=token))
                except BackendError:
                    continue
            else:
                files.append(full_path)
        return files

    def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        *,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
        token: str | None = None,
    ) -> str:
        self._send(
            "POST",
            f"/object/{bucket}/{_quote_path(path)}",
            token=token,
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "true" if upsert else "false"},
        )
        return path


@lru_cache(maxsize=1)
def get_storage_client() -> StorageClient:
    return StorageClient(
        settings.storage_url if settings.SUPABASE_URL else "",
        settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_ANON_KEY,
        timeout=settings.HTTP_TIMEOUT,
    )


def public_url(bucket: str, path: str) -> str:
    """Public object URL; usable even when no API key is configured."""
    base = settings.storage_url if settings.SUPABASE_URL else "/storage/v1"
    return f"{base}/object/public/{bucket}/{_quote_path(path)}"


__all__ = ["StorageClient", "StorageObject", "get_storage_client", "public_url"]
