"""
Object storage client for carrier documents (storage REST API, bucket upload).
"""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import structlog

from carrier_onboarding.core.config import get_settings
from carrier_onboarding.domain.errors import StorageError

logger = structlog.get_logger(__name__)


class StorageClient:
    """Uploads documents into the private carrier-documents bucket."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        bucket: str | None = None,
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.storage_base_url).rstrip("/")
        self.service_key = service_key or settings.storage_service_key
        self.bucket = bucket or settings.storage_bucket
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.storage_timeout_seconds
        )
        self._transport = transport

        if not self.base_url or not self.service_key:
            logger.warning("storage_not_configured", msg="STORAGE_BASE_URL/STORAGE_SERVICE_KEY missing")

    @staticmethod
    def object_path(owner_id: str, kind: str, filename: str, now: datetime | None = None) -> str:
        now = now or datetime.now(UTC)
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        return f"{owner_id}/{kind}_{int(now.timestamp() * 1000)}.{extension}"

    async def store(
        self,
        *,
        owner_id: str,
        kind: str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> str:
        """Upload one file and return its stored location."""
        if not self.base_url or not self.service_key:
            raise StorageError("Document storage is not configured")

        path = self.object_path(owner_id, kind, filename)
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": content_type,
            "x-upsert": "false",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                    headers=headers,
                    content=content,
                )
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to upload {filename}. Please try again.") from exc

        if response.status_code not in (200, 201):
            await logger.awarning(
                "storage_upload_rejected",
                status_code=response.status_code,
                path=path,
            )
            raise StorageError(f"Failed to upload {filename}. Please try again.")

        return f"{self.bucket}/{path}"
