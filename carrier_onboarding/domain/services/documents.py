"""Document slot tracking shared by the compliance and banking paperwork."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

import structlog

from carrier_onboarding.domain.errors import OnboardingError, StorageError, ValidationError
from carrier_onboarding.domain.models import DocumentKind, DocumentSet, DocumentSlot

logger = structlog.get_logger(__name__)

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {"application/pdf", "image/png", "image/jpeg"}
)
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


class DocumentStorage(Protocol):
    async def store(
        self,
        *,
        owner_id: str,
        kind: str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> str:
        """Persist the file and return its stored location, or raise StorageError."""
        ...


@dataclass(slots=True, frozen=True)
class DocumentUpload:
    filename: str
    content: bytes
    content_type: str


class DocumentCollectionTracker:
    """Moves document slots between absent and present."""

    def __init__(
        self,
        storage: DocumentStorage,
        *,
        timeout_seconds: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.storage = storage
        self.timeout_seconds = timeout_seconds
        self._clock = clock or (lambda: datetime.now(UTC))

    @staticmethod
    def is_complete(documents: DocumentSet) -> bool:
        return documents.is_complete

    async def upload(
        self,
        documents: DocumentSet,
        kind: DocumentKind,
        upload: DocumentUpload,
        *,
        owner_id: str,
    ) -> DocumentSet:
        slot = documents.get(kind)
        if slot.present:
            raise ValidationError(f"{_label(kind)} is already uploaded; remove it first to replace it")
        _validate_upload(upload)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                location = await self.storage.store(
                    owner_id=owner_id,
                    kind=kind.value,
                    filename=upload.filename,
                    content=upload.content,
                    content_type=upload.content_type,
                )
        except TimeoutError as exc:
            raise StorageError(f"Upload of {_label(kind)} timed out. Please try again.") from exc
        except OnboardingError:
            raise
        except Exception as exc:
            await logger.awarning("document_upload_failed", kind=kind.value, error=str(exc))
            raise StorageError(f"Failed to upload {_label(kind)}. Please try again.") from exc

        await logger.ainfo(
            "document_uploaded",
            owner_id=owner_id,
            kind=kind.value,
            filename=upload.filename,
            stored_location=location,
        )
        return documents.with_slot(
            replace(
                slot,
                present=True,
                filename=upload.filename,
                stored_location=location,
                uploaded_at=self._clock(),
            )
        )

    def clear(self, documents: DocumentSet, kind: DocumentKind) -> DocumentSet:
        slot = documents.get(kind)
        if not slot.present:
            raise ValidationError(f"{_label(kind)} has not been uploaded")
        logger.info("document_cleared", kind=kind.value, filename=slot.filename)
        return documents.with_slot(DocumentSlot(kind=kind))


def _label(kind: DocumentKind) -> str:
    return {
        DocumentKind.INSURANCE_CERTIFICATE: "Certificate of insurance",
        DocumentKind.TAX_FORM: "W-9 tax form",
        DocumentKind.VOIDED_CHECK: "Voided check",
    }[kind]


def _validate_upload(upload: DocumentUpload) -> None:
    if not upload.filename:
        raise ValidationError("Uploaded file needs a name")
    if not upload.content:
        raise ValidationError(f"{upload.filename} is empty")
    if len(upload.content) > MAX_DOCUMENT_BYTES:
        raise ValidationError(f"{upload.filename} is larger than 10 MB")
    if upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(f"{upload.filename} must be a PDF, PNG or JPEG file")
