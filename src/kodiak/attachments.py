"""Process-wide cache of attachment payloads for tool-side lookups.

The durable attachment record lives in the conversation store; this registry
only lets tools resolve "the most recent image" without a store round-trip.
Entries vanish with the process, so every reader must cope with a miss.
"""

from __future__ import annotations

import logging
import threading
from uuid import UUID

from .models import Attachment, AttachmentKind

LOGGER = logging.getLogger(__name__)


class AttachmentRegistry:
    """Map attachment ids to payloads and remember the latest id per kind."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._payloads: dict[UUID, bytes] = {}
        self._kinds: dict[UUID, AttachmentKind] = {}
        self._derived_text: dict[UUID, str] = {}
        self._latest: dict[AttachmentKind, UUID] = {}

    def register(
        self, kind: AttachmentKind, data: bytes, attachment_id: UUID
    ) -> None:
        """Store a payload; the last registration of a kind becomes its latest."""
        with self._lock:
            self._payloads[attachment_id] = data
            self._kinds[attachment_id] = kind
            self._latest[kind] = attachment_id
        LOGGER.debug(
            "attachments.registered",
            extra={
                "event": "attachments.registered",
                "kind": kind.value,
                "attachment_id": str(attachment_id),
                "size_bytes": len(data),
            },
        )

    def register_attachment(self, attachment: Attachment) -> None:
        self.register(attachment.kind, attachment.data, attachment.id)
        if attachment.derived_text:
            self.set_derived_text(attachment.id, attachment.derived_text)

    def register_image(self, data: bytes, attachment_id: UUID) -> None:
        self.register(AttachmentKind.IMAGE, data, attachment_id)

    def register_document(self, data: bytes, attachment_id: UUID) -> None:
        self.register(AttachmentKind.DOCUMENT, data, attachment_id)

    def payload(self, attachment_id: UUID) -> bytes | None:
        with self._lock:
            return self._payloads.get(attachment_id)

    def image_data(self, attachment_id: UUID) -> bytes | None:
        """Return image bytes for ``attachment_id`` or None when unknown."""
        with self._lock:
            if self._kinds.get(attachment_id) is not AttachmentKind.IMAGE:
                return None
            return self._payloads.get(attachment_id)

    def set_derived_text(self, attachment_id: UUID, text: str) -> None:
        """Attach OCR or extracted text to a registered payload."""
        with self._lock:
            self._derived_text[attachment_id] = text

    def derived_text(self, attachment_id: UUID) -> str | None:
        with self._lock:
            return self._derived_text.get(attachment_id)

    def latest_id(self, kind: AttachmentKind) -> UUID | None:
        with self._lock:
            return self._latest.get(kind)

    @property
    def latest_image_id(self) -> UUID | None:
        return self.latest_id(AttachmentKind.IMAGE)

    @property
    def latest_document_id(self) -> UUID | None:
        return self.latest_id(AttachmentKind.DOCUMENT)

    def clear(self) -> None:
        with self._lock:
            self._payloads.clear()
            self._kinds.clear()
            self._derived_text.clear()
            self._latest.clear()


_shared_registry: AttachmentRegistry | None = None
_shared_lock = threading.Lock()


def get_attachment_registry() -> AttachmentRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _shared_registry
    with _shared_lock:
        if _shared_registry is None:
            _shared_registry = AttachmentRegistry()
        return _shared_registry
