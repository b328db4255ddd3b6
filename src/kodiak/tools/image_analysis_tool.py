from __future__ import annotations

from collections.abc import Iterable
import logging
from uuid import UUID

from pydantic import Field

from ..attachments import AttachmentRegistry
from .base import ParamsSchema, Tool
from .vision import ImageDetector

LOGGER = logging.getLogger(__name__)

NO_IMAGE_MESSAGE = "No recent image found to analyze."
NOTHING_DETECTED = "No significant objects, text, or barcodes detected."


class ImageAnalysisParams(ParamsSchema):
    attachment_id: str | None = Field(
        default=None,
        alias="attachmentId",
        description=(
            "Identifier of the image attachment to analyze. "
            "Omit to analyze the most recent image."
        ),
    )
    focus: str | None = Field(
        default=None,
        description="Optional question or aspect of the image to focus on",
    )


class ImageAnalysisTool(Tool):
    name = "analyzeImage"
    description = (
        "Analyze an attached image: list visible objects, recognize text and read barcodes. "
        "Uses the most recent image when no attachment id is given."
    )
    params_schema = ImageAnalysisParams

    def __init__(
        self,
        attachments: AttachmentRegistry,
        detectors: Iterable[ImageDetector] = (),
    ) -> None:
        self.attachments = attachments
        self.detectors = tuple(detectors)

    def _resolve(self, raw_id: str | None) -> tuple[UUID | None, bytes | None, str | None]:
        """Return (id, bytes, error text) for the requested or latest image."""
        requested: UUID | None = None
        if raw_id and raw_id.strip():
            try:
                requested = UUID(raw_id.strip())
            except ValueError:
                requested = None

        if requested is not None:
            data = self.attachments.image_data(requested)
            if data is None:
                return requested, None, f"No image data found for attachment id {requested}."
            return requested, data, None

        latest = self.attachments.latest_image_id
        if latest is None:
            return None, None, NO_IMAGE_MESSAGE
        data = self.attachments.image_data(latest)
        if data is None:
            return latest, None, NO_IMAGE_MESSAGE
        return latest, data, None

    async def execute(self, params: ImageAnalysisParams) -> str:
        attachment_id, data, error = self._resolve(params.attachment_id)
        if error is not None or data is None or attachment_id is None:
            return error or NO_IMAGE_MESSAGE

        sections: list[str] = []
        for detector in self.detectors:
            try:
                items = await detector.detect(data)
            except Exception as exc:  # noqa: BLE001 - detectors are best-effort.
                LOGGER.warning(
                    "tool.image.detector_failed",
                    extra={
                        "event": "tool.image.detector_failed",
                        "detector": detector.label,
                        "error": str(exc),
                    },
                )
                continue
            if not items:
                continue
            if detector.block:
                text = "\n".join(items)
                sections.append(f"{detector.label}:\n\n{text}")
                self.attachments.set_derived_text(attachment_id, text)
            else:
                sections.append(f"{detector.label}: \n- " + "\n- ".join(items))

        summary = "Image analysis summary:\n\n"
        summary += "\n\n".join(sections) if sections else NOTHING_DETECTED
        focus = (params.focus or "").strip()
        if focus:
            summary += f"\n\nFocus: {focus}"
        return summary
