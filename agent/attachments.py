"""
Ephemeral binary attachments (images) for a ChatTurn.

Payloads are validated on arrival, written to uniquely named files just
before the runtime call and removed when the turn ends, whatever the outcome.
"""

import base64
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from config import app_config

logger = logging.getLogger(__name__)

_ALLOWED_MEDIA_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


class AttachmentError(ValueError):
    """Invalid attachment payload"""
    pass


@dataclass
class Attachment:
    media_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return _ALLOWED_MEDIA_TYPES.get(self.media_type, ".bin")


def normalize_attachments(
    raw_items: Any,
    max_items: Optional[int] = None,
    max_bytes: Optional[int] = None,
    max_total_bytes: Optional[int] = None,
) -> List[Attachment]:
    """Validate inbound image payloads and decode them."""
    if not raw_items:
        return []
    if not isinstance(raw_items, list):
        raise AttachmentError("images must be a list")

    max_items = app_config.max_attachments if max_items is None else max_items
    max_bytes = app_config.max_attachment_bytes if max_bytes is None else max_bytes
    max_total_bytes = app_config.max_attachment_total_bytes if max_total_bytes is None else max_total_bytes

    if len(raw_items) > max_items:
        raise AttachmentError(f"Too many images (max {max_items})")

    attachments: List[Attachment] = []
    total_bytes = 0
    for idx, item in enumerate(raw_items, start=1):
        if not isinstance(item, dict):
            raise AttachmentError(f"Invalid image payload at index {idx}")

        media_type = str(item.get("media_type", "")).strip().lower()
        if media_type == "image/jpg":
            media_type = "image/jpeg"
        if media_type not in _ALLOWED_MEDIA_TYPES:
            raise AttachmentError(f"Unsupported image media type: {media_type or 'unknown'}")

        data_b64 = str(item.get("data", "")).strip()
        if not data_b64:
            raise AttachmentError(f"Missing image data at index {idx}")

        # Accept data URLs and plain base64; keep only the payload.
        if data_b64.startswith("data:"):
            comma = data_b64.find(",")
            if comma == -1:
                raise AttachmentError(f"Invalid data URL for image {idx}")
            data_b64 = data_b64[comma + 1:].strip()

        try:
            raw = base64.b64decode(data_b64, validate=True)
        except Exception:
            raise AttachmentError(f"Invalid base64 payload for image {idx}")

        size = len(raw)
        if size <= 0:
            raise AttachmentError(f"Empty image payload at index {idx}")
        if size > max_bytes:
            raise AttachmentError(f"Image {idx} exceeds {max_bytes // (1024 * 1024)}MB limit")

        total_bytes += size
        if total_bytes > max_total_bytes:
            raise AttachmentError("Total image payload exceeds size limit")

        attachments.append(Attachment(media_type=media_type, data=raw))
    return attachments


class AttachmentStager:
    """Writes attachments to a staging directory and removes them again."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory or app_config.attachment_dir or os.path.join(
            tempfile.gettempdir(), "chatooly-attachments"
        )

    def stage(self, attachments: Iterable[Attachment]) -> List[str]:
        """Write each attachment to a unique file. Failures are logged and skipped."""
        paths: List[str] = []
        for attachment in attachments:
            try:
                os.makedirs(self.directory, exist_ok=True)
                fd, path = tempfile.mkstemp(
                    prefix="attachment-", suffix=attachment.extension, dir=self.directory
                )
                with os.fdopen(fd, "wb") as f:
                    f.write(attachment.data)
                paths.append(os.path.abspath(path))
            except OSError as e:
                logger.error("Failed to stage attachment: %s", e)
        return paths

    def cleanup(self, paths: Iterable[str]) -> List[str]:
        """Remove staged files. Returns the paths that could not be removed."""
        leftover: List[str] = []
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error("Failed to remove staged attachment %s: %s", path, e)
                leftover.append(path)
        return leftover


def attach_to_prompt(prompt: str, paths: List[str]) -> str:
    """Reference staged files by absolute path so the agent can read them."""
    if not paths:
        return prompt
    lines = [prompt, "", f"The user attached {len(paths)} image(s). Read them with the Read tool:"]
    lines.extend(f"- {p}" for p in paths)
    return "\n".join(lines)
