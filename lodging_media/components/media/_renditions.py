"""
Rendition deriver.

Decodes an original once and produces one re-encoded, downscaled copy per
configured rendition. Aspect ratio is preserved and images are never
upscaled. A rendition that cannot be produced or stored is reported and
skipped; it never fails the upload that asked for it.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from PIL import Image, ImageOps

from lodging_media.core.ports.storage import ObjectStorePort, StorageError, Visibility

from ._keys import rendition_key
from .models import Rendition
from .ports import RenditionDeriverPort

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "PNG": "image/png",
}


class PillowRenditionDeriver:
    """Pillow implementation of RenditionDeriverPort."""

    def __init__(self, fmt: str = "JPEG", quality: int = 85) -> None:
        fmt = fmt.upper()
        if fmt not in _CONTENT_TYPES:
            raise ValueError(f"Unsupported rendition format: {fmt}")
        self.format = fmt
        self.quality = quality

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self.format]

    def decode(self, data: bytes) -> Image.Image:
        """
        Decode raw bytes into a raster image.

        Raises whatever Pillow raises for unreadable data
        (UnidentifiedImageError, OSError, DecompressionBombError).
        """
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            # Apply the camera's orientation tag so renditions are upright
            return ImageOps.exif_transpose(img) or img.copy()

    def _flatten(self, img: Image.Image) -> Image.Image:
        if self.format != "JPEG" or img.mode == "RGB":
            return img
        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        return img.convert("RGB")

    def render(self, image: Image.Image, rendition: Rendition) -> bytes:
        """Fit image within max_dimension x max_dimension and encode it."""
        out = self._flatten(image.copy())
        out.thumbnail(
            (rendition.max_dimension, rendition.max_dimension),
            Image.Resampling.LANCZOS,
        )

        buffer = io.BytesIO()
        save_kwargs: dict[str, Any] = {"format": self.format, "optimize": True}
        if self.format in ("JPEG", "WEBP"):
            save_kwargs["quality"] = self.quality
        out.save(buffer, **save_kwargs)
        return buffer.getvalue()


@dataclass
class RenditionReport:
    """Outcome of deriving one original's renditions."""

    written: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # rendition name -> reason
    interrupted: bool = False


def derive_renditions(
    deriver: RenditionDeriverPort,
    store: ObjectStorePort,
    original_key: str,
    data: bytes,
    renditions: Sequence[Rendition],
    *,
    visibility: Visibility = Visibility.PRIVATE,
    should_continue: Callable[[], bool] | None = None,
) -> RenditionReport:
    """
    Derive and store every rendition of one original.

    Decode and encode failures cover every rendition not yet written; store
    failures cover only the rendition being written. Neither is raised.
    """
    report = RenditionReport()
    if not renditions:
        return report

    try:
        image = deriver.decode(data)
    except Exception as e:
        # Any decoder failure degrades to "no renditions for this original"
        logger.warning("Could not decode %s for renditions: %s", original_key, e)
        for r in renditions:
            report.failed[r.name] = f"decode failed: {e}"
        return report

    for r in renditions:
        if should_continue is not None and not should_continue():
            report.interrupted = True
            break

        key = rendition_key(original_key, r.name)
        try:
            payload = deriver.render(image, r)
        except Exception as e:
            logger.warning("Could not render %s of %s: %s", r.name, original_key, e)
            report.failed[r.name] = f"render failed: {e}"
            continue

        try:
            store.put(
                key,
                payload,
                deriver.content_type,
                visibility=visibility,
                metadata={"rendition": r.name, "source-key": original_key},
            )
        except StorageError as e:
            logger.warning("Could not store rendition %s: %s", key, e)
            report.failed[r.name] = f"store failed: {e}"
            continue

        report.written.append(key)

    return report
