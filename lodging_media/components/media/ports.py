"""
Media component port definitions.
"""

from __future__ import annotations

from typing import Any, Protocol

from lodging_media.core.ports.events import MediaEventSink
from lodging_media.core.ports.storage import ObjectStorePort
from lodging_media.core.ports.time import TimePort

from .models import Rendition


class RenditionDeriverPort(Protocol):
    """Produces downscaled copies of a decoded image."""

    @property
    def content_type(self) -> str:
        """Content type of every rendition this deriver encodes."""
        ...

    def decode(self, data: bytes) -> Any:
        """Decode raw bytes once; the result is passed to render()."""
        ...

    def render(self, image: Any, rendition: Rendition) -> bytes:
        """Encode image fitted within rendition.max_dimension on both sides."""
        ...


__all__ = [
    "MediaEventSink",
    "ObjectStorePort",
    "RenditionDeriverPort",
    "TimePort",
]
