"""Owner-facing services built on the media component."""

from lodging_media.services.owner_images import OwnerImageService, owner_image_services

__all__ = ["OwnerImageService", "owner_image_services"]
