"""
Owner image services.

One facade per owner kind (unit, sub-unit, offer, department, pending
registration). Each binds a MediaService to a kind, so callers deal only in
their own owner ids and the original keys they persist.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from threading import Event

from lodging_media.components.media import (
    CandidateAsset,
    DeleteOutput,
    LifecycleStage,
    MediaService,
    OrderedKeysOutput,
    PromoteOutput,
    ReconcileOutput,
    ReorderOutput,
    UploadOutput,
    UrlSetOutput,
)


class OwnerImageService:
    def __init__(self, media: MediaService, kind: str) -> None:
        self.media = media
        self.kind = kind
        self.config = media.owner_kind(kind)

    @property
    def is_staging(self) -> bool:
        return self.config.stage == LifecycleStage.STAGING

    def upload(
        self,
        owner_id: str,
        assets: Sequence[CandidateAsset],
        *,
        uploaded_by: str | None = None,
        cancel: Event | None = None,
        deadline: datetime | None = None,
    ) -> UploadOutput:
        return self.media.upload(
            self.kind,
            owner_id,
            assets,
            uploaded_by=uploaded_by,
            cancel=cancel,
            deadline=deadline,
        )

    def promote_to(self, staging_keys: Sequence[str], owner_id: str) -> PromoteOutput:
        """
        Promote this kind's staged images to their permanent owner.

        Raises:
            ValueError: If this kind is not a staging kind
        """
        if not self.is_staging or self.config.promotes_to is None:
            raise ValueError(f"{self.kind} images are not staged")
        return self.media.promote(
            staging_keys,
            source_kind=self.kind,
            target_kind=self.config.promotes_to,
            target_id=owner_id,
        )

    def delete(self, keys: Sequence[str]) -> DeleteOutput:
        return self.media.delete(keys, owner_kind=self.kind)

    def reorder(self, owner_id: str, keys_in_order: Sequence[str]) -> ReorderOutput:
        return self.media.reorder(self.kind, owner_id, keys_in_order)

    def list_order(self, owner_id: str) -> OrderedKeysOutput:
        return self.media.list_order(self.kind, owner_id)

    def reconcile(self, owner_id: str, *, repair: bool = False) -> ReconcileOutput:
        return self.media.reconcile(self.kind, owner_id, repair=repair)

    def display_urls(
        self,
        key: str,
        *,
        signed: bool = False,
        expiry_minutes: int | None = None,
    ) -> UrlSetOutput:
        """URLs for an original key and each rendition this kind produces."""
        return self.media.rendition_urls(
            key, self.kind, signed=signed, expiry_minutes=expiry_minutes
        )


def owner_image_services(media: MediaService) -> dict[str, OwnerImageService]:
    """One service per owner kind defined in the media rules."""
    return {kind: OwnerImageService(media, kind) for kind in media.rules.owner_kinds}
