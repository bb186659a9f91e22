"""
Media component input/output models.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from lodging_media.core.ports.storage import Visibility
from lodging_media.rules.models import OwnerKindRules

# --- Errors ---


class ValidationKind(str, Enum):
    """Batch validation failure classes, in check order."""

    COUNT_OUT_OF_RANGE = "count_out_of_range"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TOO_LARGE = "too_large"
    EMPTY = "empty"


@dataclass(frozen=True)
class MediaValidationError:
    """Pre-flight rejection with actionable message. No store call was made."""

    code: str
    message: str
    field: str = "images"


@dataclass(frozen=True)
class MediaStorageError:
    """A store call failed (or the operation was cancelled)."""

    message: str
    key: str | None = None
    transient: bool = False
    code: str = "storage_error"  # "cancelled", or "invalid_key" on a promotion item


# --- Configuration Models ---


class LifecycleStage(str, Enum):
    STAGING = "staging"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class Rendition:
    """A named resize target: neither side of the output exceeds max_dimension."""

    name: str
    max_dimension: int


@dataclass(frozen=True)
class OwnerKindConfig:
    """Per-owner-kind bounds, key prefix, and rendition set."""

    kind: str
    prefix: str
    stage: LifecycleStage
    min_count: int
    max_count: int
    max_bytes: int
    allowed_extensions: tuple[str, ...]
    renditions: tuple[Rendition, ...] = ()
    visibility: Visibility = Visibility.PRIVATE
    promotes_to: str | None = None

    @classmethod
    def from_rules(cls, kind: str, rules: OwnerKindRules) -> OwnerKindConfig:
        return cls(
            kind=kind,
            prefix=rules.prefix,
            stage=LifecycleStage(rules.stage),
            min_count=rules.min_count,
            max_count=rules.max_count,
            max_bytes=rules.max_bytes,
            allowed_extensions=tuple(rules.allowed_extensions),
            renditions=tuple(
                Rendition(name=r.name, max_dimension=r.max_dimension) for r in rules.renditions
            ),
            visibility=Visibility(rules.visibility),
            promotes_to=rules.promotes_to,
        )

    @property
    def rendition_names(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.renditions)


@dataclass(frozen=True)
class OwnerRef:
    """
    Owner identity.

    For a staging kind owner_id is the pending request's id (for example a
    registration request); for a permanent kind it is the owning entity's id.
    """

    kind: str
    owner_id: str


@dataclass(frozen=True)
class CandidateAsset:
    """
    One raw upload.

    declared_size is the length the client reported. Checks always use the
    bytes actually received.
    """

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"
    declared_size: int | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        name = self.filename.rsplit("/", 1)[-1]
        stem, dot, ext = name.rpartition(".")
        if not dot or not stem:
            return ""
        return f".{ext.lower()}"


# --- Input Models ---


@dataclass(frozen=True)
class UploadAssetsInput:
    """Input for uploading a batch of images for one owner."""

    owner: OwnerRef
    assets: tuple[CandidateAsset, ...]
    uploaded_by: str | None = None
    cancel: threading.Event | None = None
    deadline: datetime | None = None  # UTC


@dataclass(frozen=True)
class PromoteAssetsInput:
    """Input for promoting staged images to their permanent owner."""

    staging_keys: tuple[str, ...]
    source_kind: str
    target: OwnerRef


@dataclass(frozen=True)
class DeleteAssetsInput:
    """Input for deleting originals together with their renditions."""

    keys: tuple[str, ...]
    owner_kind: str


@dataclass(frozen=True)
class ReorderAssetsInput:
    """Input for rewriting display order. keys_in_order[i] gets order i."""

    owner: OwnerRef
    keys_in_order: tuple[str, ...]


class UrlMode(str, Enum):
    PUBLIC = "public"
    SIGNED = "signed"


@dataclass(frozen=True)
class ResolveUrlInput:
    """Input for turning a key into a URL."""

    key: str
    mode: UrlMode = UrlMode.PUBLIC
    expiry_minutes: int | None = None  # Signed mode; None uses the default


@dataclass(frozen=True)
class RenditionUrlsInput:
    """Input for resolving an original's URL together with its renditions'."""

    key: str
    owner_kind: str
    mode: UrlMode = UrlMode.PUBLIC
    expiry_minutes: int | None = None


@dataclass(frozen=True)
class ListOrderInput:
    """Input for reading an owner's images back in display order."""

    owner: OwnerRef


@dataclass(frozen=True)
class ReconcileInput:
    """Input for auditing (and optionally repairing) an owner's rendition sets."""

    owner: OwnerRef
    repair: bool = False


# --- Output Models ---


@dataclass(frozen=True)
class UploadOutput:
    """Output from upload. keys holds originals only, in input order."""

    keys: list[str] = field(default_factory=list)
    request_token: str | None = None
    renditions_written: int = 0
    renditions_failed: int = 0
    errors: list[MediaValidationError] = field(default_factory=list)
    storage_error: MediaStorageError | None = None
    success: bool = True


@dataclass(frozen=True)
class PromotionItem:
    """Per-key promotion result."""

    staging_key: str
    permanent_key: str | None = None
    renditions_copied: int = 0
    error: MediaStorageError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.permanent_key is not None


@dataclass(frozen=True)
class PromoteOutput:
    """Output from promotion: one item per input key, same order."""

    items: list[PromotionItem] = field(default_factory=list)
    errors: list[MediaValidationError] = field(default_factory=list)
    success: bool = True

    @property
    def keys(self) -> list[str]:
        """Permanent keys of the promoted items, in input order."""
        return [i.permanent_key for i in self.items if i.success and i.permanent_key]

    @property
    def failed(self) -> list[PromotionItem]:
        return [i for i in self.items if not i.success]

    @property
    def partial(self) -> bool:
        return bool(self.keys) and bool(self.failed)


@dataclass(frozen=True)
class DeleteOutput:
    """Output from deletion."""

    deleted_keys: list[str] = field(default_factory=list)
    errors: list[MediaValidationError] = field(default_factory=list)
    storage_error: MediaStorageError | None = None
    success: bool = True


@dataclass(frozen=True)
class ReorderOutput:
    """Output from reorder. Not atomic: updated and failed may both be non-empty."""

    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[MediaValidationError] = field(default_factory=list)
    storage_error: MediaStorageError | None = None
    success: bool = True


@dataclass(frozen=True)
class UrlOutput:
    """Output from URL resolution."""

    url: str | None = None
    mode: UrlMode = UrlMode.PUBLIC
    expires_at: datetime | None = None
    errors: list[MediaValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class UrlSetOutput:
    """URLs keyed by "original" and by rendition name."""

    urls: dict[str, str] = field(default_factory=dict)
    mode: UrlMode = UrlMode.PUBLIC
    expires_at: datetime | None = None
    errors: list[MediaValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class OrderedKeysOutput:
    """Output from display-order read-back."""

    keys: list[str] = field(default_factory=list)
    display_order: dict[str, int | None] = field(default_factory=dict)
    errors: list[MediaValidationError] = field(default_factory=list)
    storage_error: MediaStorageError | None = None
    success: bool = True


@dataclass(frozen=True)
class ReconcileOutput:
    """
    Output from rendition reconciliation.

    incomplete maps each original to its missing rendition names (as found,
    before any repair).
    """

    originals: list[str] = field(default_factory=list)
    incomplete: dict[str, list[str]] = field(default_factory=dict)
    orphaned_renditions: list[str] = field(default_factory=list)
    repaired: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unrepaired: list[str] = field(default_factory=list)
    errors: list[MediaValidationError] = field(default_factory=list)
    storage_error: MediaStorageError | None = None
    success: bool = True
