"""
Media component - owner image upload, promotion, deletion, ordering, and URLs.
"""

from ._keys import (
    is_rendition_key,
    owner_prefix,
    parse_key,
    permanent_key,
    rendition_key,
    rendition_keys,
    staging_key,
)
from ._renditions import PillowRenditionDeriver, RenditionReport, derive_renditions
from ._validation import validate_asset, validate_batch, validate_count
from .component import (
    DISPLAY_ORDER_ATTR,
    MediaService,
    create_media_service,
    get_owner_kind,
    new_unique_id,
    public_url,
    run,
    run_delete,
    run_list_order,
    run_promote,
    run_reconcile,
    run_rendition_urls,
    run_reorder,
    run_resolve_url,
    run_upload,
)
from .models import (
    CandidateAsset,
    DeleteAssetsInput,
    DeleteOutput,
    LifecycleStage,
    ListOrderInput,
    MediaStorageError,
    MediaValidationError,
    OrderedKeysOutput,
    OwnerKindConfig,
    OwnerRef,
    PromoteAssetsInput,
    PromoteOutput,
    PromotionItem,
    ReconcileInput,
    ReconcileOutput,
    Rendition,
    RenditionUrlsInput,
    ReorderAssetsInput,
    ReorderOutput,
    ResolveUrlInput,
    UploadAssetsInput,
    UploadOutput,
    UrlMode,
    UrlOutput,
    UrlSetOutput,
    ValidationKind,
)
from .ports import RenditionDeriverPort

__all__ = [
    # Entry points
    "run",
    "run_delete",
    "run_list_order",
    "run_promote",
    "run_reconcile",
    "run_rendition_urls",
    "run_reorder",
    "run_resolve_url",
    "run_upload",
    # Key naming
    "is_rendition_key",
    "owner_prefix",
    "parse_key",
    "permanent_key",
    "rendition_key",
    "rendition_keys",
    "staging_key",
    # Validation
    "validate_asset",
    "validate_batch",
    "validate_count",
    # Renditions
    "PillowRenditionDeriver",
    "RenditionReport",
    "derive_renditions",
    # Helpers and configuration
    "DISPLAY_ORDER_ATTR",
    "get_owner_kind",
    "new_unique_id",
    "public_url",
    # Service class
    "MediaService",
    "create_media_service",
    # Input models
    "CandidateAsset",
    "DeleteAssetsInput",
    "ListOrderInput",
    "OwnerRef",
    "PromoteAssetsInput",
    "ReconcileInput",
    "RenditionUrlsInput",
    "ReorderAssetsInput",
    "ResolveUrlInput",
    "UploadAssetsInput",
    # Output models
    "DeleteOutput",
    "OrderedKeysOutput",
    "PromoteOutput",
    "PromotionItem",
    "ReconcileOutput",
    "ReorderOutput",
    "UploadOutput",
    "UrlOutput",
    "UrlSetOutput",
    # Errors and configuration models
    "LifecycleStage",
    "MediaStorageError",
    "MediaValidationError",
    "OwnerKindConfig",
    "Rendition",
    "UrlMode",
    "ValidationKind",
    # Ports
    "RenditionDeriverPort",
]
