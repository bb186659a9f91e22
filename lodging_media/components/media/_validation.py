"""
Pre-flight batch validation.

Checks run in a fixed order and stop at the first violation: batch count,
then for each asset in input order its extension, size, and emptiness.
Nothing here touches the store.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .models import CandidateAsset, MediaValidationError, OwnerKindConfig, ValidationKind

logger = logging.getLogger(__name__)


def _format_bytes(size: int) -> str:
    mib = size / (1024 * 1024)
    if mib >= 1:
        return f"{mib:g} MB"
    return f"{size} bytes"


def validate_count(count: int, config: OwnerKindConfig) -> list[MediaValidationError]:
    """Returns list of errors (empty if valid)."""
    if config.min_count <= count <= config.max_count:
        return []
    return [
        MediaValidationError(
            code=ValidationKind.COUNT_OUT_OF_RANGE.value,
            message=(
                f"Between {config.min_count} and {config.max_count} images required "
                f"for {config.kind}, got {count}"
            ),
            field="images",
        )
    ]


def validate_asset(
    asset: CandidateAsset,
    config: OwnerKindConfig,
    *,
    index: int = 0,
) -> list[MediaValidationError]:
    """
    Validate one asset's extension, then size, then emptiness.

    Returns at most one error.
    """
    field = f"images[{index}]"
    ext = asset.extension
    if ext not in config.allowed_extensions:
        return [
            MediaValidationError(
                code=ValidationKind.UNSUPPORTED_FORMAT.value,
                message=(
                    f"Invalid image format: {ext or '(none)'} in '{asset.filename}'. "
                    f"Allowed: {', '.join(config.allowed_extensions)}"
                ),
                field=field,
            )
        ]

    size = asset.size_bytes
    if asset.declared_size is not None and asset.declared_size != size:
        logger.warning(
            "Declared size %d for %s differs from received %d bytes",
            asset.declared_size,
            asset.filename,
            size,
        )
    if size > config.max_bytes:
        return [
            MediaValidationError(
                code=ValidationKind.TOO_LARGE.value,
                message=(
                    f"Image '{asset.filename}' is {size} bytes; "
                    f"size must be at most {_format_bytes(config.max_bytes)}"
                ),
                field=field,
            )
        ]

    if size == 0:
        return [
            MediaValidationError(
                code=ValidationKind.EMPTY.value,
                message=f"Empty image file detected: '{asset.filename}'",
                field=field,
            )
        ]

    return []


def validate_batch(
    assets: Sequence[CandidateAsset],
    config: OwnerKindConfig,
) -> list[MediaValidationError]:
    """Validate a whole batch; the first violation wins."""
    errors = validate_count(len(assets), config)
    if errors:
        return errors

    for index, asset in enumerate(assets):
        errors = validate_asset(asset, config, index=index)
        if errors:
            return errors

    return []
