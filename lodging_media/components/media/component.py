"""
Media component - image upload, promotion, deletion, ordering, and URLs.

Every operation is a sequence of single-object store calls; the store has
no multi-object transaction. Upload keeps track of what it has committed
and undoes it with one batch delete when the batch cannot finish.

Invariants:
- Validation completes before the first store write of a batch
- Upload returns original keys only, in input order, or none at all
- Promotion copies before it deletes, and deletes staging keys only for
  items whose original copy succeeded
- A rendition failure never fails the original it belongs to
- Deletion covers every derivable rendition key, present or not
- Reorder rewrites display-order metadata only; content is untouched
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from threading import Event
from urllib.parse import quote
from uuid import uuid4

from lodging_media.adapters import LoggingEventSink, create_object_store
from lodging_media.core.ports.events import MediaEvent, MediaEventKind, MediaEventSink
from lodging_media.core.ports.storage import (
    KeyExistsError,
    KeyNotFoundError,
    ObjectStorePort,
    StorageError,
)
from lodging_media.core.ports.time import TimePort
from lodging_media.rules.loader import default_rules, load_rules
from lodging_media.rules.models import MediaRules

from ._keys import (
    is_rendition_key,
    owner_prefix,
    parse_key,
    permanent_key,
    promoted_unique_id,
    rendition_key,
    rendition_keys,
    rendition_source,
    request_token,
    staging_key,
    token_request_id,
)
from ._renditions import PillowRenditionDeriver, derive_renditions
from ._validation import validate_batch
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
    RenditionUrlsInput,
    ReorderAssetsInput,
    ReorderOutput,
    ResolveUrlInput,
    UploadAssetsInput,
    UploadOutput,
    UrlMode,
    UrlOutput,
    UrlSetOutput,
)
from .ports import RenditionDeriverPort

logger = logging.getLogger(__name__)

DISPLAY_ORDER_ATTR = "display-order"

IdFactory = Callable[[], str]


# --- Helper Functions ---


def new_unique_id() -> str:
    """Random id for a permanent key or a staging request token."""
    return uuid4().hex


def get_owner_kind(rules: MediaRules, kind: str) -> OwnerKindConfig | None:
    """Owner kind configuration, or None if the rules don't name it."""
    if kind not in rules.owner_kinds:
        return None
    return OwnerKindConfig.from_rules(kind, rules.owner_kinds[kind])


def make_deriver(rules: MediaRules) -> PillowRenditionDeriver:
    return PillowRenditionDeriver(rules.encoding.format, rules.encoding.quality)


def _now(clock: TimePort | None) -> datetime:
    return clock.now_utc() if clock is not None else datetime.now(UTC)


def _unknown_kind(kind: str, field: str = "owner_kind") -> MediaValidationError:
    return MediaValidationError(
        code="unknown_owner_kind",
        message=f"Unknown owner kind: {kind}",
        field=field,
    )


def _validate_owner_id(owner_id: str) -> list[MediaValidationError]:
    if owner_id and "/" not in owner_id:
        return []
    return [
        MediaValidationError(
            code="invalid_owner",
            message=f"Owner id must be a non-empty single path segment, got {owner_id!r}",
            field="owner_id",
        )
    ]


def _to_media_error(error: StorageError, key: str | None = None) -> MediaStorageError:
    return MediaStorageError(
        message=str(error),
        key=error.key or key,
        transient=error.transient,
    )


def _emit(
    events: MediaEventSink | None,
    kind: MediaEventKind,
    keys: Sequence[str],
    reason: str,
    operation: str,
    owner: OwnerRef | None = None,
) -> None:
    if events is None:
        return
    events.emit(
        MediaEvent(
            kind=kind,
            keys=tuple(keys),
            reason=reason,
            operation=operation,
            owner_kind=owner.kind if owner else None,
            owner_id=owner.owner_id if owner else None,
        )
    )


def _delete_best_effort(
    store: ObjectStorePort,
    keys: Sequence[str],
    *,
    reason: str,
    operation: str,
    owner: OwnerRef | None,
    events: MediaEventSink | None,
) -> bool:
    """
    One batch delete whose failure is logged and published, never raised.

    Returns True if the store accepted the delete.
    """
    if not keys:
        return True
    try:
        store.delete_many(list(keys))
    except StorageError as e:
        logger.warning(
            "Cleanup delete after %s failed; %d object(s) left behind: %s",
            operation,
            len(keys),
            e,
        )
        _emit(
            events,
            MediaEventKind.ORPHANED_OBJECTS,
            keys,
            f"{reason}; cleanup failed: {e}",
            operation,
            owner,
        )
        return False
    return True


def listing_prefix(config: OwnerKindConfig, owner_id: str) -> str:
    """
    Store prefix covering one owner's objects.

    Staging tokens start with the request id, so a staging owner's prefix
    spans every upload attempt made for that request.
    """
    if config.stage == LifecycleStage.STAGING:
        return f"{config.prefix}/{owner_id}-"
    return owner_prefix(config.prefix, owner_id)


def belongs_to(key: str, config: OwnerKindConfig, owner_id: str) -> bool:
    """True if key is an object of this owner under this owner kind."""
    try:
        parts = parse_key(key)
    except ValueError:
        return False
    if parts.prefix != config.prefix:
        return False
    if config.stage == LifecycleStage.STAGING:
        return token_request_id(parts.owner_segment) == owner_id
    return parts.owner_segment == owner_id


def _list_owner_keys(
    store: ObjectStorePort, config: OwnerKindConfig, owner_id: str
) -> tuple[list[str], list[str]]:
    """List an owner's keys, split into (originals, renditions)."""
    originals: list[str] = []
    renditions: list[str] = []
    for key in store.list_keys(listing_prefix(config, owner_id)):
        if not belongs_to(key, config, owner_id):
            continue
        if is_rendition_key(key, config.rendition_names):
            renditions.append(key)
        else:
            originals.append(key)
    return originals, renditions


def _parse_order(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _original_metadata(
    asset: CandidateAsset,
    index: int,
    config: OwnerKindConfig,
    owner_id: str,
    uploaded_at: str,
    uploaded_by: str | None,
) -> dict[str, str]:
    # S3 user metadata must be ASCII
    metadata = {
        "original-filename": quote(asset.filename),
        "uploaded-at": uploaded_at,
        DISPLAY_ORDER_ATTR: str(index),
    }
    if config.stage == LifecycleStage.STAGING:
        metadata["request-id"] = owner_id
    else:
        metadata["owner-id"] = owner_id
    if uploaded_by:
        metadata["uploaded-by"] = quote(uploaded_by)
    return metadata


# --- Component Entry Points ---


def run_upload(
    inp: UploadAssetsInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    deriver: RenditionDeriverPort | None = None,
    clock: TimePort | None = None,
    events: MediaEventSink | None = None,
    id_factory: IdFactory | None = None,
) -> UploadOutput:
    """
    Upload a batch of originals for one owner, with their renditions.

    The batch is validated as a whole first. Originals are then written one
    at a time in input order, each followed by its renditions. If an
    original cannot be written, or the caller cancels, every object written
    so far in this call is deleted and no keys are returned.

    Args:
        inp: Owner, assets, and optional cancellation signal/deadline.
        store: Object store port.
        rules: Media rules (defaults to the built-in rules).
        deriver: Rendition deriver (defaults to Pillow with the rules' encoding).
        clock: Time source for metadata and the deadline.
        events: Optional sink for rendition failures and orphaned objects.
        id_factory: Source of unique ids (defaults to uuid4 hex).

    Returns:
        UploadOutput with committed original keys, or errors.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner.kind)
    if config is None:
        return UploadOutput(errors=[_unknown_kind(inp.owner.kind)], success=False)

    errors = _validate_owner_id(inp.owner.owner_id)
    if not errors:
        errors = validate_batch(inp.assets, config)
    if errors:
        return UploadOutput(errors=errors, success=False)

    deriver = deriver or make_deriver(rules)
    new_id = id_factory or new_unique_id
    token = None
    if config.stage == LifecycleStage.STAGING:
        token = request_token(inp.owner.owner_id, new_id())
    uploaded_at = _now(clock).isoformat()

    def cancelled() -> bool:
        if inp.cancel is not None and inp.cancel.is_set():
            return True
        return inp.deadline is not None and _now(clock) >= inp.deadline

    originals: list[str] = []
    committed: list[str] = []  # originals and renditions, for compensation
    renditions_written = 0
    renditions_failed = 0
    total = len(inp.assets)

    def abort_cancelled(done: int) -> UploadOutput:
        logger.info(
            "Upload for %s/%s cancelled after %d of %d image(s)",
            inp.owner.kind,
            inp.owner.owner_id,
            done,
            total,
        )
        _delete_best_effort(
            store,
            committed,
            reason="upload cancelled",
            operation="upload",
            owner=inp.owner,
            events=events,
        )
        return UploadOutput(
            request_token=token,
            storage_error=MediaStorageError(
                code="cancelled",
                message=f"Upload cancelled after {done} of {total} image(s)",
                transient=True,
            ),
            success=False,
        )

    for index, asset in enumerate(inp.assets):
        if cancelled():
            return abort_cancelled(index)

        if token is not None:
            key = staging_key(token, index, asset.extension, prefix=config.prefix)
        else:
            key = permanent_key(config.prefix, inp.owner.owner_id, new_id(), asset.extension)

        try:
            store.put(
                key,
                asset.data,
                asset.content_type,
                visibility=config.visibility,
                metadata=_original_metadata(
                    asset, index, config, inp.owner.owner_id, uploaded_at, inp.uploaded_by
                ),
            )
        except StorageError as e:
            logger.error(
                "Failed to write original %s (%d of %d); aborting batch",
                key,
                index + 1,
                total,
                exc_info=True,
            )
            _delete_best_effort(
                store,
                committed,
                reason=f"original write failed for {key}: {e}",
                operation="upload",
                owner=inp.owner,
                events=events,
            )
            return UploadOutput(
                request_token=token,
                storage_error=_to_media_error(e, key),
                success=False,
            )

        originals.append(key)
        committed.append(key)

        report = derive_renditions(
            deriver,
            store,
            key,
            asset.data,
            config.renditions,
            visibility=config.visibility,
            should_continue=lambda: not cancelled(),
        )
        committed.extend(report.written)
        renditions_written += len(report.written)
        renditions_failed += len(report.failed)
        if report.failed:
            _emit(
                events,
                MediaEventKind.RENDITION_FAILED,
                rendition_keys(key, list(report.failed)),
                "; ".join(f"{name}: {reason}" for name, reason in report.failed.items()),
                "upload",
                inp.owner,
            )
        if report.interrupted:
            return abort_cancelled(index)

    logger.info(
        "Committed %d image(s) for %s/%s (%d rendition(s) written, %d failed)",
        len(originals),
        inp.owner.kind,
        inp.owner.owner_id,
        renditions_written,
        renditions_failed,
    )
    return UploadOutput(
        keys=originals,
        request_token=token,
        renditions_written=renditions_written,
        renditions_failed=renditions_failed,
        success=True,
    )


def _promote_one(
    key: str,
    source: OwnerKindConfig,
    target: OwnerKindConfig,
    owner: OwnerRef,
    *,
    store: ObjectStorePort,
    verify: bool,
    events: MediaEventSink | None,
) -> PromotionItem:
    try:
        parts = parse_key(key)
    except ValueError as e:
        return PromotionItem(
            staging_key=key,
            error=MediaStorageError(code="invalid_key", message=str(e), key=key),
        )
    if parts.prefix != source.prefix or is_rendition_key(key, source.rendition_names):
        return PromotionItem(
            staging_key=key,
            error=MediaStorageError(
                code="invalid_key",
                message=f"{key} is not a staged {source.kind} original",
                key=key,
            ),
        )

    dest = permanent_key(target.prefix, owner.owner_id, promoted_unique_id(parts), parts.ext)

    try:
        store.copy(key, dest, visibility=target.visibility)
    except KeyExistsError:
        # Copied by an earlier attempt whose staging cleanup did not run
        pass
    except KeyNotFoundError as e:
        # An earlier attempt may have finished the whole promotion
        try:
            already_promoted = store.get_metadata(dest) is not None
        except StorageError:
            already_promoted = False
        if not already_promoted:
            logger.warning("Cannot promote %s: %s", key, e)
            return PromotionItem(staging_key=key, error=_to_media_error(e, key))
        return PromotionItem(staging_key=key, permanent_key=dest)
    except StorageError as e:
        logger.warning("Failed to copy %s to %s: %s", key, dest, e)
        return PromotionItem(staging_key=key, error=_to_media_error(e, key))

    if verify:
        try:
            head = store.get_metadata(dest)
        except StorageError as e:
            logger.warning("Could not verify promoted copy %s: %s", dest, e)
            return PromotionItem(staging_key=key, error=_to_media_error(e, dest))
        if head is None:
            logger.warning("Promoted copy %s missing after copy", dest)
            return PromotionItem(
                staging_key=key,
                error=MediaStorageError(
                    message=f"Copy of {key} not found at {dest}",
                    key=dest,
                    transient=True,
                ),
            )

    copied = 0
    failed: list[str] = []
    for name in source.rendition_names:
        src, dst = rendition_key(key, name), rendition_key(dest, name)
        try:
            store.copy(src, dst, visibility=target.visibility)
        except KeyExistsError:
            pass
        except StorageError as e:
            logger.warning("Failed to copy rendition %s to %s: %s", src, dst, e)
            failed.append(dst)
            continue
        copied += 1

    if failed:
        _emit(
            events,
            MediaEventKind.RENDITION_FAILED,
            failed,
            f"rendition copy failed while promoting {key}",
            "promote",
            owner,
        )

    return PromotionItem(staging_key=key, permanent_key=dest, renditions_copied=copied)


def run_promote(
    inp: PromoteAssetsInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    events: MediaEventSink | None = None,
) -> PromoteOutput:
    """
    Move staged originals (and their renditions) under a permanent owner.

    Each item is copied and then, once every item has been attempted, the
    staging keys of the items that made it are removed in one batch delete.
    Items that failed keep their staging objects so they can be retried;
    already-promoted items are not rolled back.

    Args:
        inp: Staging keys, their staging owner kind, and the target owner.
        store: Object store port.
        rules: Media rules (defaults to the built-in rules).
        events: Optional sink for rendition-copy failures and orphaned keys.

    Returns:
        PromoteOutput with one PromotionItem per input key, in input order.
    """
    rules = rules or default_rules()
    source = get_owner_kind(rules, inp.source_kind)
    if source is None:
        return PromoteOutput(errors=[_unknown_kind(inp.source_kind, "source_kind")], success=False)
    target = get_owner_kind(rules, inp.target.kind)
    if target is None:
        return PromoteOutput(errors=[_unknown_kind(inp.target.kind)], success=False)

    if source.stage != LifecycleStage.STAGING or source.promotes_to != target.kind:
        return PromoteOutput(
            errors=[
                MediaValidationError(
                    code="promotion_not_allowed",
                    message=f"{source.kind} images cannot be promoted to {target.kind}",
                    field="source_kind",
                )
            ],
            success=False,
        )

    errors = _validate_owner_id(inp.target.owner_id)
    if errors:
        return PromoteOutput(errors=errors, success=False)

    items: list[PromotionItem] = []
    staging_cleanup: list[str] = []
    for key in inp.staging_keys:
        item = _promote_one(
            key,
            source,
            target,
            inp.target,
            store=store,
            verify=rules.verify_promoted_copies,
            events=events,
        )
        items.append(item)
        if item.success:
            staging_cleanup.append(key)
            staging_cleanup.extend(rendition_keys(key, source.rendition_names))

    _delete_best_effort(
        store,
        staging_cleanup,
        reason="staging cleanup after promotion",
        operation="promote",
        owner=inp.target,
        events=events,
    )

    promoted = sum(1 for i in items if i.success)
    logger.info(
        "Promoted %d of %d image(s) to %s/%s",
        promoted,
        len(items),
        inp.target.kind,
        inp.target.owner_id,
    )
    return PromoteOutput(items=items, success=promoted == len(items))


def run_delete(
    inp: DeleteAssetsInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
) -> DeleteOutput:
    """
    Delete originals and every rendition key derivable from them.

    One batch delete; keys that are already gone are not an error.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner_kind)
    if config is None:
        return DeleteOutput(errors=[_unknown_kind(inp.owner_kind)], success=False)

    errors = [
        MediaValidationError(
            code="invalid_key",
            message=f"{key!r} is not a {config.kind} key",
            field=f"keys[{i}]",
        )
        for i, key in enumerate(inp.keys)
        if not key.startswith(f"{config.prefix}/")
    ]
    if errors:
        return DeleteOutput(errors=errors, success=False)

    keys: list[str] = []
    for key in inp.keys:
        keys.append(key)
        keys.extend(rendition_keys(key, config.rendition_names))
    keys = list(dict.fromkeys(keys))
    if not keys:
        return DeleteOutput(success=True)

    try:
        store.delete_many(keys)
    except StorageError as e:
        logger.warning("Failed to delete %d %s image(s): %s", len(inp.keys), config.kind, e)
        return DeleteOutput(storage_error=_to_media_error(e), success=False)

    logger.info("Deleted %d %s image(s) (%d key(s))", len(inp.keys), config.kind, len(keys))
    return DeleteOutput(deleted_keys=keys, success=True)


def run_reorder(
    inp: ReorderAssetsInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    events: MediaEventSink | None = None,
) -> ReorderOutput:
    """
    Set display-order = i on the i-th key.

    Not atomic: each key is its own metadata rewrite. A failed key is
    reported and the rest of the list is still attempted, so the caller can
    simply re-issue the same order. Concurrent reorders of one owner are
    last-writer-wins per key.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner.kind)
    if config is None:
        return ReorderOutput(errors=[_unknown_kind(inp.owner.kind)], success=False)

    errors = _validate_owner_id(inp.owner.owner_id)
    if errors:
        return ReorderOutput(errors=errors, success=False)

    seen: set[str] = set()
    for i, key in enumerate(inp.keys_in_order):
        if not belongs_to(key, config, inp.owner.owner_id) or is_rendition_key(
            key, config.rendition_names
        ):
            errors.append(
                MediaValidationError(
                    code="owner_mismatch",
                    message=(
                        f"{key!r} is not an original of "
                        f"{inp.owner.kind}/{inp.owner.owner_id}"
                    ),
                    field=f"keys_in_order[{i}]",
                )
            )
        elif key in seen:
            errors.append(
                MediaValidationError(
                    code="duplicate_key",
                    message=f"{key!r} appears more than once",
                    field=f"keys_in_order[{i}]",
                )
            )
        seen.add(key)
    if errors:
        return ReorderOutput(errors=errors, success=False)

    updated: list[str] = []
    failed: list[str] = []
    last_error: MediaStorageError | None = None
    for index, key in enumerate(inp.keys_in_order):
        try:
            store.replace_metadata(
                key,
                {DISPLAY_ORDER_ATTR: str(index)},
                visibility=config.visibility,
            )
        except StorageError as e:
            logger.warning("Failed to set display order of %s: %s", key, e)
            failed.append(key)
            last_error = _to_media_error(e, key)
            _emit(events, MediaEventKind.REORDER_FAILED, [key], str(e), "reorder", inp.owner)
            continue
        updated.append(key)

    logger.info(
        "Reordered %d image(s) for %s/%s (%d failed)",
        len(updated),
        inp.owner.kind,
        inp.owner.owner_id,
        len(failed),
    )
    return ReorderOutput(
        updated=updated,
        failed=failed,
        storage_error=last_error,
        success=not failed,
    )


def public_url(key: str, *, store: ObjectStorePort, rules: MediaRules) -> str:
    """Content-delivery URL if a domain is configured, else the store origin."""
    cdn = rules.urls.cdn_domain
    if cdn:
        base = cdn.rstrip("/") if "://" in cdn else f"https://{cdn.strip('/')}"
        return f"{base}/{quote(key)}"
    return store.origin_url(key)


def _validate_url_request(
    key: str, mode: UrlMode, expiry_minutes: int | None, rules: MediaRules
) -> tuple[int, list[MediaValidationError]]:
    minutes = (
        expiry_minutes if expiry_minutes is not None else rules.urls.default_expiry_minutes
    )
    errors: list[MediaValidationError] = []
    if not key or key.startswith("/"):
        errors.append(
            MediaValidationError(code="invalid_key", message="Key is required", field="key")
        )
    elif mode == UrlMode.SIGNED and not 1 <= minutes <= rules.urls.max_expiry_minutes:
        errors.append(
            MediaValidationError(
                code="invalid_expiry",
                message=(
                    f"Expiry must be between 1 and {rules.urls.max_expiry_minutes} "
                    f"minutes, got {minutes}"
                ),
                field="expiry_minutes",
            )
        )
    return minutes, errors


def run_resolve_url(
    inp: ResolveUrlInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    clock: TimePort | None = None,
) -> UrlOutput:
    """
    Turn a key into a URL.

    Public URLs are plain string concatenation. Signed URLs are produced by
    the store adapter without a round-trip and stay valid for their whole
    window, whatever happens to the object afterwards.
    """
    rules = rules or default_rules()
    minutes, errors = _validate_url_request(inp.key, inp.mode, inp.expiry_minutes, rules)
    if errors:
        return UrlOutput(mode=inp.mode, errors=errors, success=False)

    if inp.mode == UrlMode.PUBLIC:
        return UrlOutput(url=public_url(inp.key, store=store, rules=rules), mode=inp.mode)

    issued_at = _now(clock)
    url = store.sign_url(inp.key, minutes * 60)
    return UrlOutput(
        url=url,
        mode=inp.mode,
        expires_at=issued_at + timedelta(minutes=minutes),
    )


def run_rendition_urls(
    inp: RenditionUrlsInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    clock: TimePort | None = None,
) -> UrlSetOutput:
    """
    URLs for an original and each of its owner kind's renditions.

    Rendition keys are recomputed, not looked up, so a rendition that
    failed to generate still gets a URL; display code falls back to the
    original when it does not load.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner_kind)
    if config is None:
        return UrlSetOutput(mode=inp.mode, errors=[_unknown_kind(inp.owner_kind)], success=False)

    minutes, errors = _validate_url_request(inp.key, inp.mode, inp.expiry_minutes, rules)
    if errors:
        return UrlSetOutput(mode=inp.mode, errors=errors, success=False)

    targets = {"original": inp.key}
    for name in config.rendition_names:
        targets[name] = rendition_key(inp.key, name)

    if inp.mode == UrlMode.PUBLIC:
        urls = {name: public_url(key, store=store, rules=rules) for name, key in targets.items()}
        return UrlSetOutput(urls=urls, mode=inp.mode)

    issued_at = _now(clock)
    urls = {name: store.sign_url(key, minutes * 60) for name, key in targets.items()}
    return UrlSetOutput(
        urls=urls,
        mode=inp.mode,
        expires_at=issued_at + timedelta(minutes=minutes),
    )


def run_list_order(
    inp: ListOrderInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
) -> OrderedKeysOutput:
    """
    Read an owner's originals back in display order.

    Keys without a readable display-order sort last, by key.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner.kind)
    if config is None:
        return OrderedKeysOutput(errors=[_unknown_kind(inp.owner.kind)], success=False)
    errors = _validate_owner_id(inp.owner.owner_id)
    if errors:
        return OrderedKeysOutput(errors=errors, success=False)

    orders: dict[str, int | None] = {}
    try:
        originals, _ = _list_owner_keys(store, config, inp.owner.owner_id)
        for key in originals:
            head = store.get_metadata(key)
            if head is None:
                continue  # deleted since the listing
            orders[key] = _parse_order(head.metadata.get(DISPLAY_ORDER_ATTR))
    except StorageError as e:
        logger.warning(
            "Failed to read display order for %s/%s: %s", inp.owner.kind, inp.owner.owner_id, e
        )
        return OrderedKeysOutput(storage_error=_to_media_error(e), success=False)

    def sort_key(key: str) -> tuple[bool, int, str]:
        order = orders[key]
        return (order is None, order or 0, key)

    return OrderedKeysOutput(keys=sorted(orders, key=sort_key), display_order=orders)


def run_reconcile(
    inp: ReconcileInput,
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    deriver: RenditionDeriverPort | None = None,
    events: MediaEventSink | None = None,
) -> ReconcileOutput:
    """
    Audit an owner's rendition sets.

    Reports originals missing one or more renditions and renditions whose
    original is gone. With repair=True, missing renditions are regenerated
    from the original bytes and orphaned renditions are deleted.
    """
    rules = rules or default_rules()
    config = get_owner_kind(rules, inp.owner.kind)
    if config is None:
        return ReconcileOutput(errors=[_unknown_kind(inp.owner.kind)], success=False)
    errors = _validate_owner_id(inp.owner.owner_id)
    if errors:
        return ReconcileOutput(errors=errors, success=False)

    try:
        originals, renditions = _list_owner_keys(store, config, inp.owner.owner_id)
    except StorageError as e:
        return ReconcileOutput(storage_error=_to_media_error(e), success=False)

    present = set(originals) | set(renditions)
    incomplete: dict[str, list[str]] = {}
    for original in originals:
        missing = [n for n in config.rendition_names if rendition_key(original, n) not in present]
        if missing:
            incomplete[original] = missing
    orphaned = [
        r for r in renditions if rendition_source(r, config.rendition_names) not in present
    ]

    if incomplete or orphaned:
        logger.info(
            "%s/%s: %d incomplete rendition set(s), %d orphaned rendition(s)",
            inp.owner.kind,
            inp.owner.owner_id,
            len(incomplete),
            len(orphaned),
        )
    if not inp.repair:
        return ReconcileOutput(
            originals=originals,
            incomplete=incomplete,
            orphaned_renditions=orphaned,
        )

    deriver = deriver or make_deriver(rules)
    repaired: list[str] = []
    unrepaired: list[str] = []
    for original, missing in incomplete.items():
        try:
            data, _ = store.get(original)
        except StorageError as e:
            logger.warning("Cannot read %s to repair its renditions: %s", original, e)
            unrepaired.append(original)
            continue
        wanted = [r for r in config.renditions if r.name in missing]
        report = derive_renditions(
            deriver, store, original, data, wanted, visibility=config.visibility
        )
        repaired.extend(report.written)
        if report.failed:
            unrepaired.append(original)
            _emit(
                events,
                MediaEventKind.RENDITION_FAILED,
                rendition_keys(original, list(report.failed)),
                "; ".join(f"{name}: {reason}" for name, reason in report.failed.items()),
                "reconcile",
                inp.owner,
            )

    removed: list[str] = []
    storage_error: MediaStorageError | None = None
    if orphaned:
        try:
            store.delete_many(orphaned)
            removed = list(orphaned)
        except StorageError as e:
            logger.warning("Failed to delete %d orphaned rendition(s): %s", len(orphaned), e)
            storage_error = _to_media_error(e)
            _emit(
                events,
                MediaEventKind.ORPHANED_OBJECTS,
                orphaned,
                f"orphaned rendition delete failed: {e}",
                "reconcile",
                inp.owner,
            )

    return ReconcileOutput(
        originals=originals,
        incomplete=incomplete,
        orphaned_renditions=orphaned,
        repaired=repaired,
        removed=removed,
        unrepaired=unrepaired,
        storage_error=storage_error,
        success=not unrepaired and storage_error is None,
    )


def run(
    inp: (
        UploadAssetsInput
        | PromoteAssetsInput
        | DeleteAssetsInput
        | ReorderAssetsInput
        | ResolveUrlInput
        | RenditionUrlsInput
        | ListOrderInput
        | ReconcileInput
    ),
    *,
    store: ObjectStorePort,
    rules: MediaRules | None = None,
    deriver: RenditionDeriverPort | None = None,
    clock: TimePort | None = None,
    events: MediaEventSink | None = None,
    id_factory: IdFactory | None = None,
) -> (
    UploadOutput
    | PromoteOutput
    | DeleteOutput
    | ReorderOutput
    | UrlOutput
    | UrlSetOutput
    | OrderedKeysOutput
    | ReconcileOutput
):
    """
    Main entry point for the media component.

    Dispatches to appropriate handler based on input type.

    Args:
        inp: Input object determining the operation.
        store: Object store port.
        rules: Optional media rules (built-in defaults otherwise).
        deriver: Rendition deriver (upload, reconcile).
        clock: Time source (upload, URLs).
        events: Diagnostic event sink.
        id_factory: Unique id source (upload).

    Returns:
        Appropriate output object based on input type.
    """
    if isinstance(inp, UploadAssetsInput):
        return run_upload(
            inp,
            store=store,
            rules=rules,
            deriver=deriver,
            clock=clock,
            events=events,
            id_factory=id_factory,
        )

    elif isinstance(inp, PromoteAssetsInput):
        return run_promote(inp, store=store, rules=rules, events=events)

    elif isinstance(inp, DeleteAssetsInput):
        return run_delete(inp, store=store, rules=rules)

    elif isinstance(inp, ReorderAssetsInput):
        return run_reorder(inp, store=store, rules=rules, events=events)

    elif isinstance(inp, ResolveUrlInput):
        return run_resolve_url(inp, store=store, rules=rules, clock=clock)

    elif isinstance(inp, RenditionUrlsInput):
        return run_rendition_urls(inp, store=store, rules=rules, clock=clock)

    elif isinstance(inp, ListOrderInput):
        return run_list_order(inp, store=store, rules=rules)

    elif isinstance(inp, ReconcileInput):
        return run_reconcile(inp, store=store, rules=rules, deriver=deriver, events=events)

    else:
        raise ValueError(f"Unknown input type: {type(inp)}")


# --- Service Class ---


class MediaService:
    """
    Media service wrapper.

    Binds the store, rules, and collaborators once and exposes the
    component entry points as methods.
    """

    def __init__(
        self,
        store: ObjectStorePort,
        rules: MediaRules | None = None,
        *,
        deriver: RenditionDeriverPort | None = None,
        clock: TimePort | None = None,
        events: MediaEventSink | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self._store = store
        self._rules = rules or default_rules()
        self._deriver = deriver or make_deriver(self._rules)
        self._clock = clock
        self._events = events
        self._id_factory = id_factory

    @property
    def store(self) -> ObjectStorePort:
        return self._store

    @property
    def rules(self) -> MediaRules:
        return self._rules

    def owner_kind(self, kind: str) -> OwnerKindConfig:
        """Raises KeyError for a kind the rules don't define."""
        config = get_owner_kind(self._rules, kind)
        if config is None:
            raise KeyError(f"Unknown owner kind: {kind}")
        return config

    def upload(
        self,
        owner_kind: str,
        owner_id: str,
        assets: Sequence[CandidateAsset],
        *,
        uploaded_by: str | None = None,
        cancel: Event | None = None,
        deadline: datetime | None = None,
    ) -> UploadOutput:
        inp = UploadAssetsInput(
            owner=OwnerRef(kind=owner_kind, owner_id=owner_id),
            assets=tuple(assets),
            uploaded_by=uploaded_by,
            cancel=cancel,
            deadline=deadline,
        )
        return run_upload(
            inp,
            store=self._store,
            rules=self._rules,
            deriver=self._deriver,
            clock=self._clock,
            events=self._events,
            id_factory=self._id_factory,
        )

    def promote(
        self,
        staging_keys: Sequence[str],
        *,
        source_kind: str,
        target_kind: str,
        target_id: str,
    ) -> PromoteOutput:
        inp = PromoteAssetsInput(
            staging_keys=tuple(staging_keys),
            source_kind=source_kind,
            target=OwnerRef(kind=target_kind, owner_id=target_id),
        )
        return run_promote(inp, store=self._store, rules=self._rules, events=self._events)

    def delete(self, keys: Sequence[str], *, owner_kind: str) -> DeleteOutput:
        inp = DeleteAssetsInput(keys=tuple(keys), owner_kind=owner_kind)
        return run_delete(inp, store=self._store, rules=self._rules)

    def reorder(
        self, owner_kind: str, owner_id: str, keys_in_order: Sequence[str]
    ) -> ReorderOutput:
        inp = ReorderAssetsInput(
            owner=OwnerRef(kind=owner_kind, owner_id=owner_id),
            keys_in_order=tuple(keys_in_order),
        )
        return run_reorder(inp, store=self._store, rules=self._rules, events=self._events)

    def list_order(self, owner_kind: str, owner_id: str) -> OrderedKeysOutput:
        inp = ListOrderInput(owner=OwnerRef(kind=owner_kind, owner_id=owner_id))
        return run_list_order(inp, store=self._store, rules=self._rules)

    def reconcile(
        self, owner_kind: str, owner_id: str, *, repair: bool = False
    ) -> ReconcileOutput:
        inp = ReconcileInput(owner=OwnerRef(kind=owner_kind, owner_id=owner_id), repair=repair)
        return run_reconcile(
            inp,
            store=self._store,
            rules=self._rules,
            deriver=self._deriver,
            events=self._events,
        )

    def resolve_url(
        self,
        key: str,
        *,
        signed: bool = False,
        expiry_minutes: int | None = None,
    ) -> UrlOutput:
        inp = ResolveUrlInput(
            key=key,
            mode=UrlMode.SIGNED if signed else UrlMode.PUBLIC,
            expiry_minutes=expiry_minutes,
        )
        return run_resolve_url(inp, store=self._store, rules=self._rules, clock=self._clock)

    def rendition_urls(
        self,
        key: str,
        owner_kind: str,
        *,
        signed: bool = False,
        expiry_minutes: int | None = None,
    ) -> UrlSetOutput:
        inp = RenditionUrlsInput(
            key=key,
            owner_kind=owner_kind,
            mode=UrlMode.SIGNED if signed else UrlMode.PUBLIC,
            expiry_minutes=expiry_minutes,
        )
        return run_rendition_urls(inp, store=self._store, rules=self._rules, clock=self._clock)


def create_media_service(
    rules: MediaRules | None = None,
    store: ObjectStorePort | None = None,
    *,
    rules_path: Path | None = None,
    deriver: RenditionDeriverPort | None = None,
    clock: TimePort | None = None,
    events: MediaEventSink | None = None,
) -> MediaService:
    """
    Factory function to create a media service.

    Args:
        rules: Media rules. Loaded from rules_path, else built-in defaults.
        store: Object store. Built from rules.store when omitted.
        rules_path: YAML rules file, used when rules is omitted.
        deriver: Rendition deriver (Pillow by default).
        clock: Time source (system clock by default).
        events: Event sink (logging sink by default).

    Returns:
        Configured MediaService.
    """
    if rules is None:
        rules = load_rules(rules_path) if rules_path is not None else default_rules()
    if store is None:
        store = create_object_store(rules)
    return MediaService(
        store,
        rules,
        deriver=deriver,
        clock=clock,
        events=events if events is not None else LoggingEventSink(),
    )
