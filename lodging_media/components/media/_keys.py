"""
Key naming scheme.

Every key is a pure function of its inputs:

    staging:    {prefix}/{request_token}/images/{index:03d}{ext}
    token:      {request_id}-{unique_id}
    permanent:  {prefix}/{owner_id}/images/{unique_id}{ext}
    rendition:  {dir}/{stem}_{suffix}{ext}   (derived from its original)

Unique ids and request tokens are supplied by the caller so that two calls
with the same inputs produce the same key.
"""

from __future__ import annotations

from dataclasses import dataclass

IMAGES_SEGMENT = "images"
RENDITION_SEPARATOR = "_"
STAGING_PREFIX = "registrations"


@dataclass(frozen=True)
class KeyParts:
    """A key split back into its segments."""

    prefix: str
    owner_segment: str
    unique_id: str
    ext: str


def _split_filename(filename: str) -> tuple[str, str]:
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return filename, ""
    return stem, f".{ext}"


def request_token(request_id: str, unique_id: str) -> str:
    """Fresh per upload attempt, so a retried batch never reuses a key."""
    if "-" in unique_id:
        raise ValueError(f"unique id must not contain '-': {unique_id!r}")
    return f"{request_id}-{unique_id}"


def token_request_id(token: str) -> str:
    """The request id a staging token was minted for ("" if not a token)."""
    return token.rpartition("-")[0]


def staging_key(
    request_token: str,
    index: int,
    ext: str,
    *,
    prefix: str = STAGING_PREFIX,
) -> str:
    """Key for the index-th image of a pending request."""
    if not request_token or "/" in request_token:
        raise ValueError(f"Invalid request token: {request_token!r}")
    if index < 0:
        raise ValueError("index must be non-negative")
    return f"{prefix}/{request_token}/{IMAGES_SEGMENT}/{index:03d}{ext.lower()}"


def permanent_key(prefix: str, owner_id: str, unique_id: str, ext: str) -> str:
    """Key for an image owned by a persistent entity."""
    if not owner_id or "/" in owner_id:
        raise ValueError(f"Invalid owner id: {owner_id!r}")
    if not unique_id or "/" in unique_id:
        raise ValueError(f"Invalid unique id: {unique_id!r}")
    return f"{prefix}/{owner_id}/{IMAGES_SEGMENT}/{unique_id}{ext.lower()}"


def rendition_key(original_key: str, suffix: str) -> str:
    """
    Derive a rendition's key from its original.

    The suffix goes between the stem and the extension of the final path
    segment only, so dots elsewhere in the key are left alone:

        units/1/images/ab.cd.jpg -> units/1/images/ab.cd_thumbnail.jpg
    """
    directory, slash, filename = original_key.rpartition("/")
    stem, ext = _split_filename(filename)
    return f"{directory}{slash}{stem}{RENDITION_SEPARATOR}{suffix}{ext}"


def rendition_keys(original_key: str, suffixes: tuple[str, ...] | list[str]) -> list[str]:
    return [rendition_key(original_key, s) for s in suffixes]


def owner_prefix(prefix: str, owner_segment: str) -> str:
    """Listing prefix covering every object of one owner (trailing slash included)."""
    return f"{prefix}/{owner_segment}/{IMAGES_SEGMENT}/"


def parse_key(key: str) -> KeyParts:
    """
    Split a staging or permanent key into its parts.

    Raises:
        ValueError: If the key does not follow {prefix}/{owner}/images/{file}
    """
    segments = key.split("/")
    if len(segments) != 4 or segments[2] != IMAGES_SEGMENT or not all(segments):
        raise ValueError(f"Not a media key: {key!r}")
    stem, ext = _split_filename(segments[3])
    return KeyParts(
        prefix=segments[0],
        owner_segment=segments[1],
        unique_id=stem,
        ext=ext,
    )


def rendition_source(key: str, suffixes: tuple[str, ...] | list[str]) -> str | None:
    """
    Return the original key a rendition key was derived from.

    None when the key's stem carries none of the given suffixes.
    """
    directory, slash, filename = key.rpartition("/")
    stem, ext = _split_filename(filename)
    for suffix in suffixes:
        marker = f"{RENDITION_SEPARATOR}{suffix}"
        if stem.endswith(marker) and len(stem) > len(marker):
            return f"{directory}{slash}{stem[: -len(marker)]}{ext}"
    return None


def is_rendition_key(key: str, suffixes: tuple[str, ...] | list[str]) -> bool:
    return rendition_source(key, suffixes) is not None


def promoted_unique_id(parts: KeyParts) -> str:
    """
    Unique id for the permanent copy of a staged image.

    Built from the request token and staging index, so promoting the same
    staging key twice targets the same permanent key.
    """
    return f"{parts.owner_segment}-{parts.unique_id}"
