"""
Key naming scheme tests.

Keys are pure functions of their inputs; rendition keys are recomputed
from the original rather than stored anywhere.
"""

from __future__ import annotations

import pytest

from lodging_media.components.media import (
    is_rendition_key,
    owner_prefix,
    parse_key,
    permanent_key,
    rendition_key,
    rendition_keys,
    staging_key,
)
from lodging_media.components.media._keys import (
    promoted_unique_id,
    rendition_source,
    request_token,
    token_request_id,
)

SIZES = ("thumbnail", "small", "medium", "large")


class TestDeterminism:
    """The same inputs always give the same key."""

    def test_permanent_key_is_stable(self) -> None:
        keys = {permanent_key("units", "42", "ab12", ".jpg") for _ in range(5)}
        assert keys == {"units/42/images/ab12.jpg"}

    def test_rendition_key_is_stable(self) -> None:
        keys = {rendition_key("units/42/images/ab12.jpg", "thumbnail") for _ in range(5)}
        assert keys == {"units/42/images/ab12_thumbnail.jpg"}

    def test_staging_key_format(self) -> None:
        assert staging_key("7-f00d", 2, ".png") == "registrations/7-f00d/images/002.png"

    def test_staging_key_custom_prefix(self) -> None:
        assert staging_key("tok", 0, ".jpg", prefix="drafts") == "drafts/tok/images/000.jpg"

    def test_extension_is_lowercased(self) -> None:
        assert permanent_key("units", "1", "x", ".JPG") == "units/1/images/x.jpg"


class TestRenditionKey:
    """The suffix goes before the extension of the last segment only."""

    def test_dots_in_directories_untouched(self) -> None:
        key = rendition_key("units/v1.2/images/photo.jpg", "small")
        assert key == "units/v1.2/images/photo_small.jpg"

    def test_only_last_dot_of_filename(self) -> None:
        key = rendition_key("units/1/images/ab.cd.jpeg", "medium")
        assert key == "units/1/images/ab.cd_medium.jpeg"

    def test_no_extension(self) -> None:
        assert rendition_key("units/1/images/raw", "large") == "units/1/images/raw_large"

    def test_rendition_keys_follow_suffix_order(self) -> None:
        assert rendition_keys("offers/3/images/a.png", SIZES) == [
            "offers/3/images/a_thumbnail.png",
            "offers/3/images/a_small.png",
            "offers/3/images/a_medium.png",
            "offers/3/images/a_large.png",
        ]

    def test_rendition_source_inverts_rendition_key(self) -> None:
        original = "subunits/9/images/5e5e.webp"
        for suffix in SIZES:
            assert rendition_source(rendition_key(original, suffix), SIZES) == original

    def test_original_is_not_a_rendition(self) -> None:
        assert not is_rendition_key("units/1/images/abc.jpg", SIZES)
        assert is_rendition_key("units/1/images/abc_small.jpg", SIZES)

    def test_bare_suffix_is_not_a_rendition(self) -> None:
        """A file literally named "_small.jpg" has no stem to derive from."""
        assert not is_rendition_key("units/1/images/_small.jpg", SIZES)


class TestParseKey:
    """Keys split back into their parts."""

    def test_parse_permanent(self) -> None:
        parts = parse_key("units/42/images/ab12.jpg")
        assert (parts.prefix, parts.owner_segment, parts.unique_id, parts.ext) == (
            "units",
            "42",
            "ab12",
            ".jpg",
        )

    @pytest.mark.parametrize(
        "key",
        ["", "units/42/ab12.jpg", "units/42/photos/ab12.jpg", "units//images/a.jpg", "a/b/c/d/e"],
    )
    def test_rejects_foreign_keys(self, key: str) -> None:
        with pytest.raises(ValueError):
            parse_key(key)

    def test_promoted_id_is_stable_per_staging_key(self) -> None:
        parts = parse_key("registrations/7-f00d/images/001.jpg")
        assert promoted_unique_id(parts) == "7-f00d-001"


class TestTokens:
    """Staging request tokens."""

    def test_token_round_trip(self) -> None:
        token = request_token("req-55", "abc123")
        assert token == "req-55-abc123"
        assert token_request_id(token) == "req-55"

    def test_unique_id_may_not_contain_separator(self) -> None:
        with pytest.raises(ValueError):
            request_token("7", "a-b")

    def test_owner_prefix(self) -> None:
        assert owner_prefix("units", "42") == "units/42/images/"

    @pytest.mark.parametrize("owner_id", ["", "a/b"])
    def test_invalid_owner_id(self, owner_id: str) -> None:
        with pytest.raises(ValueError):
            permanent_key("units", owner_id, "x", ".jpg")
