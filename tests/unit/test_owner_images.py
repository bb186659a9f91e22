"""
Owner image service tests.

The registration-to-unit flow as the booking backend drives it.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from lodging_media.adapters import InMemoryObjectStore
from lodging_media.components.media import CandidateAsset, MediaService
from lodging_media.services import OwnerImageService, owner_image_services

AssetFactory = Callable[..., CandidateAsset]


@pytest.fixture
def services(media: MediaService) -> dict[str, OwnerImageService]:
    return owner_image_services(media)


class TestOwnerImageServices:
    """Facades bound to one owner kind."""

    def test_one_per_kind(self, services: dict[str, OwnerImageService]) -> None:
        assert set(services) == {"unit", "subunit", "registration", "offer", "department"}
        assert services["registration"].is_staging is True
        assert services["unit"].is_staging is False

    def test_unknown_kind(self, media: MediaService) -> None:
        with pytest.raises(KeyError):
            OwnerImageService(media, "castle")

    def test_registration_flow(
        self,
        services: dict[str, OwnerImageService],
        store: InMemoryObjectStore,
        jpeg_asset: AssetFactory,
    ) -> None:
        """Upload while pending, promote on approval, reorder, then display."""
        registrations = services["registration"]
        units = services["unit"]

        staged = registrations.upload("req-7", [jpeg_asset("front.jpg"), jpeg_asset("pool.jpg")])
        assert staged.success is True

        promoted = registrations.promote_to(staged.keys, "42")
        assert promoted.success is True

        units.reorder("42", list(reversed(promoted.keys)))
        listed = units.list_order("42")
        assert listed.keys == list(reversed(promoted.keys))

        urls = units.display_urls(listed.keys[0])
        assert set(urls.urls) == {"original", "thumbnail", "small", "medium", "large"}
        assert not any(k.startswith("registrations/") for k in store.keys())

    def test_permanent_kind_cannot_promote(
        self, services: dict[str, OwnerImageService]
    ) -> None:
        with pytest.raises(ValueError):
            services["unit"].promote_to(["units/42/images/a.jpg"], "43")

    def test_single_image_kind(
        self, services: dict[str, OwnerImageService], jpeg_asset: AssetFactory
    ) -> None:
        offers = services["offer"]

        too_many = offers.upload("3", [jpeg_asset(), jpeg_asset()])
        assert too_many.errors[0].code == "count_out_of_range"

        one = offers.upload("3", [jpeg_asset()])
        assert offers.delete(one.keys).success is True

    def test_reconcile_through_facade(
        self,
        services: dict[str, OwnerImageService],
        store: InMemoryObjectStore,
        jpeg_asset: AssetFactory,
    ) -> None:
        subunits = services["subunit"]
        out = subunits.upload("9", [jpeg_asset()])
        store.delete_many([out.keys[0].replace(".jpg", "_medium.jpg")])

        report = subunits.reconcile("9", repair=True)

        assert report.incomplete == {out.keys[0]: ["medium"]}
        assert report.success is True
