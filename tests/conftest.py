import io
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
from PIL import Image

from lodging_media.adapters import FrozenClock, InMemoryObjectStore, RecordingEventSink
from lodging_media.components.media import CandidateAsset, MediaService
from lodging_media.rules import MediaRules, default_rules, load_rules

ImageFactory = Callable[..., bytes]


@pytest.fixture
def rules() -> MediaRules:
    return default_rules()


@pytest.fixture
def project_rules() -> MediaRules:
    """Rules from rules.yaml at the project root."""
    rules_path = Path(__file__).resolve().parent.parent / "rules.yaml"
    return load_rules(rules_path)


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 14, 9, 30, tzinfo=UTC))


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic unique ids: id0001, id0002, ..."""
    counter = iter(range(1, 1_000_000))
    return lambda: f"id{next(counter):04d}"


@pytest.fixture
def make_image() -> ImageFactory:
    """Encode a solid-colour test image."""

    def _make(
        width: int = 1200,
        height: int = 900,
        fmt: str = "JPEG",
        mode: str = "RGB",
    ) -> bytes:
        color: int | tuple[int, ...] = (
            128 if mode in ("L", "P") else (200, 80, 40, 128)[: len(mode)]
        )
        img = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def jpeg_asset(make_image: ImageFactory) -> Callable[[str], CandidateAsset]:
    def _asset(filename: str = "room.jpg") -> CandidateAsset:
        return CandidateAsset(filename=filename, data=make_image(), content_type="image/jpeg")

    return _asset


@pytest.fixture
def media(
    store: InMemoryObjectStore,
    rules: MediaRules,
    clock: FrozenClock,
    events: RecordingEventSink,
    id_factory: Callable[[], str],
) -> MediaService:
    return MediaService(store, rules, clock=clock, events=events, id_factory=id_factory)
