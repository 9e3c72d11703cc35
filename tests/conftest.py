from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app
from schemas.video import VideoCreate
from services.video_store import MemoryVideoStore

VIDEO_BYTES = bytes(i % 256 for i in range(1000))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings.for_data_dir(tmp_path / "data", chunk_size=64)


@pytest.fixture
def store() -> MemoryVideoStore:
    return MemoryVideoStore()


@pytest.fixture
def client(settings, store):
    app = create_app(settings=settings, store=store)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def video(settings, store):
    """A 1000-byte video with a record pointing at it."""
    settings.video_dir.mkdir(parents=True, exist_ok=True)
    (settings.video_dir / "clip.mp4").write_bytes(VIDEO_BYTES)
    return store.create(
        VideoCreate(
            title="Holiday clip",
            description="Beach at sunset",
            filename="clip.mp4",
            original_filename="holiday.mp4",
            file_size=len(VIDEO_BYTES),
            category="Travel",
        )
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"
