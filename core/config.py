import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("VIDEO_LIBRARY_DATA_DIR", BASE_DIR / "data"))
VIDEO_DIR = DATA_DIR / "uploads"
INDEX_PATH = DATA_DIR / "index.json"

STORE_BACKEND = os.environ.get("VIDEO_LIBRARY_STORE", "memory")  # memory | json
LOG_LEVEL = os.environ.get("VIDEO_LIBRARY_LOG_LEVEL", "INFO")

CHUNK_SIZE = 1024 * 1024  # 1 MiB for streaming
MAX_UPLOAD_SIZE = 500 * 1024 * 1024
STREAM_CONTENT_TYPE = "video/mp4"

DEFAULT_CATEGORY = "Other"
ALL_CATEGORIES = "All Categories"

CORS_ORIGINS = [
    "http://localhost",
    "http://127.0.0.1",
    "http://localhost:5173",
    "http://localhost:3000",
]


@dataclass(frozen=True)
class Settings:
    video_dir: Path = VIDEO_DIR
    index_path: Path = INDEX_PATH
    store_backend: str = STORE_BACKEND
    chunk_size: int = CHUNK_SIZE
    max_upload_size: int = MAX_UPLOAD_SIZE
    cors_origins: List[str] = field(default_factory=lambda: list(CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()

    @classmethod
    def for_data_dir(cls, data_dir: Path, **overrides) -> "Settings":
        data_dir = Path(data_dir)
        return cls(
            video_dir=data_dir / "uploads",
            index_path=data_dir / "index.json",
            **overrides,
        )
