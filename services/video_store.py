import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.config import ALL_CATEGORIES, DEFAULT_CATEGORY, Settings
from schemas.video import Video, VideoCreate, VideoUpdate

logger = logging.getLogger(__name__)


class VideoStore(ABC):
    """
    Metadata capability the routes depend on. Streaming only ever calls
    get(); the rest backs the CRUD endpoints.
    """

    @abstractmethod
    def get(self, video_id: str) -> Optional[Video]:
        """Return the record, or None if there is no such id."""

    @abstractmethod
    def list(
        self, search: Optional[str] = None, category: Optional[str] = None
    ) -> List[Video]:
        """Filtered records, newest upload first."""

    @abstractmethod
    def create(self, data: VideoCreate) -> Video:
        """Assign an id and upload date and store the record."""

    @abstractmethod
    def update(self, video_id: str, updates: VideoUpdate) -> Optional[Video]:
        """Apply the fields set on `updates`. None if the id is unknown."""

    @abstractmethod
    def delete(self, video_id: str) -> bool:
        """True if a record was removed."""

    def close(self) -> None:
        pass


def filter_videos(
    videos: Iterable[Video],
    search: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Video]:
    result = list(videos)

    if search:
        query = search.lower()
        result = [
            v
            for v in result
            if query in v.title.lower() or query in v.description.lower()
        ]

    if category and category != ALL_CATEGORIES:
        result = [v for v in result if v.category == category]

    result.sort(key=lambda v: v.upload_date, reverse=True)
    return result


class MemoryVideoStore(VideoStore):
    def __init__(self) -> None:
        self._videos: Dict[str, Video] = {}

    def get(self, video_id: str) -> Optional[Video]:
        return self._videos.get(video_id)

    def list(
        self, search: Optional[str] = None, category: Optional[str] = None
    ) -> List[Video]:
        return filter_videos(self._videos.values(), search, category)

    def create(self, data: VideoCreate) -> Video:
        fields = data.model_dump()
        fields["category"] = fields.get("category") or DEFAULT_CATEGORY
        fields["description"] = fields.get("description") or ""
        video = Video(
            **fields,
            id=str(uuid.uuid4()),
            upload_date=datetime.now(timezone.utc),
        )
        self._videos[video.id] = video
        self._changed()
        return video

    def update(self, video_id: str, updates: VideoUpdate) -> Optional[Video]:
        video = self._videos.get(video_id)
        if video is None:
            return None

        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        updated = video.model_copy(update=changes)
        self._videos[video_id] = updated
        self._changed()
        return updated

    def delete(self, video_id: str) -> bool:
        if self._videos.pop(video_id, None) is None:
            return False
        self._changed()
        return True

    def _changed(self) -> None:
        pass


class JsonIndexVideoStore(MemoryVideoStore):
    """
    Memory store mirrored to a JSON index file. The whole index is
    rewritten after every mutation.
    """

    def __init__(self, index_path: Path) -> None:
        super().__init__()
        self.index_path = Path(index_path)
        self._ensure_index()
        for vid, raw in self._load_index().items():
            self._videos[vid] = Video.model_validate(raw)

    def _ensure_index(self) -> None:
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.index_path.exists():
            self.index_path.write_text("{}", encoding="utf-8")

    def _load_index(self) -> Dict[str, dict]:
        return json.loads(self.index_path.read_text(encoding="utf-8"))

    def _save_index(self) -> None:
        idx = {
            vid: video.model_dump(mode="json", by_alias=True)
            for vid, video in self._videos.items()
        }
        self.index_path.write_text(
            json.dumps(idx, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def _changed(self) -> None:
        self._save_index()

    def close(self) -> None:
        self._save_index()


def create_store(settings: Settings) -> VideoStore:
    backend = settings.store_backend.lower()
    if backend == "memory":
        return MemoryVideoStore()
    if backend == "json":
        logger.info("Using JSON index store at %s", settings.index_path)
        return JsonIndexVideoStore(settings.index_path)
    raise ValueError(f"Unknown store backend: {settings.store_backend!r}")
