import asyncio
import logging
import mimetypes
import os
import uuid
from pathlib import Path

import aiofiles
import cv2
from fastapi import UploadFile

from core.config import CHUNK_SIZE, Settings
from core.errors import UploadRejected

logger = logging.getLogger(__name__)


def ensure_dirs(settings: Settings) -> None:
    settings.video_dir.mkdir(parents=True, exist_ok=True)


def video_path(settings: Settings, stored_name: str) -> Path:
    # stored names are generated by us, but never let one escape the upload dir
    return settings.video_dir / Path(stored_name).name


def format_duration(seconds: float) -> str:
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def get_video_duration(path: str) -> str:
    """
    Duration as "M:SS" / "H:MM:SS", or "" if OpenCV can't read the file.
    """
    duration = ""
    try:
        cap = cv2.VideoCapture(path)
        if cap.isOpened():
            fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
            frames = float(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
            if fps > 0 and frames > 0:
                duration = format_duration(frames / fps)
        cap.release()
    except Exception as e:
        logger.warning("Could not read video metadata from %s: %s", path, e)
    return duration


async def probe_duration(path: Path) -> str:
    """
    Run the OpenCV probe in a threadpool so we don't block the event loop.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, get_video_duration, str(path))


async def save_upload(file: UploadFile, settings: Settings) -> tuple[str, int]:
    """
    Write an uploaded video under a fresh name. Returns (stored_name, size).
    Raises UploadRejected for non-video content or oversized files.
    """
    content_type = file.content_type or ""
    if not content_type.startswith("video/"):
        raise UploadRejected("Only video files are allowed", status_code=415)

    ext = os.path.splitext(file.filename or "")[1] or ".mp4"
    stored_name = f"{uuid.uuid4()}{ext}"
    path = video_path(settings, stored_name)

    size = 0
    try:
        async with aiofiles.open(path, "wb") as out:
            while chunk := await file.read(CHUNK_SIZE):
                size += len(chunk)
                if size > settings.max_upload_size:
                    raise UploadRejected("File too large", status_code=413)
                await out.write(chunk)
    except BaseException:
        remove_file(path)
        raise
    finally:
        await file.close()

    logger.info("Stored upload %r as %s (%d bytes)", file.filename, stored_name, size)
    return stored_name, size


def remove_file(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def guess_mime(path: str, fallback: str = "application/octet-stream") -> str:
    m, _ = mimetypes.guess_type(path)
    return m or fallback
