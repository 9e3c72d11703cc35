import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, Response, UploadFile
from pydantic import ValidationError

from api.deps import get_settings, get_store
from core.config import DEFAULT_CATEGORY, STREAM_CONTENT_TYPE, Settings
from core.errors import RangeUnsatisfiable, RecordNotFound, UploadRejected
from schemas.video import DeleteResult, ErrorBody, Video, VideoCreate, VideoUpdate
from services.range_parser import parse_range
from services.streaming import (
    MediaFile,
    MediaStreamResponse,
    content_disposition,
    open_media,
    range_headers,
)
from services.video_service import (
    guess_mime,
    probe_duration,
    remove_file,
    save_upload,
    video_path,
)
from services.video_store import VideoStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])

NOT_FOUND = {404: {"model": ErrorBody}}


def _lookup(store: VideoStore, video_id: str) -> Video:
    video = store.get(video_id)
    if video is None:
        raise RecordNotFound()
    return video


async def _open_video(
    video: Video, settings: Settings, content_type: str = STREAM_CONTENT_TYPE
) -> MediaFile:
    return await open_media(video_path(settings, video.filename), content_type)


@router.get("", response_model=List[Video])
def list_videos(
    search: Optional[str] = None,
    category: Optional[str] = None,
    store: VideoStore = Depends(get_store),
):
    return store.list(search=search, category=category)


@router.get("/{video_id}", response_model=Video, responses=NOT_FOUND)
def get_video(video_id: str, store: VideoStore = Depends(get_store)):
    return _lookup(store, video_id)


@router.post("", status_code=201, response_model=Video)
async def upload_video(
    file: Optional[UploadFile] = File(None),
    title: str = Form(...),
    description: str = Form(""),
    category: str = Form(DEFAULT_CATEGORY),
    duration: str = Form(""),
    thumbnail_url: str = Form("", alias="thumbnailUrl"),
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    if file is None:
        raise UploadRejected("No file uploaded")

    stored_name, size = await save_upload(file, settings)
    path = video_path(settings, stored_name)

    try:
        duration = duration.strip() or await probe_duration(path)
        data = VideoCreate(
            title=title.strip(),
            description=description,
            filename=stored_name,
            original_filename=file.filename or stored_name,
            file_size=size,
            duration=duration,
            category=category or DEFAULT_CATEGORY,
            thumbnail_url=thumbnail_url,
        )
        video = store.create(data)
    except ValidationError as e:
        remove_file(path)
        raise UploadRejected(f"Invalid video metadata: {e.errors()[0]['msg']}")
    except BaseException:
        remove_file(path)
        raise

    logger.info("Created video %s (%r)", video.id, video.title)
    return video


@router.get(
    "/{video_id}/stream",
    responses={**NOT_FOUND, 416: {"description": "Range not satisfiable"}},
)
async def stream_video(
    video_id: str,
    range: Optional[str] = Header(None),
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    video = _lookup(store, video_id)
    media = await _open_video(video, settings)

    try:
        byte_range = parse_range(range, media.size)
    except RangeUnsatisfiable:
        await media.close()
        raise

    return MediaStreamResponse(media, byte_range, chunk_size=settings.chunk_size)


@router.head("/{video_id}/stream")
async def head_stream(
    video_id: str,
    range: Optional[str] = Header(None),
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    video = _lookup(store, video_id)
    media = await _open_video(video, settings)
    await media.close()

    status_code, headers = range_headers(media.size, parse_range(range, media.size))
    headers["Content-Type"] = media.content_type
    return Response(status_code=status_code, headers=headers)


@router.get("/{video_id}/download", responses=NOT_FOUND)
async def download_video(
    video_id: str,
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    video = _lookup(store, video_id)
    content_type = guess_mime(video.original_filename, STREAM_CONTENT_TYPE)
    media = await _open_video(video, settings, content_type)

    return MediaStreamResponse(
        media,
        chunk_size=settings.chunk_size,
        headers={"Content-Disposition": content_disposition(video.original_filename)},
    )


@router.patch("/{video_id}", response_model=Video, responses=NOT_FOUND)
def update_video(
    video_id: str,
    updates: VideoUpdate,
    store: VideoStore = Depends(get_store),
):
    video = store.update(video_id, updates)
    if video is None:
        raise RecordNotFound()
    return video


@router.delete("/{video_id}", response_model=DeleteResult, responses=NOT_FOUND)
def delete_video(
    video_id: str,
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    video = _lookup(store, video_id)
    if not store.delete(video_id):
        raise RecordNotFound()

    if not remove_file(video_path(settings, video.filename)):
        logger.warning("Deleted video %s had no file on disk", video_id)
    logger.info("Deleted video %s", video_id)

    return DeleteResult(success=True)
