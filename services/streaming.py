import logging
import os
import stat
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Tuple
from urllib.parse import quote

import aiofiles
import anyio
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from core.config import CHUNK_SIZE, STREAM_CONTENT_TYPE
from core.errors import FileMissing
from services.range_parser import ByteRange

logger = logging.getLogger(__name__)


class MediaFile:
    """
    A video file opened for one request. The size comes from the open
    descriptor, so it always matches the bytes this handle can read.
    """

    def __init__(self, path: Path, handle, size: int, content_type: str) -> None:
        self.path = path
        self.handle = handle
        self.size = size
        self.content_type = content_type
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # must finish even when the request task is being cancelled
        with anyio.CancelScope(shield=True):
            await self.handle.close()


async def open_media(
    path: Path, content_type: str = STREAM_CONTENT_TYPE
) -> MediaFile:
    """
    Open the file and read its size in one step. A missing file surfaces
    here as FileMissing rather than through a separate exists() check.
    """
    try:
        handle = await aiofiles.open(path, "rb")
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        raise FileMissing(path)

    try:
        st = os.fstat(handle.fileno())
    except OSError:
        await handle.close()
        raise
    if not stat.S_ISREG(st.st_mode):
        await handle.close()
        raise FileMissing(path)

    return MediaFile(path, handle, st.st_size, content_type)


async def file_iterator(
    media: MediaFile, start: int, end: int, chunk_size: int = CHUNK_SIZE
) -> AsyncIterator[bytes]:
    read_bytes = 0
    to_read = end - start + 1
    try:
        await media.handle.seek(start)
        while read_bytes < to_read:
            data = await media.handle.read(min(chunk_size, to_read - read_bytes))
            if not data:
                logger.warning(
                    "%s ended after %d of %d bytes (file shrank?)",
                    media.path,
                    read_bytes,
                    to_read,
                )
                break
            read_bytes += len(data)
            yield data
    except OSError:
        logger.exception(
            "Read failed on %s at offset %d, aborting stream",
            media.path,
            start + read_bytes,
        )
    finally:
        await media.close()

    if read_bytes == to_read:
        logger.debug("Streamed %s bytes %d-%d", media.path, start, end)


def range_headers(
    file_size: int, byte_range: Optional[ByteRange] = None
) -> Tuple[int, Dict[str, str]]:
    """Status code and length headers for a full (200) or partial (206) body."""
    if byte_range is None:
        return 200, {
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
        }
    return 206, {
        "Content-Range": byte_range.content_range(file_size),
        "Accept-Ranges": "bytes",
        "Content-Length": str(byte_range.length),
    }


class MediaStreamResponse(StreamingResponse):
    """
    200 for the whole file or 206 for a single byte range.
    The file handle is released when the body is done, when the client
    goes away, or when reading fails.
    """

    def __init__(
        self,
        media: MediaFile,
        byte_range: Optional[ByteRange] = None,
        chunk_size: int = CHUNK_SIZE,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.media = media
        self.byte_range = byte_range

        if byte_range is None:
            start, end = 0, media.size - 1
        else:
            start, end = byte_range.start, byte_range.end
        status_code, base_headers = range_headers(media.size, byte_range)
        base_headers.update(headers or {})

        super().__init__(
            file_iterator(media, start, end, chunk_size),
            status_code=status_code,
            headers=base_headers,
            media_type=media.content_type,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (ClientDisconnect, OSError):
            logger.info("Client disconnected while streaming %s", self.media.path)
        finally:
            await self.media.close()


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"{disposition}; filename*=utf-8''{quoted}"
    return f'{disposition}; filename="{filename}"'
