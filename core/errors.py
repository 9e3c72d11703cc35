import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class VideoLibraryError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class RecordNotFound(VideoLibraryError):
    status_code = 404
    message = "Video not found"


class FileMissing(VideoLibraryError):
    """Metadata exists but the file is gone from disk."""

    status_code = 404
    message = "Video file not found"

    def __init__(self, path=None, message: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class RangeUnsatisfiable(VideoLibraryError):
    status_code = 416
    message = "Requested range not satisfiable"

    def __init__(self, file_size: int, message: Optional[str] = None) -> None:
        self.file_size = file_size
        super().__init__(message)


class UploadRejected(VideoLibraryError):
    status_code = 400

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.status_code = status_code
        super().__init__(message)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _library_error_handler(request: Request, exc: VideoLibraryError):
    if isinstance(exc, RangeUnsatisfiable):
        return Response(
            status_code=exc.status_code,
            headers={"Content-Range": f"bytes */{exc.file_size}"},
        )
    if isinstance(exc, FileMissing):
        # metadata and disk have drifted apart
        logger.warning(
            "File missing on disk for %s (path=%s)", request.url.path, exc.path
        )
    return error_response(exc.status_code, exc.message)


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{where}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return error_response(422, message)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VideoLibraryError, _library_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
