import logging

import anyio
import pytest

from conftest import VIDEO_BYTES
from services.range_parser import ByteRange
from services.streaming import MediaStreamResponse, open_media


def test_stream_without_range_returns_whole_file(client, video):
    r = client.get(f"/videos/{video.id}/stream")
    assert r.status_code == 200
    assert r.headers["Content-Length"] == "1000"
    assert r.headers["Content-Type"] == "video/mp4"
    assert "Content-Range" not in r.headers
    assert r.content == VIDEO_BYTES


def test_stream_partial_range(client, video):
    r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=200-299"})
    assert r.status_code == 206
    assert r.headers["Content-Range"] == "bytes 200-299/1000"
    assert r.headers["Content-Length"] == "100"
    assert r.headers["Accept-Ranges"] == "bytes"
    assert r.headers["Content-Type"] == "video/mp4"
    assert r.content == VIDEO_BYTES[200:300]


def test_stream_end_clamped(client, video):
    r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=900-2000"})
    assert r.status_code == 206
    assert r.headers["Content-Range"] == "bytes 900-999/1000"
    assert r.headers["Content-Length"] == "100"
    assert r.content == VIDEO_BYTES[900:]


def test_open_ended_range_covers_whole_file(client, video):
    r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=0-"})
    assert r.status_code == 206
    assert r.headers["Content-Range"] == "bytes 0-999/1000"
    assert r.content == VIDEO_BYTES


@pytest.mark.parametrize(
    "start,end",
    [(0, 0), (0, 63), (63, 64), (1, 998), (500, 777), (999, 999)],
)
def test_partial_body_matches_file_slice(client, video, start, end):
    r = client.get(
        f"/videos/{video.id}/stream", headers={"Range": f"bytes={start}-{end}"}
    )
    assert r.status_code == 206
    assert int(r.headers["Content-Length"]) == end - start + 1
    assert r.content == VIDEO_BYTES[start : end + 1]


def test_range_past_end_is_416(client, video):
    r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=1000-"})
    assert r.status_code == 416
    assert r.headers["Content-Range"] == "bytes */1000"
    assert r.content == b""


def test_multi_range_is_416(client, video):
    r = client.get(
        f"/videos/{video.id}/stream", headers={"Range": "bytes=0-10,20-30"}
    )
    assert r.status_code == 416
    assert r.headers["Content-Range"] == "bytes */1000"


def test_repeated_requests_are_identical(client, video):
    headers = {"Range": "bytes=10-500"}
    first = client.get(f"/videos/{video.id}/stream", headers=headers)
    second = client.get(f"/videos/{video.id}/stream", headers=headers)
    assert first.content == second.content == VIDEO_BYTES[10:501]


def test_stream_unknown_record(client):
    r = client.get("/videos/does-not-exist/stream")
    assert r.status_code == 404
    assert r.json() == {"error": "Video not found"}


def test_stream_file_deleted_from_disk(client, video, settings, caplog):
    (settings.video_dir / video.filename).unlink()
    with caplog.at_level(logging.WARNING):
        r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=0-10"})
    assert r.status_code == 404
    assert r.json() == {"error": "Video file not found"}
    assert any(
        rec.levelno == logging.WARNING and "File missing on disk" in rec.getMessage()
        for rec in caplog.records
    )


def test_unknown_record_is_not_logged_as_missing_file(client, caplog):
    with caplog.at_level(logging.WARNING):
        r = client.get("/videos/does-not-exist/stream")
    assert r.status_code == 404
    assert not any("File missing on disk" in rec.getMessage() for rec in caplog.records)


def test_stream_under_api_prefix(client, video):
    r = client.get(f"/api/videos/{video.id}/stream", headers={"Range": "bytes=0-9"})
    assert r.status_code == 206
    assert r.content == VIDEO_BYTES[:10]


def test_size_is_read_per_request(client, video, settings):
    (settings.video_dir / video.filename).write_bytes(b"short")
    r = client.get(f"/videos/{video.id}/stream")
    assert r.headers["Content-Length"] == "5"
    assert r.content == b"short"


def test_empty_file(client, video, settings):
    (settings.video_dir / video.filename).write_bytes(b"")
    r = client.get(f"/videos/{video.id}/stream")
    assert r.status_code == 200
    assert r.content == b""

    r = client.get(f"/videos/{video.id}/stream", headers={"Range": "bytes=0-"})
    assert r.status_code == 416
    assert r.headers["Content-Range"] == "bytes */0"


def test_head_stream(client, video):
    r = client.head(f"/videos/{video.id}/stream")
    assert r.status_code == 200
    assert r.headers["Content-Length"] == "1000"
    assert r.headers["Accept-Ranges"] == "bytes"


def test_head_stream_with_range(client, video):
    r = client.head(f"/videos/{video.id}/stream", headers={"Range": "bytes=900-2000"})
    assert r.status_code == 206
    assert r.headers["Content-Range"] == "bytes 900-999/1000"
    assert r.headers["Content-Length"] == "100"
    assert r.content == b""


def test_head_stream_unsatisfiable_range(client, video):
    r = client.head(f"/videos/{video.id}/stream", headers={"Range": "bytes=1000-"})
    assert r.status_code == 416
    assert r.headers["Content-Range"] == "bytes */1000"


class _Disconnecting:
    """ASGI send that fails once the client has received `limit` body chunks."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.chunks = []

    async def __call__(self, message) -> None:
        if message["type"] == "http.response.body" and message.get("body"):
            if len(self.chunks) >= self.limit:
                raise OSError("connection reset by peer")
            self.chunks.append(message["body"])


async def _receive():
    await anyio.sleep_forever()


@pytest.mark.anyio
async def test_client_disconnect_closes_file(settings, video):
    media = await open_media(settings.video_dir / video.filename)
    response = MediaStreamResponse(media, ByteRange(0, 999), chunk_size=100)
    send = _Disconnecting(limit=2)

    scope = {"type": "http", "asgi": {"spec_version": "2.4"}}
    await response(scope, _receive, send)

    assert media.closed
    assert media.handle.closed
    assert b"".join(send.chunks) == VIDEO_BYTES[:200]


@pytest.mark.anyio
async def test_completed_stream_closes_file(settings, video):
    media = await open_media(settings.video_dir / video.filename)
    response = MediaStreamResponse(media, ByteRange(10, 19), chunk_size=4)
    send = _Disconnecting(limit=100)

    await response({"type": "http", "asgi": {"spec_version": "2.4"}}, _receive, send)

    assert media.handle.closed
    assert send.chunks == [VIDEO_BYTES[10:14], VIDEO_BYTES[14:18], VIDEO_BYTES[18:20]]


@pytest.mark.anyio
async def test_read_error_aborts_stream_and_closes_file(settings, video, monkeypatch, caplog):
    media = await open_media(settings.video_dir / video.filename)

    async def failing_read(size=-1):
        raise OSError("I/O error")

    monkeypatch.setattr(media.handle, "read", failing_read)
    response = MediaStreamResponse(media, ByteRange(0, 999), chunk_size=100)
    send = _Disconnecting(limit=100)

    with caplog.at_level(logging.ERROR):
        await response({"type": "http", "asgi": {"spec_version": "2.4"}}, _receive, send)

    assert send.chunks == []
    assert media.handle.closed
    assert any("Read failed" in rec.getMessage() for rec in caplog.records)


@pytest.mark.anyio
async def test_file_truncated_mid_stream_ends_body_early(settings, video, caplog):
    path = settings.video_dir / video.filename
    media = await open_media(path)
    path.write_bytes(b"abc")

    response = MediaStreamResponse(media, ByteRange(0, 999), chunk_size=100)
    send = _Disconnecting(limit=100)

    with caplog.at_level(logging.WARNING):
        await response({"type": "http", "asgi": {"spec_version": "2.4"}}, _receive, send)

    assert b"".join(send.chunks) == b"abc"
    assert media.handle.closed
    assert any("ended after 3 of 1000 bytes" in rec.getMessage() for rec in caplog.records)
