import re
from dataclasses import dataclass
from typing import Optional

from core.errors import RangeUnsatisfiable

_RANGE_SPEC_RE = re.compile(r"^(\d*)-(\d*)$", re.ASCII)


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, file_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{file_size}"


def parse_range(range_header: Optional[str], file_size: int) -> Optional[ByteRange]:
    """
    Parse a header like: Range: bytes=start-end
    Returns None when no range was requested and the whole file should be
    served. Raises RangeUnsatisfiable for anything that cannot be served
    as a single byte range of this file.

    Supported forms: "bytes=N-M" (M clamped to the last byte), "bytes=N-"
    and the suffix form "bytes=-N". Multiple ranges are rejected.
    """
    if range_header is None or not range_header.strip():
        return None

    units, sep, spec = range_header.strip().partition("=")
    if not sep or units.strip().lower() != "bytes":
        raise RangeUnsatisfiable(file_size, "Unsupported range unit")

    spec = spec.strip()
    if "," in spec:
        raise RangeUnsatisfiable(file_size, "Multiple ranges are not supported")

    m = _RANGE_SPEC_RE.match(spec.replace(" ", ""))
    if not m:
        raise RangeUnsatisfiable(file_size, "Malformed range")
    start_str, end_str = m.groups()

    if file_size <= 0:
        raise RangeUnsatisfiable(file_size, "Empty file")
    last = file_size - 1

    if start_str == "":
        # suffix range: last N bytes
        if end_str == "":
            raise RangeUnsatisfiable(file_size, "Malformed range")
        suffix = int(end_str)
        if suffix == 0:
            raise RangeUnsatisfiable(file_size, "Empty suffix range")
        return ByteRange(max(file_size - suffix, 0), last)

    start = int(start_str)
    if start > last:
        raise RangeUnsatisfiable(file_size, "Range starts beyond end of file")

    if end_str == "":
        return ByteRange(start, last)

    end = int(end_str)
    if end < start:
        raise RangeUnsatisfiable(file_size, "Range ends before it starts")
    return ByteRange(start, min(end, last))
