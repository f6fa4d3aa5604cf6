import re
from enum import Enum
import zlib

# zlib status codes (zlib.h); the Python module does not export them.
Z_OK = 0
Z_STREAM_END = 1
Z_NEED_DICT = 2
Z_ERRNO = -1
Z_STREAM_ERROR = -2
Z_DATA_ERROR = -3
Z_MEM_ERROR = -4
Z_BUF_ERROR = -5
Z_VERSION_ERROR = -6

_STATUS_PATTERN = re.compile(r"Error (-?\d+)")


class GzipErrorKind(Enum):
    STREAM = "stream"
    DATA = "data"
    MEMORY = "memory"
    BUFFER = "buffer"
    VERSION = "version"
    UNKNOWN = "unknown"


_KINDS = {
    Z_STREAM_ERROR: GzipErrorKind.STREAM,
    Z_DATA_ERROR: GzipErrorKind.DATA,
    Z_MEM_ERROR: GzipErrorKind.MEMORY,
    Z_BUF_ERROR: GzipErrorKind.BUFFER,
    Z_VERSION_ERROR: GzipErrorKind.VERSION,
}


def classify(code: int) -> GzipErrorKind:
    """
    Maps a zlib status code to an error kind.
    Codes outside the five named failures map to UNKNOWN.
    """
    return _KINDS.get(code, GzipErrorKind.UNKNOWN)


def status_from_zlib_error(exc: zlib.error) -> int | None:
    """Extracts the numeric status from messages like 'Error -3 while compressing data'."""
    match = _STATUS_PATTERN.search(str(exc))
    if match is None:
        return None
    return int(match.group(1))


class GzipError(Exception):
    """
    Raised when a gzip stream reports a non-success status.

    :param code: The zlib status code that caused the failure.
    :param message: Human-readable description, usually zlib's own message.
    """

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code = code
        self.kind = classify(code)
        self.message = message or "Unknown gzip error"
        super().__init__(self.message)

    @classmethod
    def from_zlib_error(cls, exc: zlib.error) -> "GzipError":
        status = status_from_zlib_error(exc)
        if status is None:
            # zlib raises without a status when the stream object itself is unusable
            status = Z_STREAM_ERROR
        return cls(status, str(exc))

    def __repr__(self) -> str:
        return f"GzipError(kind={self.kind.value}, code={self.code}, message={self.message!r})"
