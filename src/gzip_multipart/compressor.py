import zlib
from enum import IntEnum

# wbits=31 (16+15): zlib generates gzip header & trailer
GZIP_WBITS = zlib.MAX_WBITS + 16


class CompressionLevel(IntEnum):
    NONE = zlib.Z_NO_COMPRESSION
    FASTEST = zlib.Z_BEST_SPEED
    BEST = zlib.Z_BEST_COMPRESSION
    DEFAULT = zlib.Z_DEFAULT_COMPRESSION


class DeflateStream:
    """
    A single-use gzip-framed deflate stream.

    Owned by one compression call: created, fed, finished, then closed.
    """

    def __init__(self, level: int = CompressionLevel.DEFAULT, wbits: int = GZIP_WBITS) -> None:
        """
        :param level: zlib compression level (-1, 0-9).
        :param wbits: Window bits. Values 25-31 emit gzip framing.
        """
        self.level = level
        self.wbits = wbits
        self._compressobj = zlib.compressobj(
            level, zlib.DEFLATED, wbits, zlib.DEF_MEM_LEVEL, zlib.Z_DEFAULT_STRATEGY
        )
        self.finished = False

    @property
    def closed(self) -> bool:
        return self._compressobj is None

    def compress(self, data: bytes) -> bytes:
        """Compresses a chunk of data."""
        return self._active().compress(data)

    def flush(self) -> bytes:
        """Finishes the stream, returning the remaining output and the gzip trailer."""
        output = self._active().flush(zlib.Z_FINISH)
        self.finished = True
        return output

    def close(self) -> None:
        self._compressobj = None

    def _active(self) -> "zlib._Compress":
        if self._compressobj is None:
            raise zlib.error("Error -2 while compressing data: stream is closed")
        if self.finished:
            raise zlib.error("Error -2 while compressing data: stream already finished")
        return self._compressobj

    def __enter__(self) -> "DeflateStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
