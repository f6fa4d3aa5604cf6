from __future__ import annotations

import zlib
from contextlib import closing
from dataclasses import dataclass

from gzip_multipart.compressor import GZIP_WBITS, CompressionLevel, DeflateStream
from gzip_multipart.errors import Z_MEM_ERROR, Z_STREAM_ERROR, GzipError
from gzip_multipart.types import Stream, StreamFactory

CHUNK_SIZE = 1 << 14
INPUT_CHUNK_SIZE = 1 << 16


class OutputBuffer:
    """
    Growable output buffer for a compression stream.

    Capacity grows one chunk at a time, only when everything allocated so far
    has been filled. ``capacity >= total_out`` holds at all times.
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.total_out = 0
        self._data = bytearray()

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def available(self) -> int:
        return self.capacity - self.total_out

    def grow(self) -> None:
        self._data.extend(bytes(self.chunk_size))

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        offset = 0
        while offset < len(view):
            if self.total_out >= self.capacity:
                self.grow()
            count = min(self.available, len(view) - offset)
            self._data[self.total_out : self.total_out + count] = view[offset : offset + count]
            self.total_out += count
            offset += count

    def truncate(self) -> bytes:
        """Drops unused capacity and returns exactly the bytes produced."""
        del self._data[self.total_out :]
        return bytes(self._data)


@dataclass(frozen=True)
class EncodedOutput:
    data: bytes
    capacity: int


class StreamingDeflateEncoder:
    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        input_chunk_size: int = INPUT_CHUNK_SIZE,
        stream_factory: StreamFactory = DeflateStream,
    ) -> None:
        """
        :param chunk_size: Output buffer growth step in bytes.
        :param input_chunk_size: Largest input slice handed to the stream at once.
        :param stream_factory: Called as ``factory(level, wbits)`` to open a stream.
        """
        if input_chunk_size <= 0:
            raise ValueError("input_chunk_size must be positive")
        self.chunk_size = chunk_size
        self.input_chunk_size = input_chunk_size
        self.stream_factory = stream_factory

    def compress(self, data: bytes, level: CompressionLevel = CompressionLevel.DEFAULT) -> bytes:
        """
        Compresses ``data`` into a complete gzip member.

        Empty input returns ``b""`` without opening a stream.

        :raises GzipError: If the stream fails to open, compress, or close.
        """
        return self.encode(data, level).data

    def encode(self, data: bytes, level: CompressionLevel = CompressionLevel.DEFAULT) -> EncodedOutput:
        """Like :meth:`compress`, also reporting the output buffer capacity reached."""
        if not data:
            return EncodedOutput(b"", 0)

        stream = self._open(level)
        buffer = OutputBuffer(self.chunk_size)
        try:
            with closing(stream):
                self._deflate(stream, memoryview(data), buffer)
        except zlib.error as exc:
            raise GzipError.from_zlib_error(exc) from exc

        capacity = buffer.capacity
        return EncodedOutput(buffer.truncate(), capacity)

    def _open(self, level: CompressionLevel) -> Stream:
        try:
            return self.stream_factory(int(level), GZIP_WBITS)
        except ValueError as exc:
            raise GzipError(Z_STREAM_ERROR, str(exc)) from exc
        except MemoryError as exc:
            raise GzipError(Z_MEM_ERROR, "Out of memory while opening gzip stream") from exc
        except zlib.error as exc:
            raise GzipError.from_zlib_error(exc) from exc

    def _deflate(self, stream: Stream, view: memoryview, buffer: OutputBuffer) -> None:
        total_in = 0
        while total_in < len(view):
            end = min(total_in + self.input_chunk_size, len(view))
            buffer.write(stream.compress(view[total_in:end]))
            total_in = end
        buffer.write(stream.flush())
