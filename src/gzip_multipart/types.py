from collections.abc import Callable, Mapping
from typing import Any, Protocol

# Multipart I/O types
Metadata = bytes | Mapping[str, Any]


class Sink(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


class Source(Protocol):
    def read(self, size: int = -1, /) -> bytes: ...


class Stream(Protocol):
    def compress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...

    def close(self) -> None: ...


StreamFactory = Callable[[int, int], Stream]
