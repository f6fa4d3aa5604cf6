from __future__ import annotations

import json
import os
import re
import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from gzip_multipart.compressor import CompressionLevel
from gzip_multipart.encoder import StreamingDeflateEncoder
from gzip_multipart.types import Metadata, Sink, Source

CRLF = b"\r\n"
# RFC 2046 bchars; a boundary may not end with a space
_BOUNDARY_PATTERN = re.compile(r"[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]")
READ_CHUNK_SIZE = 64 * 1024

METADATA_PART_NAME = "requestBody"
METADATA_CONTENT_TYPE = "application/json; charset=utf-8"
ATTACHMENT_PART_NAME = "logs"
ATTACHMENT_CONTENT_TYPE = "application/gzip"


def generate_boundary() -> str:
    return str(uuid.uuid4())


def validate_boundary(boundary: str) -> str:
    """Checks the RFC 2046 boundary grammar: 1-70 characters from the allowed set."""
    if not isinstance(boundary, str) or _BOUNDARY_PATTERN.fullmatch(boundary) is None:
        raise ValueError(f"Invalid multipart boundary: {boundary!r}")
    return boundary


def multipart_content_type(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"


def attachment_filename(moment: datetime) -> str:
    """
    Builds ``log-<ISO 8601>.log.gz`` with ':' replaced by '.',
    since some filesystems reject colons in names.
    """
    stamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"log-{stamp.replace(':', '.')}.log.gz"


def encode_metadata(metadata: Metadata) -> bytes:
    if isinstance(metadata, (bytes, bytearray)):
        return bytes(metadata)
    return json.dumps(metadata, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class MultipartPartWriter:
    """Serializes single multipart/form-data parts onto a byte sink."""

    def __init__(self, read_chunk_size: int = READ_CHUNK_SIZE) -> None:
        if read_chunk_size <= 0:
            raise ValueError("read_chunk_size must be positive")
        self.read_chunk_size = read_chunk_size

    def write_part(
        self,
        sink: Sink,
        boundary: str,
        name: str,
        content_type: str,
        body: bytes | Source,
        filename: str | None = None,
    ) -> int:
        """
        Writes delimiter, headers, blank line, body and trailing CRLF.
        Returns the number of body bytes written. The sink is neither
        flushed nor closed.
        """
        validate_boundary(boundary)
        disposition = f'form-data; name="{self._header_value(name, boundary)}"'
        if filename is not None:
            disposition += f'; filename="{self._header_value(filename, boundary)}"'

        content_type = self._header_value(content_type, boundary)

        self._write_all(sink, b"--" + boundary.encode("ascii") + CRLF)
        self._write_all(sink, f"Content-Disposition: {disposition}".encode("utf-8") + CRLF)
        self._write_all(sink, f"Content-Type: {content_type}".encode("utf-8") + CRLF)
        self._write_all(sink, CRLF)

        if isinstance(body, (bytes, bytearray, memoryview)):
            self._write_all(sink, body)
            written = len(body)
        else:
            written = self._copy(body, sink)

        self._write_all(sink, CRLF)
        return written

    def write_closing(self, sink: Sink, boundary: str) -> None:
        validate_boundary(boundary)
        self._write_all(sink, b"--" + boundary.encode("ascii") + b"--" + CRLF)

    def _copy(self, source: Source, sink: Sink) -> int:
        total = 0
        while True:
            chunk = source.read(self.read_chunk_size)
            if not chunk:
                return total
            self._write_all(sink, chunk)
            total += len(chunk)

    @staticmethod
    def _write_all(sink: Sink, data: bytes) -> None:
        # raw sinks may accept only part of a write; None means everything was taken
        view = memoryview(data)
        while view:
            count = sink.write(view)
            if count is None:
                return
            if count <= 0:
                raise OSError("Sink accepted no bytes")
            view = view[count:]

    @staticmethod
    def _header_value(value: str, boundary: str) -> str:
        if "\r" in value or "\n" in value or '"' in value:
            raise ValueError(f"Illegal character in multipart header value: {value!r}")
        if boundary in value:
            raise ValueError("Multipart header value must not contain the boundary")
        return value


@dataclass
class AssembledBody:
    sink: Sink
    boundary: str
    part_names: list[str] = field(default_factory=list)
    attachment_skipped: bool = False
    path: Path | None = None

    @property
    def content_type(self) -> str:
        return multipart_content_type(self.boundary)


class MultipartBodyAssembler:
    """
    Builds the two-part upload body: JSON metadata plus an optional
    gzip-compressed log attachment.

    Without an explicit sink the body is written to a fresh temporary file.
    The caller owns that file and must delete it after upload; the assembler
    only deletes it itself when the build fails.
    """

    def __init__(
        self,
        encoder: StreamingDeflateEncoder | None = None,
        writer: MultipartPartWriter | None = None,
        level: CompressionLevel = CompressionLevel.DEFAULT,
        temp_dir: str | os.PathLike[str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.encoder = encoder or StreamingDeflateEncoder()
        self.writer = writer or MultipartPartWriter()
        self.level = level
        self.temp_dir = temp_dir
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def build(
        self,
        boundary: str,
        metadata: Metadata,
        attachment: bytes | str | None = None,
        sink: Sink | None = None,
    ) -> AssembledBody:
        """
        Writes the metadata part, the compressed attachment part when there is
        one, and the closing delimiter. A text attachment is encoded as UTF-8.

        :raises GzipError: If the attachment cannot be compressed.
        :raises TypeError: If ``metadata`` is not JSON serializable.
        :raises OSError: On temp file or sink write failures.
        :raises ValueError: If ``boundary`` is not a valid RFC 2046 boundary.
        """
        validate_boundary(boundary)
        if isinstance(attachment, str):
            attachment = attachment.encode("utf-8")
        json_body = encode_metadata(metadata)
        compressed = self.encoder.compress(attachment, self.level) if attachment else b""

        def write(target: Sink) -> AssembledBody:
            body = self._begin(target, boundary, json_body)
            if compressed:
                filename = attachment_filename(self.clock())
                self._attach(body, compressed, filename)
            elif attachment:
                # non-empty input compressed to nothing; omit the part
                body.attachment_skipped = True
            self.writer.write_closing(target, boundary)
            return body

        return self._assemble(sink, write)

    def build_from_file(
        self,
        boundary: str,
        metadata: Metadata,
        log_path: str | os.PathLike[str] | None,
        sink: Sink | None = None,
    ) -> AssembledBody:
        """
        Like :meth:`build`, with the attachment taken from a log file on disk.

        A file that is already gzipped (``.gz``) is streamed into the body in
        chunks under its own name; any other file is read and compressed.
        An empty ``.gz`` file is omitted like any empty attachment.
        """
        if log_path is None:
            return self.build(boundary, metadata, None, sink)
        path = Path(log_path)
        if path.suffix.lower() != ".gz":
            return self.build(boundary, metadata, path.read_bytes(), sink)
        validate_boundary(boundary)
        json_body = encode_metadata(metadata)

        def write(target: Sink) -> AssembledBody:
            body = self._begin(target, boundary, json_body)
            if path.stat().st_size > 0:
                with open(path, "rb") as source:
                    self._attach(body, source, path.name)
            self.writer.write_closing(target, boundary)
            return body

        return self._assemble(sink, write)

    def _begin(self, sink: Sink, boundary: str, json_body: bytes) -> AssembledBody:
        body = AssembledBody(sink=sink, boundary=boundary)
        self.writer.write_part(sink, boundary, METADATA_PART_NAME, METADATA_CONTENT_TYPE, json_body)
        body.part_names.append(METADATA_PART_NAME)
        return body

    def _attach(self, body: AssembledBody, content: bytes | Source, filename: str) -> None:
        self.writer.write_part(
            body.sink,
            body.boundary,
            ATTACHMENT_PART_NAME,
            ATTACHMENT_CONTENT_TYPE,
            content,
            filename=filename,
        )
        body.part_names.append(ATTACHMENT_PART_NAME)

    def _assemble(
        self,
        sink: Sink | None,
        write: Callable[[Sink], AssembledBody],
    ) -> AssembledBody:
        if sink is not None:
            return write(sink)

        handle, path = self._create_file()
        try:
            with handle:
                body = write(handle)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        body.path = path
        return body

    def _create_file(self) -> tuple[BinaryIO, Path]:
        # mkstemp names the file itself; the boundary never becomes part of a path
        fd, name = tempfile.mkstemp(prefix="multipart_", suffix=".body", dir=self.temp_dir)
        return os.fdopen(fd, "wb"), Path(name)
