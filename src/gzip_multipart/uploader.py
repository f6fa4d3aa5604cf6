from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from pathlib import Path

import httpx

from gzip_multipart.multipart import MultipartBodyAssembler, generate_boundary
from gzip_multipart.types import Metadata

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


async def iter_file(path: Path, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    with open(path, "rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


class MultipartUploader:
    """
    Sends a metadata record and optional log attachment as a
    multipart/form-data POST.

    The body is assembled into a temporary file and streamed from disk,
    so the request never holds the full body in memory. The file is
    removed once the request finishes, whether or not it succeeded.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        assembler: MultipartBodyAssembler | None = None,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
    ) -> None:
        self.client = client
        self.assembler = assembler or MultipartBodyAssembler()
        self.chunk_size = chunk_size

    async def send(
        self,
        url: str | httpx.URL,
        metadata: Metadata,
        attachment: bytes | str | None = None,
    ) -> httpx.Response:
        logger.info("Preparing multipart request to: %s", url)

        boundary = generate_boundary()
        body = self.assembler.build(boundary, metadata, attachment)
        if body.attachment_skipped:
            logger.warning("Attachment compressed to an empty payload; sending without logs")

        path = body.path
        try:
            size = path.stat().st_size
            logger.debug("Multipart body: %d bytes, parts=%s", size, body.part_names)
            async with aclosing(iter_file(path, self.chunk_size)) as chunks:
                response = await self.client.post(
                    url,
                    content=chunks,
                    headers={
                        "Content-Type": body.content_type,
                        "Accept": "application/json",
                        "Content-Length": str(size),
                    },
                )
        finally:
            path.unlink(missing_ok=True)
            logger.debug("Cleaned up temporary multipart file")

        logger.info("Multipart request completed with status: %d", response.status_code)
        return response
