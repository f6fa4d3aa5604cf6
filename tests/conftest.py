import zlib
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from gzip_multipart.multipart import MultipartBodyAssembler

FIXED_MOMENT = datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)


# --- Helpers ---

def decompress_gzip(data: bytes) -> bytes:
    # 16 + zlib.MAX_WBITS accepts gzip framing only
    return zlib.decompress(data, 16 + zlib.MAX_WBITS)


def split_parts(body: bytes, boundary: str) -> list[tuple[dict[str, str], bytes]]:
    """Splits a multipart body into (headers, content) pairs, checking the framing."""
    delimiter = b"--" + boundary.encode()
    closing = delimiter + b"--\r\n"
    assert body.endswith(closing)

    sections = body[: -len(closing)].split(delimiter + b"\r\n")
    assert sections[0] == b""

    parts = []
    for section in sections[1:]:
        head, separator, content = section.partition(b"\r\n\r\n")
        assert separator
        assert content.endswith(b"\r\n")
        headers = dict(line.split(": ", 1) for line in head.decode().split("\r\n"))
        parts.append((headers, content[:-2]))
    return parts


class EmptyStream:
    """Stream double that never produces output."""

    def __init__(self, level, wbits):
        self.closed = False

    def compress(self, data):
        return b""

    def flush(self):
        return b""

    def close(self):
        self.closed = True


# --- Submission endpoint ---

async def submit(request: Request):
    """Parses the upload with Starlette's multipart parser and echoes what it saw."""
    form = await request.form()
    logs = form.get("logs")
    payload = {
        "parts": list(form.keys()),
        "metadata": form["requestBody"],
        "accept": request.headers.get("accept"),
    }
    if logs is not None:
        payload["filename"] = logs.filename
        payload["logs_content_type"] = logs.content_type
        payload["logs"] = decompress_gzip(await logs.read()).decode()
    return JSONResponse(payload, status_code=201)


# --- Fixtures ---

@pytest.fixture
def app():
    return Starlette(routes=[Route("/submit", submit, methods=["POST"])])


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver"
    ) as c:
        yield c


@pytest.fixture
def assembler(tmp_path):
    return MultipartBodyAssembler(temp_dir=tmp_path, clock=lambda: FIXED_MOMENT)
