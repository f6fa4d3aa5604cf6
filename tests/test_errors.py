import zlib

import pytest

from gzip_multipart.errors import (
    Z_BUF_ERROR,
    Z_DATA_ERROR,
    Z_MEM_ERROR,
    Z_NEED_DICT,
    Z_STREAM_ERROR,
    Z_VERSION_ERROR,
    GzipError,
    GzipErrorKind,
    classify,
    status_from_zlib_error,
)


@pytest.mark.parametrize(
    "code, kind",
    [
        (Z_STREAM_ERROR, GzipErrorKind.STREAM),
        (Z_DATA_ERROR, GzipErrorKind.DATA),
        (Z_MEM_ERROR, GzipErrorKind.MEMORY),
        (Z_BUF_ERROR, GzipErrorKind.BUFFER),
        (Z_VERSION_ERROR, GzipErrorKind.VERSION),
    ],
)
def test_classify_named_codes(code, kind):
    assert classify(code) is kind


@pytest.mark.parametrize("code", [Z_NEED_DICT, -1, -99, 42])
def test_classify_unknown_keeps_code(code):
    assert classify(code) is GzipErrorKind.UNKNOWN

    error = GzipError(code, "weird")
    assert error.kind is GzipErrorKind.UNKNOWN
    assert error.code == code


def test_gzip_error_defaults_message():
    error = GzipError(Z_BUF_ERROR)
    assert error.message == "Unknown gzip error"
    assert str(error) == "Unknown gzip error"
    assert "buffer" in repr(error)


def test_from_zlib_error_parses_status():
    exc = zlib.error("Error -3 while compressing data: invalid data")
    assert status_from_zlib_error(exc) == Z_DATA_ERROR

    error = GzipError.from_zlib_error(exc)
    assert error.kind is GzipErrorKind.DATA
    assert error.message == "Error -3 while compressing data: invalid data"


def test_from_zlib_error_without_status_is_stream_error():
    exc = zlib.error("inconsistent stream state")
    assert status_from_zlib_error(exc) is None
    assert GzipError.from_zlib_error(exc).kind is GzipErrorKind.STREAM
