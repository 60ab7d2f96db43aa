"""
Tests for the document fetcher service
"""

import gzip
import logging
import zlib
from unittest.mock import Mock

import pytest
import requests

from conftest import make_fetcher, stock_source_dict
from errors import (
    BodyDecodeError,
    EmptyBodyError,
    InvalidRequestError,
    RetriesExceededError,
    UnsupportedEncodingError,
)
from models import SourceConfig
from services.fetcher import USER_AGENT, DocumentFetcherService, get_decoded_http_body

PAGE = "<html><body><p>café</p></body></html>"


def raw_deflate(data: bytes) -> bytes:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


def source(**overrides) -> SourceConfig:
    return SourceConfig.model_validate(stock_source_dict(**overrides))


class TestGetDecodedHttpBody:

    @pytest.mark.parametrize("encoding", [None, "", "identity"])
    def test_uncompressed(self, encoding):
        assert get_decoded_http_body(PAGE.encode(), encoding) == PAGE

    def test_gzip(self):
        assert get_decoded_http_body(gzip.compress(PAGE.encode()), "gzip") == PAGE

    def test_deflate(self):
        assert get_decoded_http_body(raw_deflate(PAGE.encode()), "Deflate") == PAGE

    def test_charset(self):
        assert get_decoded_http_body(PAGE.encode("latin-1"), None, "iso-8859-1") == PAGE

    def test_unknown_charset_falls_back_to_utf8(self):
        assert get_decoded_http_body(PAGE.encode(), None, "no-such-charset") == PAGE

    def test_unsupported_encoding(self):
        with pytest.raises(UnsupportedEncodingError) as exc_info:
            get_decoded_http_body(b"data", "br")
        assert exc_info.value.encoding == "br"

    @pytest.mark.parametrize("encoding", ["gzip", "deflate"])
    def test_corrupt_body(self, encoding):
        with pytest.raises(BodyDecodeError):
            get_decoded_http_body(b"definitely not compressed", encoding)


class TestDocumentFetcherService:

    def test_fetch_success(self):
        fetcher, transport = make_fetcher(lambda request: (200, {"Content-Type": "text/html"}, PAGE.encode()))

        assert fetcher.fetch(source()) == PAGE
        assert len(transport.requests) == 1
        assert transport.requests[0].url == "https://example.com/quote"

    def test_headers(self):
        fetcher, transport = make_fetcher(lambda request: (200, {}, PAGE.encode()))

        fetcher.fetch(source(**{"http-headers": {"Accept-Language": "de"}}))

        headers = transport.requests[0].headers
        assert headers["User-Agent"] == USER_AGENT
        assert headers["Accept-Language"] == "de"
        assert headers["Accept-Encoding"] == "gzip"

    def test_configured_user_agent_wins(self):
        fetcher, transport = make_fetcher(lambda request: (200, {}, PAGE.encode()))

        fetcher.fetch(source(**{"http-headers": {"User-Agent": "custom/1.0"}}))

        assert transport.requests[0].headers["User-Agent"] == "custom/1.0"

    def test_gzip_response(self):
        body = gzip.compress(PAGE.encode())
        fetcher, _ = make_fetcher(lambda request: (200, {"Content-Encoding": "gzip"}, body))

        assert fetcher.fetch(source()) == PAGE

    def test_deflate_response_with_charset(self):
        body = raw_deflate(PAGE.encode("latin-1"))
        headers = {"Content-Encoding": "deflate", "Content-Type": "text/html; charset=ISO-8859-1"}
        fetcher, _ = make_fetcher(lambda request: (200, headers, body))

        assert fetcher.fetch(source()) == PAGE

    def test_unsupported_encoding_response(self):
        fetcher, _ = make_fetcher(lambda request: (200, {"Content-Encoding": "br"}, b"data"))

        with pytest.raises(UnsupportedEncodingError) as exc_info:
            fetcher.fetch(source())
        assert exc_info.value.url == "https://example.com/quote"

    def test_empty_body(self):
        fetcher, _ = make_fetcher(lambda request: (200, {}, b""))

        with pytest.raises(EmptyBodyError):
            fetcher.fetch(source())

    def test_retries_until_success(self):
        replies = iter([
            (503, {}, b"unavailable"),
            requests.ConnectionError("connection reset"),
            (200, {}, PAGE.encode()),
        ])
        fetcher, transport = make_fetcher(lambda request: next(replies))

        assert fetcher.fetch(source(**{"retries-count": 2})) == PAGE
        assert len(transport.requests) == 3

    def test_retries_exceeded(self):
        fetcher, transport = make_fetcher(lambda request: (500, {}, b"error"))

        with pytest.raises(RetriesExceededError) as exc_info:
            fetcher.fetch(source(**{"retries-count": 2}))

        assert len(transport.requests) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code == 500

    def test_each_failed_attempt_is_logged(self, caplog):
        fetcher, _ = make_fetcher(lambda request: (500, {}, b"error"))

        with caplog.at_level(logging.WARNING, logger="services.fetcher"):
            with pytest.raises(RetriesExceededError):
                fetcher.fetch(source(**{"retries-count": 2}))

        warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
        assert [record.getMessage() for record in warnings] == [
            f"Request attempt {n} of 3 to https://example.com/quote failed with code 500"
            for n in (1, 2, 3)
        ]

    def test_transport_error_is_logged_without_code(self, caplog):
        fetcher, _ = make_fetcher(lambda request: requests.ConnectionError("refused"))

        with caplog.at_level(logging.WARNING, logger="services.fetcher"):
            with pytest.raises(RetriesExceededError) as exc_info:
                fetcher.fetch(source())

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__.__cause__, requests.ConnectionError)
        assert "Request attempt 1 of 1" in caplog.text
        assert "failed with code none: refused" in caplog.text

    def test_decode_failure_is_not_retried(self):
        fetcher, transport = make_fetcher(lambda request: (200, {"Content-Encoding": "br"}, b"data"))

        with pytest.raises(UnsupportedEncodingError):
            fetcher.fetch(source(**{"retries-count": 3}))
        assert len(transport.requests) == 1

    def test_invalid_request_is_not_retried(self):
        fetcher, transport = make_fetcher(lambda request: (200, {}, PAGE.encode()))

        with pytest.raises(InvalidRequestError) as exc_info:
            fetcher.fetch(source(**{"retries-count": 3, "http-headers": {"X-Token": "bad\nvalue"}}))

        assert exc_info.value.url == "https://example.com/quote"
        assert transport.requests == []

    def test_zlib_wrapped_deflate_is_rejected(self):
        body = zlib.compress(PAGE.encode())
        fetcher, _ = make_fetcher(lambda request: (200, {"Content-Encoding": "deflate"}, body))

        with pytest.raises(BodyDecodeError):
            fetcher.fetch(source())

    def test_no_retries(self):
        fetcher, transport = make_fetcher(lambda request: requests.Timeout("slow"))

        with pytest.raises(RetriesExceededError):
            fetcher.fetch(source())
        assert len(transport.requests) == 1

    def test_non_200_success_status_is_a_failure(self):
        fetcher, transport = make_fetcher(lambda request: (204, {}, b""))

        with pytest.raises(RetriesExceededError):
            fetcher.fetch(source(**{"retries-count": 1}))
        assert len(transport.requests) == 2

    def test_timeout(self):
        fetcher, transport = make_fetcher(lambda request: (200, {}, PAGE.encode()))

        fetcher.fetch(source(**{"timeout-seconds": 5}))
        fetcher.fetch(source(**{"timeout-seconds": 0}))

        assert transport.timeouts == [5, None]

    def test_context_manager_closes_session(self):
        session = Mock(spec=requests.Session)
        with DocumentFetcherService(session=session) as fetcher:
            assert fetcher.session is session
        session.close.assert_called_once()
