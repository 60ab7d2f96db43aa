"""
Document Fetcher Service

Retrieves source documents with a plain HTTP GET (no script execution),
retrying on transport errors and non-200 responses, and decodes the
transport-level Content-Encoding itself so every source gets the same
gzip/deflate handling regardless of the HTTP stack defaults.
"""

import gzip
import logging
import re
import zlib
from typing import Optional

import requests
import urllib3
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_none

from config import config
from errors import (
    BodyDecodeError,
    EmptyBodyError,
    FetchError,
    InvalidRequestError,
    RetriesExceededError,
    UnsupportedEncodingError,
)
from models import SourceConfig

# Set up logging
logger = logging.getLogger(__name__)

USER_AGENT = config.USER_AGENT

_CHARSET_PATTERN = re.compile(r'charset\s*=\s*["\']?([\w.:-]+)', re.IGNORECASE)

# Raised by requests while preparing a request, before anything is sent
_REQUEST_BUILD_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidSchema,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidHeader,
)


def get_decoded_http_body(body: bytes, content_encoding: Optional[str],
                          charset: str = 'utf-8') -> str:
    """
    Inflate a response body according to its Content-Encoding header

    Args:
        body: Raw bytes as received on the wire
        content_encoding: Header value, empty or None for an uncompressed body
        charset: Text encoding of the inflated bytes

    Returns:
        Decoded document text

    Raises:
        UnsupportedEncodingError: encoding other than none, gzip or deflate
        BodyDecodeError: the body is not a valid stream for its encoding
    """
    encoding = (content_encoding or '').strip().lower()

    if encoding in ('', 'identity'):
        raw = body
    elif encoding == 'gzip':
        try:
            raw = gzip.decompress(body)
        except (OSError, EOFError, zlib.error) as e:
            raise BodyDecodeError(f"failed to read the decoded gzip body: {e}") from e
    elif encoding == 'deflate':
        try:
            # raw deflate stream, no zlib header
            raw = zlib.decompress(body, -zlib.MAX_WBITS)
        except zlib.error as e:
            raise BodyDecodeError(f"failed to read the decoded deflate body: {e}") from e
    else:
        raise UnsupportedEncodingError(
            f"unsupported content encoding: {content_encoding}", encoding=encoding
        )

    try:
        return raw.decode(charset, errors='replace')
    except LookupError:
        return raw.decode('utf-8', errors='replace')


def _charset_of(content_type: Optional[str]) -> str:
    match = _CHARSET_PATTERN.search(content_type or '')
    return match.group(1) if match else 'utf-8'


class _AttemptFailed(Exception):
    """One request attempt failed in a way worth retrying"""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.status_code = status_code


class DocumentFetcherService:
    """Service for fetching raw source documents over HTTP"""

    def __init__(self, session: Optional[requests.Session] = None,
                 user_agent: str = USER_AGENT):
        self.session = session or requests.Session()
        self.user_agent = user_agent

    def build_headers(self, source: SourceConfig) -> dict:
        """Identifying user agent plus the configured headers, which win on conflict"""
        # zlib-wrapped deflate bodies are not decodable, so only gzip is advertised
        headers = {
            'User-Agent': self.user_agent,
            'Accept-Encoding': 'gzip',
        }
        headers.update(source.http_headers)
        return headers

    def fetch(self, source: SourceConfig) -> str:
        """
        Fetch the document of a source

        Performs ``retries_count + 1`` attempts at most, each bounded by
        ``timeout_seconds``. Only HTTP 200 counts as success; transport
        errors and other statuses are retried without delay, body read and
        decode failures are not.

        Args:
            source: Source configuration with URL, headers and retry policy

        Returns:
            Decoded document text

        Raises:
            InvalidRequestError: the request could not be built
            RetriesExceededError: every attempt failed
            EmptyBodyError: the successful response had no body
            UnsupportedEncodingError, BodyDecodeError: body decoding failed
            FetchError: the body could not be read
        """
        headers = self.build_headers(source)
        timeout = source.timeout_seconds or None
        attempts = source.retries_count + 1

        def log_failed_attempt(retry_state) -> None:
            logger.warning(
                f"Request attempt {retry_state.attempt_number} of {attempts} to {source.url} "
                f"failed with {retry_state.outcome.exception()}"
            )

        retrying = Retrying(
            retry=retry_if_exception_type(_AttemptFailed),
            stop=stop_after_attempt(attempts),
            wait=wait_none(),
            after=log_failed_attempt,
        )

        try:
            return retrying(self._attempt, source, headers, timeout)
        except RetryError as e:
            last_failure = e.last_attempt.exception()
            raise RetriesExceededError(
                f"extraction http request retries count exceeded ({attempts} attempts) for {source.url}",
                url=source.url,
                status_code=last_failure.status_code,
                attempts=attempts,
            ) from last_failure

    def _attempt(self, source: SourceConfig, headers: dict, timeout: Optional[int]) -> str:
        try:
            response = self.session.get(source.url, headers=headers, timeout=timeout, stream=True)
        except _REQUEST_BUILD_ERRORS as e:
            raise InvalidRequestError(
                f"failed to build the request to {source.url}: {e}", url=source.url
            ) from e
        except requests.RequestException as e:
            raise _AttemptFailed(f"code none: {e}") from e

        if response.status_code != 200:
            response.close()
            raise _AttemptFailed(f"code {response.status_code}", response.status_code)

        with response:
            return self._read_body(source, response)

    def _read_body(self, source: SourceConfig, response: requests.Response) -> str:
        try:
            body = response.raw.read(decode_content=False)
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise FetchError(f"failed to read the response body content: {e}", url=source.url) from e

        if not body:
            raise EmptyBodyError(f"the response body of {source.url} is empty", url=source.url)

        content_encoding = response.headers.get('Content-Encoding', '')
        logger.debug(f"Response content encoding '{content_encoding}' for {source.url}")

        try:
            return get_decoded_http_body(
                body, content_encoding, _charset_of(response.headers.get('Content-Type'))
            )
        except FetchError as e:
            e.url = source.url
            raise

    def cleanup(self):
        """Close the underlying HTTP session"""
        self.session.close()
        logger.debug("Document fetcher cleanup completed")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit with cleanup"""
        self.cleanup()
