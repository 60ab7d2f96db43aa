"""
ApiKit Error Hierarchy

Groups the failure modes of the extraction pipeline so callers can react to
high-level categories (fetching, extraction, lookup) while still having
access to the specialised subclasses. Every layer wraps the error it
receives with ``raise ... from exc`` so the full causal chain is kept.
"""

from typing import Optional, Type, TypeVar

E = TypeVar("E", bound=BaseException)

__all__ = [
    "ApiKitError",
    "ConfigurationError",
    "FetchError",
    "InvalidRequestError",
    "RetriesExceededError",
    "EmptyBodyError",
    "UnsupportedEncodingError",
    "BodyDecodeError",
    "ExtractionError",
    "ContentParseError",
    "XPathQueryError",
    "ElementNotFoundError",
    "AmbiguousMatchError",
    "RegexIndexOutOfRangeError",
    "ValueCoercionError",
    "PreprocessError",
    "SourceError",
    "InvalidValueKeysError",
    "EndpointLookupError",
    "UnknownEndpointError",
    "NoMatchingEndpointValueError",
    "ClientError",
    "SourceNotFoundError",
    "root_cause",
    "find_cause",
]


class ApiKitError(RuntimeError):
    """Base exception for every ApiKit failure."""


class ConfigurationError(ApiKitError):
    """Raised when the configuration file or process settings are invalid."""


# Fetching

class FetchError(ApiKitError):
    """Raised when a source document could not be retrieved."""

    def __init__(self, message: str, *, url: Optional[str] = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class InvalidRequestError(FetchError):
    """Raised when the outbound request could not be built."""


class RetriesExceededError(FetchError):
    """Raised when every attempt of the retry budget failed."""

    def __init__(self, message: str, *, url: Optional[str] = None,
                 status_code: Optional[int] = None, attempts: int = 0) -> None:
        super().__init__(message, url=url, status_code=status_code)
        self.attempts = attempts


class EmptyBodyError(FetchError):
    """Raised when a successful response carries no body."""


class UnsupportedEncodingError(FetchError):
    """Raised for a Content-Encoding other than none, gzip or deflate."""

    def __init__(self, message: str, *, encoding: str = "", url: Optional[str] = None) -> None:
        super().__init__(message, url=url)
        self.encoding = encoding


class BodyDecodeError(FetchError):
    """Raised when a compressed body could not be inflated."""


# Extraction

class ExtractionError(ApiKitError):
    """Raised when a value could not be extracted from a parsed document."""


class ContentParseError(ExtractionError):
    """Raised when the raw document text could not be parsed."""


class XPathQueryError(ExtractionError):
    """Raised for a malformed XPath expression or a failing query."""


class ElementNotFoundError(ExtractionError):
    """Raised when a required element is absent from the document."""


class AmbiguousMatchError(ExtractionError):
    """Raised when a strict query matched more than one element."""

    def __init__(self, message: str, *, matches: int = 0) -> None:
        super().__init__(message)
        self.matches = matches


class RegexIndexOutOfRangeError(ExtractionError):
    """Raised when the configured capture group does not exist in a match."""


class ValueCoercionError(ExtractionError):
    """Raised when extracted text can not be converted to the configured type."""


class PreprocessError(ExtractionError):
    """Raised when a pre-process callback failed unexpectedly."""


# Source

class SourceError(ApiKitError):
    """Raised when a source could not answer a value request."""

    def __init__(self, message: str, *, source_name: str,
                 value_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.source_name = source_name
        self.value_name = value_name


class InvalidValueKeysError(SourceError):
    """Raised for duplicated or undeclared value names in a request."""


# Lookup

class EndpointLookupError(ApiKitError):
    """Raised when an endpoint or value combination is absent from configuration."""


class UnknownEndpointError(EndpointLookupError):
    """Raised when the endpoint name was not registered."""

    def __init__(self, message: str, *, endpoint_name: str) -> None:
        super().__init__(message)
        self.endpoint_name = endpoint_name


class NoMatchingEndpointValueError(EndpointLookupError):
    """Raised when a (source, value) pair is not exposed by any endpoint."""


# Client

class ClientError(ApiKitError):
    """Raised when an aggregated endpoint request failed."""

    def __init__(self, message: str, *, endpoint_name: str,
                 source_name: Optional[str] = None,
                 value_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.endpoint_name = endpoint_name
        self.source_name = source_name
        self.value_name = value_name


class SourceNotFoundError(ClientError):
    """Raised when the lookup names a source with no constructed instance."""


def _chain(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__


def root_cause(exc: BaseException) -> BaseException:
    """Follow the ``__cause__`` chain down to the original exception"""
    for exc in _chain(exc):
        pass
    return exc


def find_cause(exc: BaseException, kind: Type[E]) -> Optional[E]:
    """First exception of type ``kind`` in the ``__cause__`` chain, starting at ``exc``"""
    for link in _chain(exc):
        if isinstance(link, kind):
            return link
    return None
