"""
Source Service

A Source owns one configured origin: it fetches (or reuses the cached)
document and applies the per-value extraction rules (XPath selection,
trim, regex capture, type coercion) to answer named value requests.
"""

import logging
import re
import threading
from typing import Dict, Iterable, Optional, Pattern

from errors import (
    ApiKitError,
    ElementNotFoundError,
    ExtractionError,
    InvalidValueKeysError,
    RegexIndexOutOfRangeError,
    SourceError,
)
from models import ExtractedValue, ExtractionStrategy, SourceConfig, SourceValueConfig
from parsers.html_content import HtmlContent, HtmlContentElement, Preprocess
from services.cache import Cacheable
from services.fetcher import DocumentFetcherService

logger = logging.getLogger(__name__)


class Source:
    """
    Extracts configured values from one remote HTML document

    Calls are serialized by a per-source lock, so at most one document
    fetch per source is in flight and concurrent callers share the cached
    document instead of fetching it again.
    """

    def __init__(self, config: SourceConfig, fetcher: DocumentFetcherService,
                 document_cache: Optional[Cacheable[HtmlContent]] = None):
        self.config = config
        self.fetcher = fetcher
        self.logger = logging.getLogger(f"{__name__}.{config.name}")

        self._lock = threading.Lock()
        self._document_cache = document_cache if document_cache is not None else Cacheable()
        self._value_configs: Dict[str, SourceValueConfig] = {
            value.name: value for value in config.values
        }
        self._value_regex: Dict[str, Pattern] = {
            value.name: re.compile(value.extraction_regex)
            for value in config.values
            if value.extraction_regex
        }

    @property
    def name(self) -> str:
        return self.config.name

    def get_value(self, name: str) -> ExtractedValue:
        """Extract a single named value"""
        return self.get_values([name])[name]

    def get_values(self, names: Iterable[str]) -> Dict[str, ExtractedValue]:
        """
        Extract the requested values from the source document

        Args:
            names: Distinct value names declared on this source

        Returns:
            Mapping of value name to extracted value

        Raises:
            InvalidValueKeysError: duplicated or undeclared names
            SourceError: fetching or extracting any value failed, no partial result
        """
        names = list(names)

        with self._lock:
            self._validate_names(names)
            if not names:
                return {}

            try:
                document = self._get_document()
            except ApiKitError as e:
                raise SourceError(
                    f"source {self.name}: failed to access the html content: {e}",
                    source_name=self.name,
                ) from e

            result = {}
            for name in names:
                try:
                    result[name] = self._extract(self._value_configs[name], document)
                except ExtractionError as e:
                    raise SourceError(
                        f"source {self.name}: failed to access the source value {name}: {e}",
                        source_name=self.name,
                        value_name=name,
                    ) from e

            return result

    def _validate_names(self, names) -> None:
        if len(set(names)) != len(names):
            raise InvalidValueKeysError(
                f"source {self.name}: invalid values keys provided, duplicates in {names}",
                source_name=self.name,
            )

        unknown = [name for name in names if name not in self._value_configs]
        if unknown:
            raise InvalidValueKeysError(
                f"source {self.name}: invalid values keys provided, undeclared {unknown}",
                source_name=self.name,
                value_name=unknown[0],
            )

    def _get_document(self) -> HtmlContent:
        if self.config.caching_enabled:
            document, ok = self._document_cache.get()
            if ok:
                self.logger.info(f"Cached content used to resolve {self.config.url} access")
                return document

        text = self.fetcher.fetch(self.config)
        document = HtmlContent.parse(text)

        if self.config.caching_enabled:
            self._document_cache.set_with_ttl(document, self.config.caching_life_time_seconds)

        self.logger.info(f"Request to resource made to resolve {self.config.url} access")
        return document

    def _extract(self, value_config: SourceValueConfig, document: HtmlContent) -> ExtractedValue:
        element = self._select(value_config, document)
        return element.inner_text_as(value_config.type, self._build_preprocess(value_config))

    @staticmethod
    def _select(value_config: SourceValueConfig, document: HtmlContent) -> HtmlContentElement:
        if value_config.extraction_strategy == ExtractionStrategy.FIRST:
            element, found = document.get_first(value_config.xpath)
        elif value_config.extraction_strategy == ExtractionStrategy.SINGLE:
            element, found = document.get_single(value_config.xpath)
        else:
            raise ExtractionError(f"invalid extraction strategy specified: {value_config.extraction_strategy}")

        if not found:
            raise ElementNotFoundError(
                f"target {value_config.extraction_strategy.value} element to extract not found via '{value_config.xpath}'"
            )
        return element

    def _build_preprocess(self, value_config: SourceValueConfig) -> Preprocess:
        regex = self._value_regex.get(value_config.name)
        index = value_config.extraction_regex_match_index

        def preprocess(value: str) -> str:
            if value_config.extraction_trim:
                value = value.strip()

            if regex is None:
                return value

            match = regex.search(value)
            self.logger.debug(
                f"Regex \"{regex.pattern}\" matching result for value {value_config.name}: "
                f"{match.group(0, *range(1, regex.groups + 1)) if match else None}"
            )

            if match is None or index > regex.groups:
                raise RegexIndexOutOfRangeError(
                    f"source value extraction regex index {index} out of matches range for '{value}'"
                )
            return match.group(index) or ''

        return preprocess
