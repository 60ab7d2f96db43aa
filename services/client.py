"""
ApiKit Client Service

Aggregates one endpoint: resolves the sources it needs through the
EndpointLookup, asks every Source for its values and merges them into a
single mapping keyed by the endpoint-visible value names. Any failure aborts
the whole response, partial results are never returned.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Mapping, Optional, Sequence

from errors import ClientError, EndpointLookupError, SourceError, SourceNotFoundError
from mappers.endpoint_lookup import EndpointLookup
from models import ApiKitConfig, ExtractedValue
from services.fetcher import DocumentFetcherService
from services.source import Source

logger = logging.getLogger(__name__)


class ApiKitClient:
    """Serves endpoint values composed from the configured sources"""

    def __init__(self, sources: Mapping[str, Source], lookup: EndpointLookup,
                 parallel: bool = True, max_workers: Optional[int] = None,
                 name: str = ""):
        self.sources = dict(sources)
        self.lookup = lookup
        self.parallel = parallel
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{name}" if name else __name__)

        self._executor: Optional[ThreadPoolExecutor] = None
        if parallel and len(self.sources) > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers or len(self.sources),
                thread_name_prefix="apikit-source",
            )

    @classmethod
    def from_config(cls, config: ApiKitConfig,
                    fetcher: Optional[DocumentFetcherService] = None,
                    **kwargs) -> 'ApiKitClient':
        """
        Build sources and lookup from a validated configuration

        Args:
            config: Validated sources and endpoints
            fetcher: Shared fetcher, by default each source gets its own HTTP session
        """
        sources = {
            source_config.name: Source(source_config, fetcher or DocumentFetcherService())
            for source_config in config.sources
        }
        lookup = EndpointLookup.from_config(config)

        client = cls(sources, lookup, **kwargs)
        client.logger.info(
            f"Client created with {len(sources)} sources and {len(lookup.endpoint_names())} endpoints"
        )
        return client

    def get(self, endpoint_name: str) -> Dict[str, ExtractedValue]:
        """
        Compose the values of an endpoint

        Args:
            endpoint_name: Configured endpoint name

        Returns:
            Mapping of endpoint value name to extracted value

        Raises:
            ClientError: wraps the lookup, source or extraction failure
        """
        try:
            sources_map = self.lookup.sources_for(endpoint_name)
        except EndpointLookupError as e:
            raise ClientError(
                f"failed to access the endpoint {endpoint_name} via lookup: {e}",
                endpoint_name=endpoint_name,
            ) from e

        result: Dict[str, ExtractedValue] = {}

        if self._executor is None or len(sources_map) < 2:
            for source_name, value_names in sources_map.items():
                result.update(self._collect(endpoint_name, source_name, value_names))
            return result

        futures = [
            self._executor.submit(self._collect, endpoint_name, source_name, value_names)
            for source_name, value_names in sources_map.items()
        ]
        try:
            for future in as_completed(futures):
                result.update(future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise

        return result

    def _collect(self, endpoint_name: str, source_name: str,
                 value_names: Sequence[str]) -> Dict[str, ExtractedValue]:
        source = self.sources.get(source_name)
        if source is None:
            raise SourceNotFoundError(
                f"specified source {source_name} of endpoint {endpoint_name} not found",
                endpoint_name=endpoint_name,
                source_name=source_name,
            )

        try:
            values = source.get_values(value_names)
        except SourceError as e:
            raise ClientError(
                f"failed to access the source values for endpoint {endpoint_name}: {e}",
                endpoint_name=endpoint_name,
                source_name=source_name,
                value_name=e.value_name,
            ) from e

        renamed = {}
        for source_value_name, value in values.items():
            try:
                endpoint_value_name = self.lookup.rename_of(source_name, source_value_name, endpoint_name)
            except EndpointLookupError as e:
                raise ClientError(
                    f"failed to access the endpoint value name via lookup: {e}",
                    endpoint_name=endpoint_name,
                    source_name=source_name,
                    value_name=source_value_name,
                ) from e
            renamed[endpoint_value_name] = value

        return renamed

    def close(self):
        """Release worker threads and HTTP sessions"""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        fetchers = {id(source.fetcher): source.fetcher for source in self.sources.values()}
        for fetcher in fetchers.values():
            fetcher.cleanup()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
