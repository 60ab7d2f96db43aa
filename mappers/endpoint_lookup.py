"""
Endpoint Lookup

Precomputed, read-only index between endpoints and the source values they
expose. Built once from validated configuration and shared by every request
without locking.
"""

import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from errors import NoMatchingEndpointValueError, UnknownEndpointError
from models import ApiKitConfig

logger = logging.getLogger(__name__)

SourceValueKey = Tuple[str, str]


class EndpointLookup:
    """
    Bidirectional endpoint/source value index

    ``endpoint_sources``: endpoint name -> source name -> [source value name]
    ``endpoint_renames``: endpoint name -> (source name, source value name) -> endpoint value name

    The unscoped rename table is the union of all endpoints; when two
    endpoints expose the same source value under different names the last
    configured one wins there, so callers serving an endpoint pass its name.
    """

    def __init__(self, endpoint_sources: Dict[str, Dict[str, List[str]]],
                 endpoint_renames: Dict[str, Dict[SourceValueKey, str]]):
        self._endpoint_sources = MappingProxyType({
            endpoint: MappingProxyType({source: tuple(values) for source, values in sources.items()})
            for endpoint, sources in endpoint_sources.items()
        })
        self._endpoint_renames = MappingProxyType({
            endpoint: MappingProxyType(dict(renames))
            for endpoint, renames in endpoint_renames.items()
        })

        value_rename: Dict[SourceValueKey, str] = {}
        for renames in endpoint_renames.values():
            value_rename.update(renames)
        self._value_rename = MappingProxyType(value_rename)

    @classmethod
    def from_config(cls, config: ApiKitConfig) -> 'EndpointLookup':
        """Index every endpoint value of an already validated configuration"""
        endpoint_sources: Dict[str, Dict[str, List[str]]] = {}
        endpoint_renames: Dict[str, Dict[SourceValueKey, str]] = {}

        for endpoint in config.endpoints:
            sources: Dict[str, List[str]] = {}
            renames: Dict[SourceValueKey, str] = {}
            for value in endpoint.values:
                sources.setdefault(value.source_name, []).append(value.source_value_name)
                renames[(value.source_name, value.source_value_name)] = value.name
            endpoint_sources[endpoint.name] = sources
            endpoint_renames[endpoint.name] = renames

        logger.debug(f"Endpoint lookup built for {len(endpoint_sources)} endpoints")
        return cls(endpoint_sources, endpoint_renames)

    def sources_for(self, endpoint_name: str) -> Mapping[str, Tuple[str, ...]]:
        """
        Source value names needed by an endpoint, grouped by source

        Raises:
            UnknownEndpointError: the endpoint was not configured
        """
        try:
            return self._endpoint_sources[endpoint_name]
        except KeyError:
            raise UnknownEndpointError(
                f"specified endpoint {endpoint_name} not present in lookup",
                endpoint_name=endpoint_name,
            ) from None

    def rename_of(self, source_name: str, source_value_name: str,
                  endpoint_name: Optional[str] = None) -> str:
        """
        Endpoint-visible name of a source value

        Args:
            source_name: Source declaring the value
            source_value_name: Value name on that source
            endpoint_name: Restrict the lookup to this endpoint's renames

        Raises:
            UnknownEndpointError: ``endpoint_name`` was not configured
            NoMatchingEndpointValueError: the pair is not exposed (by that endpoint)
        """
        if endpoint_name is None:
            renames = self._value_rename
        else:
            try:
                renames = self._endpoint_renames[endpoint_name]
            except KeyError:
                raise UnknownEndpointError(
                    f"specified endpoint {endpoint_name} not present in lookup",
                    endpoint_name=endpoint_name,
                ) from None

        try:
            return renames[(source_name, source_value_name)]
        except KeyError:
            raise NoMatchingEndpointValueError(
                f"specified pair of source {source_name} and value {source_value_name} "
                f"are not matching an endpoint value"
            ) from None

    def endpoint_names(self) -> List[str]:
        return list(self._endpoint_sources)

    def __contains__(self, endpoint_name: str) -> bool:
        return endpoint_name in self._endpoint_sources
