"""
Shared Data Models for ApiKit

Contains Pydantic models for the declarative configuration: sources with
their extractable values, endpoints composing those values, and the server
bindings (paths and API keys). Models are immutable once validated.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

import validators
from lxml import etree
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Closed set of values a source can produce, one per ValueType member
ExtractedValue = Union[str, int, float]


class ExtractionStrategy(str, Enum):
    """How an XPath query result is narrowed down to one element"""
    FIRST = "first"
    SINGLE = "single"


class ValueType(str, Enum):
    """Type an extracted text is coerced to"""
    STRING = "string"
    INT = "int"
    FLOAT = "float"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


def _require_unique(names: List[str], what: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ValueError(f"duplicate {what} found: {name}")
        seen.add(name)


class SourceValueConfig(_FrozenModel):
    """One named, typed datum extracted from a source document"""

    name: str = Field(..., min_length=1)
    xpath: str = Field(..., min_length=1)
    extraction_strategy: ExtractionStrategy = Field(ExtractionStrategy.FIRST, alias="extraction-strategy")
    extraction_trim: bool = Field(False, alias="extraction-trim")
    extraction_regex: Optional[str] = Field(None, alias="extraction-regex")
    extraction_regex_match_index: int = Field(0, ge=0, alias="extraction-regex-match-index")
    type: ValueType = ValueType.STRING

    @field_validator("extraction_strategy", "type", mode="before")
    @classmethod
    def normalize_enum(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("xpath")
    @classmethod
    def validate_xpath(cls, v):
        try:
            etree.XPath(v)
        except etree.XPathSyntaxError as e:
            raise ValueError(f"invalid xpath expression '{v}': {e}")
        return v

    @field_validator("extraction_regex")
    @classmethod
    def validate_regex(cls, v):
        if not v:
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regex that could not be parsed '{v}': {e}")
        return v


class SourceConfig(_FrozenModel):
    """One configured remote HTML origin and its declared values"""

    name: str = Field(..., min_length=1)
    url: str
    caching_enabled: bool = Field(False, alias="caching-enabled")
    caching_life_time_seconds: int = Field(0, ge=0, alias="caching-life-time-seconds")
    retries_count: int = Field(0, ge=0, alias="retries-count")
    http_headers: Dict[str, str] = Field(default_factory=dict, alias="http-headers")
    # 0 disables the per-attempt timeout
    timeout_seconds: int = Field(30, ge=0, alias="timeout-seconds")
    values: List[SourceValueConfig] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not validators.url(v, simple_host=True):
            raise ValueError(f"invalid source url: {v}")
        return v

    @field_validator("http_headers")
    @classmethod
    def validate_headers(cls, v):
        for key, value in v.items():
            if not key:
                raise ValueError("header with invalid key provided")
            if not value:
                raise ValueError(f"header {key} with invalid value provided")
        return v

    @model_validator(mode="after")
    def validate_value_names(self):
        _require_unique([value.name for value in self.values], "source value name")
        return self

    def get_value(self, name: str) -> Optional[SourceValueConfig]:
        for value in self.values:
            if value.name == name:
                return value
        return None

    @property
    def value_names(self) -> List[str]:
        return [value.name for value in self.values]


class EndpointValueConfig(_FrozenModel):
    """Exposes one source value under an endpoint-visible name"""

    name: str = Field(..., min_length=1)
    source_name: str = Field(..., min_length=1, alias="source-name")
    source_value_name: str = Field(..., min_length=1, alias="source-value-name")


class EndpointConfig(_FrozenModel):
    """Named composition of source values"""

    name: str = Field(..., min_length=1)
    values: List[EndpointValueConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_value_names(self):
        _require_unique([value.name for value in self.values], "endpoint value name")
        _require_unique(
            [f"{value.source_name}.{value.source_value_name}" for value in self.values],
            "endpoint source value reference",
        )
        return self


class ApiKitConfig(_FrozenModel):
    """Sources plus the endpoints built on top of them"""

    sources: List[SourceConfig] = Field(default_factory=list)
    endpoints: List[EndpointConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self):
        _require_unique([source.name for source in self.sources], "source name")
        _require_unique([endpoint.name for endpoint in self.endpoints], "endpoint name")

        declared = {source.name: set(source.value_names) for source in self.sources}
        for endpoint in self.endpoints:
            for value in endpoint.values:
                if value.source_name not in declared:
                    raise ValueError(
                        f"endpoint {endpoint.name} references non existing source {value.source_name}"
                    )
                if value.source_value_name not in declared[value.source_name]:
                    raise ValueError(
                        f"endpoint {endpoint.name} references non existing source value "
                        f"{value.source_name}.{value.source_value_name}"
                    )
        return self

    def get_source(self, name: str) -> Optional[SourceConfig]:
        for source in self.sources:
            if source.name == name:
                return source
        return None


def _split_host(value: str) -> Tuple[str, Optional[int]]:
    """Parse ``"addr:port"``, ``":port"`` or ``"addr"``, the port is None when omitted"""
    if not value.strip():
        raise ValueError("invalid server host")

    host, sep, port = value.rpartition(":")
    if not sep:
        return value, None
    if not (port.isascii() and port.isdigit()) or not 1 <= int(port) <= 65535:
        raise ValueError(f"invalid server host port: {value}")
    return host, int(port)


class ServerKeyConfig(_FrozenModel):
    """API key a client presents in the X-Api-Key header"""

    name: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)


class ServerEndpointConfig(_FrozenModel):
    """Binds an endpoint to a URL path"""

    name: str = Field(..., min_length=1)
    path: str
    required_api_key_name_pool: List[str] = Field(default_factory=list, alias="required-api-key-name-pool")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        parsed = urlparse(v)
        if parsed.scheme or parsed.netloc or not v.startswith("/"):
            raise ValueError(f"invalid path format: {v}")
        return v


class ServerConfig(_FrozenModel):
    """Complete contents of the configuration file"""

    general: ApiKitConfig = Field(default_factory=ApiKitConfig)
    endpoints: List[ServerEndpointConfig] = Field(default_factory=list)
    api_keys: List[ServerKeyConfig] = Field(default_factory=list, alias="api-keys")
    verbose_mode: bool = Field(False, alias="verbose-mode")
    host: Optional[str] = None

    @field_validator("host")
    @classmethod
    def validate_host(cls, v):
        if v is not None:
            _split_host(v)
        return v

    @model_validator(mode="after")
    def validate_bindings(self):
        _require_unique([key.name for key in self.api_keys], "api key name")
        _require_unique([key.secret for key in self.api_keys], "api key secret")
        _require_unique([endpoint.path for endpoint in self.endpoints], "endpoint path")

        endpoint_names = {endpoint.name for endpoint in self.general.endpoints}
        key_names = {key.name for key in self.api_keys}
        for endpoint in self.endpoints:
            if endpoint.name not in endpoint_names:
                raise ValueError(f"server endpoint {endpoint.path} references non existing endpoint {endpoint.name}")
            for key_name in endpoint.required_api_key_name_pool:
                if key_name not in key_names:
                    raise ValueError(f"endpoint {endpoint.path} referencing non existing api key {key_name}")
        return self

    def bind_address(self, default_host: str, default_port: int) -> Tuple[str, int]:
        """Split ``host`` (``"addr:port"``, ``":port"`` or ``"addr"``) into a uvicorn bind pair"""
        if not self.host:
            return default_host, default_port

        host, port = _split_host(self.host)
        return host or default_host, port or default_port
