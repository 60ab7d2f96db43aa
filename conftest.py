"""
Shared pytest fixtures for the ApiKit test suite
"""

import io
from typing import Callable, List
from unittest.mock import Mock

import pytest
import urllib3
from requests.adapters import HTTPAdapter

from config import parse_server_config
from models import ApiKitConfig, ServerConfig, SourceConfig
from services.fetcher import DocumentFetcherService

STOCK_HTML = """
<html>
  <head><title>ACME quote</title></head>
  <body>
    <h1>  ACME Corp  </h1>
    <span id="price"> 123.45 </span>
    <table>
      <tr><td class="volume"> 9000 shares </td></tr>
      <tr><td class="volume"> 10 shares </td></tr>
    </table>
    <ul>
      <li class="item">alpha</li>
      <li class="item">beta</li>
    </ul>
    <a id="link" href="/next" data-count="42">next</a>
  </body>
</html>
"""

NEWS_HTML = """
<html><body><div class="headline">Markets rally</div><div id="count">7</div></body></html>
"""


class FakeTransport(HTTPAdapter):
    """
    requests transport adapter answering from a handler function

    The handler receives the prepared request and returns either an
    exception to raise or a ``(status, headers, body)`` tuple.
    """

    def __init__(self, handler: Callable):
        super().__init__()
        self.handler = handler
        self.requests: List = []
        self.timeouts: List = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        self.timeouts.append(timeout)

        result = self.handler(request)
        if isinstance(result, Exception):
            raise result

        status, headers, body = result
        raw = urllib3.HTTPResponse(
            body=io.BytesIO(body),
            headers=headers,
            status=status,
            preload_content=False,
            decode_content=False,
        )
        return self.build_response(request, raw)


def make_fetcher(handler: Callable):
    """DocumentFetcherService whose session is served by a FakeTransport"""
    transport = FakeTransport(handler)
    fetcher = DocumentFetcherService()
    fetcher.session.mount("http://", transport)
    fetcher.session.mount("https://", transport)
    return fetcher, transport


def stock_source_dict(**overrides) -> dict:
    data = {
        "name": "stock",
        "url": "https://example.com/quote",
        "values": [
            {"name": "price", "xpath": "//span[@id='price']", "extraction-trim": True, "type": "float"},
            {
                "name": "volume",
                "xpath": "//td[@class='volume']",
                "extraction-strategy": "first",
                "extraction-trim": True,
                "extraction-regex": "([0-9]+) shares",
                "extraction-regex-match-index": 1,
                "type": "int",
            },
            {"name": "company", "xpath": "//h1", "extraction-trim": True},
            {"name": "item", "xpath": "//li[@class='item']", "extraction-strategy": "single"},
        ],
    }
    data.update(overrides)
    return data


def news_source_dict(**overrides) -> dict:
    data = {
        "name": "news",
        "url": "https://example.com/news",
        "values": [
            {"name": "headline", "xpath": "//div[@class='headline']"},
            {"name": "count", "xpath": "//div[@id='count']", "type": "int"},
        ],
    }
    data.update(overrides)
    return data


def server_config_dict() -> dict:
    return {
        "general": {
            "sources": [stock_source_dict(), news_source_dict()],
            "endpoints": [
                {
                    "name": "quote",
                    "values": [
                        {"name": "last", "source-name": "stock", "source-value-name": "price"},
                    ],
                },
                {
                    "name": "overview",
                    "values": [
                        {"name": "company", "source-name": "stock", "source-value-name": "company"},
                        {"name": "volume", "source-name": "stock", "source-value-name": "volume"},
                        {"name": "headline", "source-name": "news", "source-value-name": "headline"},
                        {"name": "stories", "source-name": "news", "source-value-name": "count"},
                    ],
                },
                {
                    "name": "broken",
                    "values": [
                        {"name": "item", "source-name": "stock", "source-value-name": "item"},
                    ],
                },
            ],
        },
        "endpoints": [
            {"name": "quote", "path": "/stock/quote"},
            {"name": "overview", "path": "/overview", "required-api-key-name-pool": ["partner"]},
            {"name": "broken", "path": "/broken"},
        ],
        "api-keys": [
            {"name": "partner", "secret": "s3cret"},
            {"name": "other", "secret": "other-secret"},
        ],
    }


@pytest.fixture
def stock_source_config() -> SourceConfig:
    return SourceConfig.model_validate(stock_source_dict())


@pytest.fixture
def server_config() -> ServerConfig:
    return parse_server_config(server_config_dict())


@pytest.fixture
def apikit_config(server_config) -> ApiKitConfig:
    return server_config.general


@pytest.fixture
def page_fetcher():
    """Mock fetcher answering every source with its canned page"""
    pages = {
        "https://example.com/quote": STOCK_HTML,
        "https://example.com/news": NEWS_HTML,
    }
    fetcher = Mock(spec=DocumentFetcherService)
    fetcher.fetch.side_effect = lambda source: pages[source.url]
    return fetcher


@pytest.fixture
def fake_clock():
    """Manually advanced clock for cache expiry tests"""

    class FakeClock:
        def __init__(self):
            self.now = 1000.0

        def __call__(self):
            return self.now

        def advance(self, seconds: float):
            self.now += seconds

    return FakeClock()
