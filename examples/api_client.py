#!/usr/bin/env python3
"""
ApiKit API Client Example

Example Python client showing how to query the endpoints of a running
ApiKit server, including API key handling and error responses.
"""

import sys
from typing import Any, Dict, Optional

import requests


class ApiKitHttpClient:
    """Python client for a running ApiKit server"""

    def __init__(self, base_url: str = "http://localhost:8000", api_key: Optional[str] = None,
                 timeout: int = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        if api_key:
            self.session.headers['X-Api-Key'] = api_key

    def _make_request(self, path: str) -> Dict[str, Any]:
        """Make a GET request with error handling"""
        url = f"{self.base_url}{path}"

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout:
            return {"success": False, "error": "Request timeout"}
        except requests.exceptions.ConnectionError:
            return {"success": False, "error": "Connection error - is the API server running?"}

        try:
            data = response.json()
        except ValueError:
            return {"success": False, "error": f"HTTP {response.status_code}: non JSON response"}

        if response.status_code != 200:
            return {"success": False, "error": f"HTTP {response.status_code}: {data.get('error')}"}
        return data

    def health_check(self) -> Dict[str, Any]:
        """Check API health status"""
        return self._make_request("/health")

    def get_endpoint(self, path: str) -> Dict[str, Any]:
        """Fetch the composed values bound to ``path``"""
        return self._make_request(path)

    def close(self):
        self.session.close()


def main():
    """Query the health check and one endpoint path given on the command line"""
    path = sys.argv[1] if len(sys.argv) > 1 else "/stock/quote"
    api_key = sys.argv[2] if len(sys.argv) > 2 else None

    client = ApiKitHttpClient(api_key=api_key)
    try:
        health = client.health_check()
        if health.get("success") is False:
            print(f"❌ API not available: {health['error']}")
            return 1
        print(f"✅ API healthy, version {health['version']}, endpoints: {', '.join(health['endpoints'])}")

        result = client.get_endpoint(path)
        if result.get("success") is False:
            print(f"❌ {path} failed: {result['error']}")
            return 1

        print(f"📊 {path}")
        for name, value in result.items():
            print(f"  {name}: {value}")
        return 0
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
