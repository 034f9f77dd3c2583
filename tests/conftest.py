"""
Shared fixtures: isolated settings, caches and clients whose HTTP traffic
goes to an in-process httpx.MockTransport instead of Google.
"""
import copy

import httpx
import pytest
from tenacity import wait_none

from pagespeed_mcp.core.config import load_settings
from pagespeed_mcp.services.cache import ResponseCache
from pagespeed_mcp.services.orchestrator import PageSpeedTools
from pagespeed_mcp.services.pagespeed_service import PageSpeedClient
from pagespeed_mcp.tools import build_registry

PSI_RESPONSE = {
    "analysisUTCTimestamp": "2023-01-01T00:00:00.000Z",
    "lighthouseResult": {
        "requestedUrl": "https://example.com/",
        "categories": {
            "performance": {
                "score": 0.85,
                "auditRefs": [
                    {"id": "first-contentful-paint"},
                    {"id": "largest-contentful-paint"},
                    {"id": "render-blocking-resources"},
                    {"id": "unused-javascript"},
                ],
            },
            "accessibility": {
                "score": 0.9,
                "auditRefs": [{"id": "color-contrast"}, {"id": "image-alt"}],
            },
        },
        "audits": {
            "first-contentful-paint": {"title": "First Contentful Paint", "displayValue": "1.2 s", "score": 0.9},
            "largest-contentful-paint": {
                "title": "Largest Contentful Paint", "displayValue": "2.5 s", "numericValue": 2500, "score": 1,
            },
            "render-blocking-resources": {
                "title": "Eliminate render-blocking resources",
                "score": 0.4,
                "displayValue": "Potential savings of 450 ms",
                "details": {
                    "type": "opportunity",
                    "overallSavingsMs": 450,
                    "items": [{"url": "https://example.com/app.css", "totalBytes": 20480, "wastedMs": 450}],
                },
            },
            "unused-javascript": {
                "title": "Reduce unused JavaScript",
                "score": 0.5,
                "displayValue": "Potential savings of 120 KiB",
                "details": {
                    "type": "opportunity",
                    "items": [
                        {"url": "https://example.com/app.js", "totalBytes": 300000,
                         "wastedBytes": 120000, "wastedPercent": 40},
                    ],
                },
            },
            "color-contrast": {"title": "Insufficient contrast", "score": 0, "description": "Low contrast."},
            "image-alt": {"title": "Images have alt", "score": 1},
        },
    },
}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_settings(**overrides):
    values = {"GOOGLE_API_KEY": "test-api-key", "NODE_ENV": "test", "_env_file": None}
    values.update(overrides)
    return load_settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def psi_response():
    return copy.deepcopy(PSI_RESPONSE)


@pytest.fixture
def cache():
    return ResponseCache(default_ttl=3600)


@pytest.fixture
def make_client(cache):
    """Builds a PageSpeedClient whose requests are answered by `handler`."""
    def factory(handler, cache=cache, **overrides):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PageSpeedClient(make_settings(**overrides), cache, http_client=http, backoff=wait_none())

    return factory


@pytest.fixture
def make_registry(make_client, cache):
    def factory(handler, **overrides):
        client = make_client(handler, **overrides)
        return build_registry(PageSpeedTools(client, cache))

    return factory
