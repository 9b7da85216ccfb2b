"""Shared pytest fixtures for wxcache tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- integration: Tests with recorded API responses
- live: Real API tests, slow, requires network and a DataPoint API key

Run live tests with: pytest -m live --run-live
"""

from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from wxcache.cache.store import LocalCacheStore, MemoryCacheStore
from wxcache.upstream.client import ApiClient, FetchFailure, FetchSuccess
from wxcache.upstream.errors import RemoteError


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live API tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "integration: tests with recorded API responses")
    config.addinivalue_line("markers", "live: real API tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        # --run-live given: don't skip live tests
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeClock:
    """Manually advanced monotonic clock; sleeping advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDateClock:
    """Manually advanced naive UTC datetime clock."""

    def __init__(self, start: datetime = datetime(2016, 3, 10, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def date_clock() -> FakeDateClock:
    return FakeDateClock()


@pytest.fixture
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def local_store(tmp_path) -> LocalCacheStore:
    return LocalCacheStore(tmp_path / "cache")


@pytest.fixture
def layer_capabilities() -> dict:
    """Layer capabilities document with two layers."""
    return {
        "Layers": {
            "BaseUrl": {
                "@forServiceTimeFormat": "Timestep",
                "$": (
                    "http://datapoint.metoffice.gov.uk/public/data/layer/wxfcs/"
                    "{LayerName}/{ImageFormat}?RUN={DefaultTime}Z&FORECAST={Timestep}&key={key}"
                ),
            },
            "Layer": [
                {
                    "@displayName": "Rainfall",
                    "Service": {
                        "@name": "Precipitation_Rate",
                        "LayerName": "Precipitation_Rate",
                        "ImageFormat": "png",
                        "Timesteps": {
                            "@defaultTime": "2016-03-10T09:00:00",
                            "Timestep": [0, 3],
                        },
                    },
                },
                {
                    "@displayName": "Cloud",
                    "Service": {
                        "@name": "Total_Cloud_Cover",
                        "LayerName": "Total_Cloud_Cover",
                        "ImageFormat": "png",
                        "Timesteps": {
                            "@defaultTime": "2016-03-10T09:00:00",
                            "Timestep": [0],
                        },
                    },
                },
            ],
        }
    }


@pytest.fixture
def regional_capabilities() -> dict:
    return {"RegionalFcst": {"issuedAt": "2016-03-10T04:00:00"}}


@pytest.fixture
def sitelist() -> dict:
    """Sitelist with three regional forecast areas."""
    return {
        "Locations": {
            "Location": [
                {"@id": "500", "@name": "os"},
                {"@id": "514", "@name": "sw"},
                {"@id": "515", "@name": "uk"},
            ]
        }
    }


def regional_forecast(location_id: int) -> dict:
    return {
        "RegionalFcst": {
            "createdOn": "2016-03-10T04:15:00",
            "regionId": str(location_id),
            "FcstPeriods": {"Period": [{"id": "day1to2", "Paragraph": []}]},
        }
    }


@pytest.fixture
def make_client():
    """Build a MagicMock ApiClient answering from dicts.

    Args (of the returned factory):
        documents: (service, function) -> JSON document, or an exception to raise
        images: URL prefix -> bytes, or a FetchFailure to return
    """

    def factory(documents: dict = None, images: dict = None) -> MagicMock:
        documents = documents or {}
        images = images or {}
        client = MagicMock(spec=ApiClient)

        def call_json(service, function, params=None):
            value = documents.get((service, function))
            if value is None:
                raise RemoteError(404, f"http://test/{service}/json/{function}")
            if isinstance(value, Exception):
                raise value
            return value

        def call_raw(url):
            for prefix, value in images.items():
                if url.startswith(prefix):
                    if isinstance(value, FetchFailure):
                        return value
                    return FetchSuccess(url=url, status=200, content=value)
            return FetchSuccess(url=url, status=200, content=b"PNG:" + url.encode())

        client.call_json.side_effect = call_json
        client.call_raw.side_effect = call_raw
        return client

    return factory


@pytest.fixture
def regional_documents(regional_capabilities, sitelist) -> dict:
    """Upstream documents for the regional catalog, keyed by (service, function)."""
    service = "txt/wxfcs/regionalforecast"
    documents = {
        (service, "capabilities"): regional_capabilities,
        (service, "sitelist"): sitelist,
    }
    for location_id in (500, 514, 515):
        documents[(service, str(location_id))] = regional_forecast(location_id)
    return documents


@pytest.fixture
def layer_documents(layer_capabilities) -> dict:
    return {("layer/wxfcs/all", "capabilities"): layer_capabilities}
