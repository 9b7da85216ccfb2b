"""Tests for the rate-limited DataPoint client.

HTTP is mocked at the requests.Session level.
"""

from unittest.mock import MagicMock

import pytest
import requests

from wxcache.config import DataPointConfig
from wxcache.upstream.client import ApiClient, FetchFailure, FetchSuccess, redact_key
from wxcache.upstream.errors import DecodeError, RemoteError
from wxcache.upstream.ratelimit import RateLimiter


def make_response(status=200, reason="OK", json_data=None, content=b"", json_error=None):
    response = MagicMock()
    response.status_code = status
    response.reason = reason
    response.content = content
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def config(tmp_path):
    return DataPointConfig(api_key="secret", cache_dir=tmp_path / "cache", timeout=5)


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def limiter():
    return MagicMock(spec=RateLimiter)


@pytest.fixture
def client(config, limiter, session):
    return ApiClient(config, limiter=limiter, session=session)


class TestUrls:
    """Tests for URL construction."""

    def test_build_url(self, client):
        """Service functions live under base/service/json/function."""
        url = client.build_url("layer/wxfcs/all", "capabilities")
        assert url == "http://datapoint.metoffice.gov.uk/public/data/layer/wxfcs/all/json/capabilities"

    def test_build_url_strips_service_slashes(self, client):
        """Leading and trailing slashes on the service are ignored."""
        url = client.build_url("/txt/wxfcs/regionalforecast/", "sitelist")
        assert url.endswith("/public/data/txt/wxfcs/regionalforecast/json/sitelist")

    def test_build_url_custom_host(self, tmp_path, session, limiter):
        """Scheme, host and prefix come from the config."""
        config = DataPointConfig(
            scheme="https", hostname="example.org", prefix="/dp/", cache_dir=tmp_path
        )
        client = ApiClient(config, limiter=limiter, session=session)
        assert client.build_url("svc", "fn") == "https://example.org/dp/svc/json/fn"

    def test_with_key_no_query(self, client):
        assert client.with_key("http://h/a.png") == "http://h/a.png?key=secret"

    def test_with_key_existing_query(self, client):
        assert client.with_key("http://h/a?RUN=1") == "http://h/a?RUN=1&key=secret"

    def test_redact_key(self):
        """Every key= value is masked, other parameters are kept."""
        text = "url: /a?key=abc123&RUN=1 and /b?key=xyz)"
        assert redact_key(text) == "url: /a?key=***&RUN=1 and /b?key=***)"

    def test_redact_key_ignores_similar_names(self):
        assert redact_key("monkey=1&apikey=2") == "monkey=1&apikey=2"


class TestCallJson:
    """Tests for JSON service calls."""

    def test_success_returns_document(self, client, session, limiter):
        """200 response is decoded and returned."""
        session.get.return_value = make_response(json_data={"Layers": {}})

        result = client.call_json("layer/wxfcs/all", "capabilities")

        assert result == {"Layers": {}}
        limiter.acquire.assert_called_once()
        args, kwargs = session.get.call_args
        assert args[0].endswith("/layer/wxfcs/all/json/capabilities")
        assert kwargs["params"] == {"key": "secret"}
        assert kwargs["timeout"] == 5

    def test_not_modified_is_success(self, client, session):
        """304 is treated like 200."""
        session.get.return_value = make_response(status=304, reason="Not Modified", json_data=[])
        assert client.call_json("svc", "fn") == []

    def test_extra_params_are_merged(self, client, session):
        """Caller params are sent alongside the key."""
        session.get.return_value = make_response(json_data={})

        client.call_json("svc", "fn", params={"res": "3hourly"})

        assert session.get.call_args.kwargs["params"] == {"res": "3hourly", "key": "secret"}

    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    def test_error_status_raises(self, client, session, status):
        """Any other status raises RemoteError carrying the status."""
        session.get.return_value = make_response(status=status, reason="Nope")

        with pytest.raises(RemoteError) as exc_info:
            client.call_json("svc", "fn")

        assert exc_info.value.status == status
        assert exc_info.value.url.endswith("/svc/json/fn")
        assert "secret" not in str(exc_info.value)

    def test_invalid_json_raises_decode_error(self, client, session):
        """A body that is not JSON raises DecodeError."""
        session.get.return_value = make_response(json_error=ValueError("Expecting value"))

        with pytest.raises(DecodeError) as exc_info:
            client.call_json("svc", "fn")

        assert isinstance(exc_info.value, RemoteError)
        assert exc_info.value.status == 200

    def test_transport_error_raises_remote_error(self, client, session):
        """Connection failures raise RemoteError without a status."""
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RemoteError) as exc_info:
            client.call_json("svc", "fn")

        assert exc_info.value.status is None

    def test_transport_error_hides_api_key(self, client, session):
        """The key in a connection error message never reaches RemoteError."""
        session.get.side_effect = requests.ConnectionError(
            "HTTPConnectionPool(host='127.0.0.1', port=9): Max retries exceeded with url: "
            "/public/data/svc/json/fn?key=secret (Caused by NewConnectionError('refused'))"
        )

        with pytest.raises(RemoteError) as exc_info:
            client.call_json("svc", "fn")

        assert "secret" not in str(exc_info.value)
        assert "key=***" in str(exc_info.value)
        assert "NewConnectionError" in str(exc_info.value)

    def test_token_acquired_before_request(self, client, session, limiter):
        """The limiter is consulted before the request goes out."""
        order = []
        limiter.acquire.side_effect = lambda *a, **k: order.append("acquire")
        session.get.side_effect = lambda *a, **k: order.append("get") or make_response(json_data={})

        client.call_json("svc", "fn")

        assert order == ["acquire", "get"]


class TestCallRaw:
    """Tests for raw (binary) calls."""

    def test_success(self, client, session, limiter):
        """200 response returns FetchSuccess with the body."""
        session.get.return_value = make_response(content=b"\x89PNG")

        result = client.call_raw("http://h/img?RUN=1")

        assert isinstance(result, FetchSuccess)
        assert result.ok
        assert result.content == b"\x89PNG"
        assert result.url == "http://h/img?RUN=1"
        session.get.assert_called_once_with("http://h/img?RUN=1&key=secret", timeout=5)
        limiter.acquire.assert_called_once()

    def test_error_status_returns_failure(self, client, session):
        """Non-success status returns FetchFailure, never raises."""
        session.get.return_value = make_response(status=404, reason="Not Found")

        result = client.call_raw("http://h/img")

        assert isinstance(result, FetchFailure)
        assert not result.ok
        assert result.status == 404
        assert result.reason == "Not Found"
        assert str(result) == "404:Not Found http://h/img"

    def test_transport_error_returns_failure(self, client, session):
        """Transport exceptions become a FetchFailure without status."""
        session.get.side_effect = requests.Timeout("timed out")

        result = client.call_raw("http://h/img")

        assert isinstance(result, FetchFailure)
        assert result.status is None
        assert "timed out" in result.reason

    def test_transport_error_hides_api_key(self, client, session):
        """The key in a connection error message never reaches FetchFailure."""
        session.get.side_effect = requests.ConnectionError(
            "Max retries exceeded with url: /img?RUN=1&key=secret "
            "(Caused by NewConnectionError('refused'))"
        )

        result = client.call_raw("http://h/img?RUN=1")

        assert "secret" not in result.reason
        assert "secret" not in str(result)
        assert "RUN=1&key=***" in result.reason


class TestLifecycle:
    """Tests for session ownership."""

    def test_builds_limiter_from_config(self, tmp_path, session):
        """Without a limiter one is built from the config capacity."""
        config = DataPointConfig(capacity=7, period_seconds=30, cache_dir=tmp_path)
        client = ApiClient(config, session=session)
        assert client.limiter.capacity == 7
        assert client.limiter.period == 30.0

    def test_does_not_close_borrowed_session(self, client, session):
        client.close()
        session.close.assert_not_called()

    def test_context_manager_closes_own_session(self, config, limiter):
        with ApiClient(config, limiter=limiter) as client:
            client.session = MagicMock(spec=requests.Session)
            own = client.session
        own.close.assert_called_once()
