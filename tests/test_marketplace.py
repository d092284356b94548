"""
Tests for pubtrack.marketplace module.

Tests the marketplace client including:
- Request URL and headers
- Decoding update lists
- HTTP, connection and payload errors
- Token expansion from the environment
"""

from __future__ import annotations

import pytest
import requests
import requests_mock

from pubtrack.exceptions import FetchError
from pubtrack.marketplace import MarketplaceClient, UpdateSource
from pubtrack.marketplace.client import expand_token
from pubtrack.stages import VerificationStage

BASE_URL = "https://marketplace.example.com/"
UPDATES_URL = BASE_URL + "api/plugins/12345/updates"


class TestMarketplaceClient:
    """Tests for MarketplaceClient.fetch_latest_updates."""

    def test_fetch_updates(self, sample_updates_payload):
        """Test decoding a successful response, newest first."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, json=sample_updates_payload)
            updates = client.fetch_latest_updates("12345")

        assert [u.version for u in updates] == ["2.1.0", "2.0.0"]
        assert updates[0].stage is VerificationStage.APPROVED
        assert updates[1].stage is VerificationStage.PUBLISHED
        assert m.last_request.headers["Accept"] == "application/json"
        assert "Authorization" not in m.last_request.headers

    def test_base_url_without_trailing_slash(self):
        """Test that the base URL is normalized."""
        client = MarketplaceClient(base_url="https://marketplace.example.com")

        assert client.updates_url("12345") == UPDATES_URL

    def test_empty_list(self):
        """Test that a plugin without updates yields an empty list."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, json=[])
            assert client.fetch_latest_updates("12345") == []

    def test_bearer_token(self):
        """Test that a configured token is sent as a bearer token."""
        client = MarketplaceClient(base_url=BASE_URL, token="secret")

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, json=[])
            client.fetch_latest_updates("12345")

        assert m.last_request.headers["Authorization"] == "Bearer secret"

    def test_timeout_passed_through(self):
        """Test that the configured timeout reaches requests."""
        client = MarketplaceClient(base_url=BASE_URL, timeout=7)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, json=[])
            client.fetch_latest_updates("12345")

        assert m.last_request.timeout == 7

    @pytest.mark.parametrize(
        "status_code, match",
        [(404, "not found"), (401, "Check the API token"), (500, "500")],
    )
    def test_http_errors(self, status_code, match):
        """Test that HTTP errors become FetchError."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, status_code=status_code)
            with pytest.raises(FetchError, match=match) as exc_info:
                client.fetch_latest_updates("12345")

        assert isinstance(exc_info.value.__cause__, requests.exceptions.HTTPError)

    def test_connection_error(self):
        """Test that connection failures become FetchError."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, exc=requests.exceptions.ConnectTimeout)
            with pytest.raises(FetchError, match="Failed to fetch updates"):
                client.fetch_latest_updates("12345")

    def test_invalid_json(self):
        """Test that a non-JSON body becomes FetchError."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, text="<html>maintenance</html>")
            with pytest.raises(FetchError, match="Invalid JSON"):
                client.fetch_latest_updates("12345")

    def test_non_list_payload(self):
        """Test that a JSON object instead of a list is rejected."""
        client = MarketplaceClient(base_url=BASE_URL)

        with requests_mock.Mocker() as m:
            m.get(UPDATES_URL, json={"error": "nope"})
            with pytest.raises(FetchError, match="Expected a JSON list"):
                client.fetch_latest_updates("12345")

    def test_satisfies_protocol(self):
        """Test that the client implements UpdateSource."""
        assert isinstance(MarketplaceClient(base_url=BASE_URL), UpdateSource)


class TestExpandToken:
    """Tests for token expansion."""

    def test_literal(self):
        """Test that literal tokens pass through."""
        assert expand_token("abc") == "abc"

    def test_empty(self):
        """Test that empty tokens mean no authentication."""
        assert expand_token(None) is None
        assert expand_token("") is None

    def test_environment_reference(self, monkeypatch):
        """Test that ${VAR} reads the environment."""
        monkeypatch.setenv("PUBTRACK_TEST_TOKEN", "from-env")

        assert expand_token("${PUBTRACK_TEST_TOKEN}") == "from-env"

    def test_missing_environment_variable(self, monkeypatch):
        """Test that an unset variable means no authentication."""
        monkeypatch.delenv("PUBTRACK_TEST_TOKEN", raising=False)

        assert expand_token("${PUBTRACK_TEST_TOKEN}") is None
