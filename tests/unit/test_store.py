"""Tests for subscription stores."""

import json
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

from bytesize_digest.errors import (
    ConfigError, ErrorCode, RateLimitedError, StoreError, TransientNetworkError,
)
from bytesize_digest.models import DeliveryOutcome, DeliveryStatus, Subscription
from bytesize_digest.store.base import MockSubscriptionStore, SubscriptionStore, get_store
from bytesize_digest.store.file import FileSubscriptionStore
from bytesize_digest.store.supabase import SupabaseSubscriptionStore, parse_subscription_rows


FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


def http_response(status_code=200, body=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def test_store_interface():
    with pytest.raises(TypeError):
        SubscriptionStore()


def test_mock_store_fail_count():
    """Mock store fails the configured number of queries, then answers."""
    store = MockSubscriptionStore([Subscription("a@x.io", "naval")], fail_count=1)
    with pytest.raises(StoreError):
        store.list_active_subscriptions()
    assert store.list_active_subscriptions() == [Subscription("a@x.io", "naval")]
    assert store.query_count == 2


def test_mock_store_filters_inactive():
    store = MockSubscriptionStore([
        Subscription("a@x.io", "naval"),
        Subscription("a@x.io", "paulg", active=False),
    ])
    assert [s.handle for s in store.list_active_subscriptions()] == ["naval"]


def test_parse_subscription_rows():
    rows = [
        {"handle": "naval", "users": {"email": "a@x.io"}},
        {"handle": " paulg ", "users": [{"email": "b@x.io"}]},
        {"handle": "", "users": {"email": "c@x.io"}},
        {"handle": "sama", "users": None},
        {"handle": "sama", "users": []},
        "garbage",
    ]
    assert parse_subscription_rows(rows) == [
        Subscription("a@x.io", "naval"),
        Subscription("b@x.io", "paulg"),
    ]


class TestSupabaseSubscriptionStore:
    """Tests for SupabaseSubscriptionStore with HTTP mocked."""

    def store(self):
        return SupabaseSubscriptionStore(url="https://proj.supabase.co/", key="svc-key")

    def test_requires_credentials(self):
        with pytest.raises(ConfigError) as exc:
            SupabaseSubscriptionStore(url=None, key="k")
        assert exc.value.code == ErrorCode.CONFIG_MISSING_CREDENTIALS

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_query(self, mock_get):
        mock_get.return_value = http_response(200, [{"handle": "naval", "users": {"email": "a@x.io"}}])

        subs = self.store().list_active_subscriptions()

        assert subs == [Subscription("a@x.io", "naval")]
        assert mock_get.call_args[0][0] == "https://proj.supabase.co/rest/v1/subscriptions"
        kwargs = mock_get.call_args[1]
        assert kwargs["params"] == {"select": "handle,users!inner(email)", "is_active": "eq.true"}
        assert kwargs["headers"]["apikey"] == "svc-key"
        assert kwargs["headers"]["Authorization"] == "Bearer svc-key"

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_auth_failure_is_config_error(self, mock_get):
        mock_get.return_value = http_response(401, {})
        with pytest.raises(ConfigError) as exc:
            self.store().list_active_subscriptions()
        assert exc.value.code == ErrorCode.STORE_AUTH_FAILED

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_rate_limited(self, mock_get):
        mock_get.return_value = http_response(429, {})
        with pytest.raises(RateLimitedError):
            self.store().list_active_subscriptions()

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_server_error(self, mock_get):
        mock_get.return_value = http_response(500, {}, text="internal")
        with pytest.raises(StoreError) as exc:
            self.store().list_active_subscriptions()
        assert exc.value.code == ErrorCode.STORE_QUERY_FAILED

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.Timeout()
        with pytest.raises(TransientNetworkError):
            self.store().list_active_subscriptions()

    @patch("bytesize_digest.store.supabase.requests.get")
    def test_non_list_payload(self, mock_get):
        mock_get.return_value = http_response(200, {"message": "oops"})
        with pytest.raises(StoreError):
            self.store().list_active_subscriptions()


class TestFileSubscriptionStore:
    """Tests for FileSubscriptionStore."""

    def test_reads_fixture(self):
        store = FileSubscriptionStore(str(FIXTURES_DIR / "subscriptions.json"))
        subs = store.list_active_subscriptions()

        assert ("bob@example.com", "elonmusk") not in [(s.email, s.handle) for s in subs]
        assert all(s.handle for s in subs)
        assert ("alice@example.com", "naval") in [(s.email, s.handle) for s in subs]

    def test_missing_file(self, tmp_path):
        with pytest.raises(StoreError):
            FileSubscriptionStore(str(tmp_path / "none.json")).list_active_subscriptions()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "subs.json"
        path.write_text("[not json")
        with pytest.raises(StoreError) as exc:
            FileSubscriptionStore(str(path)).list_active_subscriptions()
        assert exc.value.code == ErrorCode.STORE_FILE_CORRUPT

    def test_bare_list_accepted(self, tmp_path):
        path = tmp_path / "subs.json"
        path.write_text(json.dumps([{"email": "a@x.io", "handle": "naval"}]))
        assert FileSubscriptionStore(str(path)).list_active_subscriptions() == [Subscription("a@x.io", "naval")]

    def test_record_outcome_writes_status(self, tmp_path):
        status_path = tmp_path / "data" / "status.json"
        store = FileSubscriptionStore(str(tmp_path / "subs.json"), status_path=str(status_path))

        store.record_outcome("a@x.io", DeliveryOutcome("a@x.io", DeliveryStatus.SENT, message_id="m1"))

        status = json.loads(status_path.read_text())
        assert status["subscribers"]["a@x.io"]["message_id"] == "m1"


class TestGetStore:
    """Tests for the store factory."""

    def test_supabase(self):
        store = get_store({"provider": "supabase"}, {"supabase_url": "https://p.supabase.co", "supabase_key": "k"})
        assert isinstance(store, SupabaseSubscriptionStore)

    def test_file(self, tmp_path):
        store = get_store({"provider": "file", "path": str(tmp_path / "s.json")})
        assert isinstance(store, FileSubscriptionStore)

    def test_file_requires_path(self):
        with pytest.raises(ConfigError) as exc:
            get_store({"provider": "file"})
        assert exc.value.code == ErrorCode.CONFIG_MISSING_REQUIRED_FIELD

    def test_unknown(self):
        with pytest.raises(ConfigError):
            get_store({"provider": "postgres"})
