import io
import json
from unittest.mock import MagicMock
from urllib.error import HTTPError, URLError

import pytest

from panchayatdb.app.registry_models import CITIZENS_TABLE, VILLAGES_TABLE
from panchayatdb.app.remote_store import (
    RemoteError,
    StaleReferenceError,
    SupabaseRemoteStore,
    SupabaseStoreConfig,
)

CONFIG = SupabaseStoreConfig(url="https://demo.supabase.co", api_key="anon-key", schema="public", timeout_seconds=5)

def create_mock_response(payload, status=200):
    response = MagicMock()
    response.getcode.return_value = status
    response.read.return_value = b"" if payload is None else json.dumps(payload).encode("utf-8")
    context = MagicMock()
    context.__enter__.return_value = response
    context.__exit__.return_value = False
    return context

@pytest.fixture
def mock_urlopen(monkeypatch):
    mocked = MagicMock()
    monkeypatch.setattr("panchayatdb.app.remote_store.urlopen", mocked)
    return mocked

def _sent_request(mock_urlopen, index=-1):
    args, kwargs = mock_urlopen.call_args_list[index]
    return args[0], kwargs

def test_select_all_sends_keyed_request(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([{"village_id": 1, "village_name": "Rampur"}])
    store = SupabaseRemoteStore(CONFIG)

    rows = store.select_all(VILLAGES_TABLE)

    request, kwargs = _sent_request(mock_urlopen)
    assert rows == [{"village_id": 1, "village_name": "Rampur"}]
    assert request.full_url == "https://demo.supabase.co/rest/v1/villages?select=*&order=village_id.asc&limit=1000&offset=0"
    assert request.get_method() == "GET"
    assert request.get_header("Apikey") == "anon-key"
    assert request.get_header("Authorization") == "Bearer anon-key"
    assert request.get_header("Accept-profile") == "public"
    assert kwargs["timeout"] == 5

def test_select_all_pages_until_a_short_page(mock_urlopen):
    pages = [
        [{"village_id": 1}, {"village_id": 2}],
        [{"village_id": 3}, {"village_id": 4}],
        [{"village_id": 5}],
    ]
    mock_urlopen.side_effect = [create_mock_response(page) for page in pages]
    store = SupabaseRemoteStore(SupabaseStoreConfig(url="https://demo.supabase.co", api_key="k", page_size=2))

    rows = store.select_all(VILLAGES_TABLE)

    assert [row["village_id"] for row in rows] == [1, 2, 3, 4, 5]
    assert [_sent_request(mock_urlopen, index)[0].full_url for index in range(3)] == [
        "https://demo.supabase.co/rest/v1/villages?select=*&order=village_id.asc&limit=2&offset=0",
        "https://demo.supabase.co/rest/v1/villages?select=*&order=village_id.asc&limit=2&offset=2",
        "https://demo.supabase.co/rest/v1/villages?select=*&order=village_id.asc&limit=2&offset=4",
    ]

def test_select_all_asks_for_one_more_page_after_an_exact_fit(mock_urlopen):
    mock_urlopen.side_effect = [
        create_mock_response([{"aadhar_number": "111111111111"}, {"aadhar_number": "222222222222"}]),
        create_mock_response([]),
    ]
    store = SupabaseRemoteStore(SupabaseStoreConfig(url="https://demo.supabase.co", api_key="k", page_size=2))

    rows = store.select_all(CITIZENS_TABLE)

    assert len(rows) == 2
    assert mock_urlopen.call_count == 2
    assert "order=aadhar_number.asc" in _sent_request(mock_urlopen, 0)[0].full_url

def test_insert_asks_for_the_stored_row(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([{"village_id": 7, "village_name": "Rampur"}])
    store = SupabaseRemoteStore(CONFIG)

    row = store.insert(VILLAGES_TABLE, {"village_name": "Rampur"})

    request, _kwargs = _sent_request(mock_urlopen)
    assert row["village_id"] == 7
    assert request.get_method() == "POST"
    assert request.get_header("Prefer") == "return=representation"
    assert json.loads(request.data.decode("utf-8")) == [{"village_name": "Rampur"}]

def test_update_targets_the_key(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([{"aadhar_number": "123456789012", "age": 31}])
    store = SupabaseRemoteStore(CONFIG)

    row = store.update(CITIZENS_TABLE, "aadhar_number", "123456789012", {"age": 31})

    request, _kwargs = _sent_request(mock_urlopen)
    assert row["age"] == 31
    assert request.get_method() == "PATCH"
    assert request.full_url.endswith("aadhar_number=eq.123456789012")

def test_empty_update_result_is_a_stale_reference(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([])
    store = SupabaseRemoteStore(CONFIG)

    with pytest.raises(StaleReferenceError) as excinfo:
        store.update(CITIZENS_TABLE, "aadhar_number", "123456789012", {"age": 31})

    assert excinfo.value.status == 404

def test_empty_delete_result_is_a_stale_reference(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([])
    store = SupabaseRemoteStore(CONFIG)

    with pytest.raises(StaleReferenceError):
        store.delete(VILLAGES_TABLE, "village_id", 3)

def test_select_matching_builds_eq_filters(mock_urlopen):
    mock_urlopen.return_value = create_mock_response([{"id": 1, "username": "admin"}])
    store = SupabaseRemoteStore(CONFIG)

    store.select_matching("admins", {"username": "admin", "password": "p@ss word"})

    request, _kwargs = _sent_request(mock_urlopen)
    assert "username=eq.admin" in request.full_url
    assert "password=eq.p%40ss%20word" in request.full_url

def test_http_error_becomes_remote_error(mock_urlopen):
    mock_urlopen.side_effect = HTTPError(
        "https://demo.supabase.co/rest/v1/citizens",
        409,
        "Conflict",
        {},
        io.BytesIO(b'{"message": "duplicate key value violates unique constraint"}'),
    )
    store = SupabaseRemoteStore(CONFIG)

    with pytest.raises(RemoteError) as excinfo:
        store.insert(CITIZENS_TABLE, {"aadhar_number": "123456789012"})

    assert excinfo.value.status == 409
    assert "duplicate key" in str(excinfo.value)

def test_network_error_becomes_remote_error(mock_urlopen):
    mock_urlopen.side_effect = URLError("timed out")
    store = SupabaseRemoteStore(CONFIG)

    with pytest.raises(RemoteError):
        store.select_all(CITIZENS_TABLE)

def test_non_json_body_is_rejected(mock_urlopen):
    context = create_mock_response(None)
    context.__enter__.return_value.read.return_value = b"<html>oops</html>"
    mock_urlopen.return_value = context
    store = SupabaseRemoteStore(CONFIG)

    with pytest.raises(RemoteError):
        store.select_all(CITIZENS_TABLE)

def test_unconfigured_store_refuses_requests(mock_urlopen):
    store = SupabaseRemoteStore(SupabaseStoreConfig())

    with pytest.raises(RemoteError):
        store.select_all(CITIZENS_TABLE)
    mock_urlopen.assert_not_called()

def test_subscribe_starts_one_feed_per_table_and_unsubscribe_stops_it():
    feeds = []

    def factory(on_change):
        feed = MagicMock()
        feed.on_change = on_change
        feeds.append(feed)
        return feed

    store = SupabaseRemoteStore(CONFIG, realtime_factory=factory)
    changes = []
    subscription = store.subscribe(CITIZENS_TABLE, lambda: changes.append(True))

    started = feeds[0].start.call_args[0][0]
    assert started.table == CITIZENS_TABLE
    assert started.url == "https://demo.supabase.co"
    assert started.topic == "realtime:public:citizens"

    feeds[0].on_change()
    assert changes == [True]

    store.unsubscribe(subscription)
    store.unsubscribe(subscription)
    feeds[0].stop.assert_called_once_with()
    feeds[0].deleteLater.assert_called_once_with()

def test_config_from_mapping_normalizes_values():
    config = SupabaseStoreConfig.from_mapping({"url": " https://x.supabase.co/ ", "api_key": "k", "timeout_seconds": "0"})
    assert config.url == "https://x.supabase.co"
    assert config.schema == "public"
    assert config.timeout_seconds == 1.0
    assert config.page_size == 1000
    assert config.configured
