import json

from panchayatdb.app.db_debug import db_debug, db_debug_enabled, mask_identifier


def test_disabled_by_default(tmp_path, monkeypatch):
    log_path = tmp_path / "debug.jsonl"
    monkeypatch.setenv("PANCHAYATDB_DB_DEBUG_LOG", str(log_path))

    db_debug("collection.load", table="citizens")

    assert not db_debug_enabled()
    assert not log_path.exists()


def test_events_are_json_lines_with_secrets_hidden(tmp_path, monkeypatch):
    log_path = tmp_path / "logs" / "debug.jsonl"
    monkeypatch.setenv("PANCHAYATDB_DB_DEBUG", "1")
    monkeypatch.setenv("PANCHAYATDB_DB_DEBUG_LOG", str(log_path))

    db_debug("session.login", username="admin", password="secret", api_key="anon")
    db_debug("mutation.update_citizen", aadhar_number="123456789012", nested={"Authorization": "Bearer x"})

    first, second = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert first["event"] == "session.login"
    assert first["data"] == {"username": "admin", "password": "<redacted>", "api_key": "<redacted>"}
    assert second["seq"] == first["seq"] + 1
    assert second["data"]["aadhar_number"] == "********9012"
    assert second["data"]["nested"] == {"Authorization": "<redacted>"}


def test_mask_identifier_keeps_short_values():
    assert mask_identifier("123") == "123"
    assert mask_identifier(123456789012) == "********9012"
    assert mask_identifier(None) == ""
