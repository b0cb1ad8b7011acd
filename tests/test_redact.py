from __future__ import annotations

from sparkmap._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "lot_id": "lot_39",
        "status": "FULL",
        "apikey": "anon-key",
        "Authorization": "Bearer anon-key",
        "device_id": "c0ffee",
        "nested": {"lat": 42.7, "lng": -84.4},
    }

    redacted = redact_for_log(payload)
    assert redacted["lot_id"] == "lot_39"
    assert redacted["status"] == "FULL"
    assert redacted["apikey"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["device_id"] == "<redacted>"
    assert redacted["nested"] == {"lat": "<redacted>", "lng": "<redacted>"}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_handles_sequences_and_bytes() -> None:
    redacted = redact_for_log([{"token": "t"}, b"abc", None, 3])
    assert redacted == [{"token": "<redacted>"}, "<bytes:3b>", None, 3]
