from __future__ import annotations

from pywxcontrol._redact import mask_token, redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "CityID": "2950159",
        "APIToken": "abcdef123456",
        "nested": {"appid": "abcdef123456", "name": "Berlin"},
        "history": [{"token": "t1"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["CityID"] == "2950159"
    assert redacted["APIToken"] == "<redacted>"
    assert redacted["nested"]["appid"] == "<redacted>"
    assert redacted["nested"]["name"] == "Berlin"
    assert redacted["history"][0]["token"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_masks_appid() -> None:
    url = "https://api.openweathermap.org/data/2.5/weather?id=2950159&units=metric&appid=abcdef123456"
    redacted = redact_url(url)
    assert "abcdef123456" not in redacted
    assert "id=2950159" in redacted
    assert "appid=<redacted>" in redacted


def test_redact_url_without_query_is_unchanged() -> None:
    assert redact_url("https://example.invalid/weather") == "https://example.invalid/weather"


def test_mask_token() -> None:
    assert mask_token("abcdef123456") == "****3456"
    assert mask_token("abc") == "****"
    assert mask_token("") == ""
    assert mask_token(None) == ""
