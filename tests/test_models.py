from datetime import datetime, timezone

import pytest

from solfinder.models import (
    UNKNOWN,
    Source,
    TokenMetadata,
    TokenRecord,
    first_present,
    known_label,
    merge_all,
    merge_record,
    sanitize_label,
    timestamp_to_datetime,
)

MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
NOW = 1_700_000_000.0


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Bonk", "Bonk"),
        ("  Dog wif hat  ", "Dog wif hat"),
        ("Bonk\x00\x00\x00", "Bonk"),
        ("MOON\U0001F680", "MOON"),
        ("a$b%c", "abc"),
        ("my-token_2", "my-token_2"),
        ("x", UNKNOWN),
        ("", UNKNOWN),
        ("\U0001F680\U0001F680", UNKNOWN),
        (None, UNKNOWN),
        (b"BYTES\x00", "BYTES"),
    ],
)
def test_sanitize_label(raw, expected):
    assert sanitize_label(raw) == expected


def test_sanitized_labels_only_use_allowed_characters():
    label = sanitize_label("Ünïcødé <script>alert(1)</script> tok\u200bn")
    assert all(ch.isalnum() and ch.isascii() or ch in " _-" for ch in label)


def test_record_sanitizes_on_construction():
    record = TokenRecord(address=MINT, name="B", symbol="BONK\x00")
    assert record.name == UNKNOWN
    assert record.symbol == "BONK"


def test_mint_date_accepts_seconds_and_milliseconds():
    from_seconds = TokenRecord(address=MINT, name="Bonk", mint_date=NOW)
    from_millis = TokenRecord(address=MINT, name="Bonk", mint_date=NOW * 1000)
    assert from_seconds.mint_date == from_millis.mint_date
    assert from_seconds.mint_date.tzinfo is timezone.utc


@pytest.mark.parametrize("value", [None, 0, -5, 10**20, float("inf"), float("nan")])
def test_unusable_timestamps_become_undated(value):
    assert timestamp_to_datetime(value) is None
    assert TokenRecord(address=MINT, name="Bonk", mint_date=value).mint_date is None


def test_is_new_respects_window():
    record = TokenRecord(address=MINT, name="Bonk", mint_date=NOW - 3600)
    assert record.is_new(window=2 * 3600, now=NOW)
    assert not record.is_new(window=1800, now=NOW)


def test_is_new_is_monotonic_in_window():
    record = TokenRecord(address=MINT, name="Bonk", mint_date=NOW - 5 * 3600)
    flags = [record.is_new(window=hours * 3600, now=NOW) for hours in range(0, 48)]
    first_true = flags.index(True)
    assert all(flags[first_true:])
    assert not any(flags[:first_true])


def test_undated_record_is_never_new():
    record = TokenRecord(address=MINT, name="Bonk")
    assert not record.is_new_token
    assert record.age_seconds() is None


def test_with_window_changes_freshness():
    fresh = datetime.now(tz=timezone.utc).timestamp() - 2 * 3600
    record = TokenRecord(address=MINT, name="Bonk", mint_date=fresh, freshness_window=3600)
    assert not record.is_new_token
    assert record.with_window(3 * 3600).is_new_token


def test_to_dict_uses_public_field_names():
    record = TokenRecord(
        address=MINT,
        name="Bonk",
        symbol="BONK",
        source=Source.KNOWN,
        mint_date=datetime(2023, 1, 1, tzinfo=timezone.utc),
        supply="100",
        metadata=TokenMetadata("Bonk", "BONK", "https://example.org/bonk.json"),
    )
    payload = record.to_dict()
    assert payload["mintDate"] == "2023-01-01T00:00:00+00:00"
    assert payload["isNewToken"] is False
    assert payload["source"] == "known"
    assert payload["metadata"]["uri"] == "https://example.org/bonk.json"


def test_merge_prefers_higher_priority_source():
    results = {}
    on_chain = TokenRecord(address=MINT, name="Bonk chain", source=Source.ON_CHAIN)
    listed = TokenRecord(address=MINT, name="Bonk list", source=Source.AGGREGATOR)
    known = TokenRecord(address=MINT, name="Bonk", source=Source.KNOWN)

    assert merge_record(results, on_chain)
    assert merge_record(results, listed)
    assert results[MINT].name == "Bonk list"
    assert merge_record(results, known)
    assert not merge_record(results, on_chain)
    assert results[MINT].source == Source.KNOWN


def test_merge_keeps_first_on_equal_priority():
    results = {}
    first = TokenRecord(address=MINT, name="First", source=Source.ON_CHAIN)
    second = TokenRecord(address=MINT, name="Second", source=Source.ON_CHAIN)
    assert merge_all(results, [first, second]) == 1
    assert results[MINT].name == "First"


def test_merge_map_has_one_record_per_address():
    results = {}
    records = [TokenRecord(address=f"addr{i % 3}", name="Tok", source=Source.ON_CHAIN) for i in range(9)]
    merge_all(results, records)
    assert sorted(results) == ["addr0", "addr1", "addr2"]


def test_first_present_and_known_label():
    assert first_present(lambda: None, lambda: "b", lambda: "c") == "b"
    assert first_present(lambda: None) is None
    assert known_label("?") is None
    assert known_label("Bonk") == "Bonk"
