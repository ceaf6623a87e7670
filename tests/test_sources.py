import asyncio
import time
from datetime import datetime, timezone

import pytest

from solfinder.errors import RemoteCallError
from solfinder.models import Source
from solfinder.resolver import TokenResolver
from solfinder.rpc import TOKEN_PROGRAM_ID
from solfinder.sources import (
    KnownRegistrySource,
    LedgerScanSource,
    SearchContext,
    TokenListSource,
)
from solfinder.sources.token_list import substring_hit
from solfinder.tx_cache import TransactionCache

from fakes import corrupt, new_mint, unreachable

BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
NOW = time.time()


def _ctx(gateway, query="bonk", time_range="all"):
    return SearchContext(query=query, time_range=time_range, now=NOW, resolver=TokenResolver(gateway))


def _seed_scan(gateway, count, *, name="Bonk", start=None):
    start = int(NOW) - 60 if start is None else start
    mints = []
    for i in range(count):
        mint = gateway.add_mint(new_mint(), name=f"{name} {i}", symbol=f"B{i}")
        gateway.add_transaction(f"sig{i}", [mint], start - i, program=TOKEN_PROGRAM_ID)
        mints.append(mint)
    return mints


# --- known registry -------------------------------------------------------


@pytest.mark.asyncio
async def test_known_source_falls_back_to_registry_entry(gateway):
    records = await KnownRegistrySource().collect(_ctx(gateway, " BONK "))
    assert [(r.address, r.source, r.symbol) for r in records] == [(BONK, Source.KNOWN, "BONK")]


@pytest.mark.asyncio
async def test_known_source_prefers_on_chain_labels(gateway):
    gateway.add_mint(BONK, metadata=("Bonk", "BONK", "https://arweave.net/bonk"), supply="88")
    records = await KnownRegistrySource().collect(_ctx(gateway, "bonk"))
    assert records[0].supply == "88"
    assert records[0].metadata.uri == "https://arweave.net/bonk"


@pytest.mark.asyncio
async def test_known_source_survives_ledger_outage(gateway):
    gateway.account_errors[BONK] = unreachable()
    records = await KnownRegistrySource().collect(_ctx(gateway, "bonk"))
    assert records[0].name == "Bonk"


def test_known_source_candidates():
    source = KnownRegistrySource()
    assert [entry.symbol for entry in source.candidates("usdc")] == ["USDC"]
    assert source.candidates("zzqxv") == []


# --- token list -----------------------------------------------------------


def _fetcher(payload, calls=None):
    async def fetch(url, **kwargs):
        if calls is not None:
            calls.append(url)
        if isinstance(payload, BaseException):
            raise payload
        return payload

    return fetch


@pytest.mark.asyncio
async def test_token_list_filters_and_parses_dates(gateway):
    dated, other = new_mint(), new_mint()
    payload = [
        {"address": dated, "name": "Bonk Inu", "symbol": "BINU", "created_at": "2024-01-01T00:00:00Z"},
        {"address": other, "name": "Pepe", "symbol": "PEPE", "created_at": "2024-01-01T00:00:00Z"},
        {"name": "No address", "symbol": "BONKX"},
    ]
    calls = []
    source = TokenListSource("https://list.example/tokens", fetch=_fetcher(payload, calls))
    records = await source.collect(_ctx(gateway))
    assert calls == ["https://list.example/tokens"]
    assert [r.address for r in records] == [dated]
    assert records[0].source == Source.AGGREGATOR
    assert records[0].mint_date == datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_token_list_enriches_undated_hits_up_to_limit(gateway):
    first, second = new_mint(), new_mint()
    gateway.signatures[first] = [{"signature": "a", "blockTime": 1_700_000_000}]
    gateway.signatures[second] = [{"signature": "b", "blockTime": 1_700_000_500}]
    payload = {
        "tokens": [
            {"address": first, "name": "Bonk One", "symbol": "B1"},
            {"address": second, "name": "Bonk Two", "symbol": "B2"},
        ]
    }
    source = TokenListSource(fetch=_fetcher(payload), enrich_limit=1)
    records = {r.address: r for r in await source.collect(_ctx(gateway))}
    assert records[first].mint_date.timestamp() == 1_700_000_000
    assert records[second].mint_date is None
    assert gateway.count("getSignaturesForAddress") == 1


@pytest.mark.asyncio
async def test_token_list_enrichment_failure_is_not_fatal(gateway):
    mint = new_mint()
    gateway.signature_error = unreachable()
    source = TokenListSource(fetch=_fetcher([{"address": mint, "name": "Bonk", "symbol": "BONK"}]))
    records = await source.collect(_ctx(gateway))
    assert records[0].mint_date is None


@pytest.mark.asyncio
async def test_token_list_survives_out_of_range_timestamps(gateway):
    good, huge, nan = new_mint(), new_mint(), new_mint()
    payload = [
        {"address": good, "name": "Bonk Good", "symbol": "BG", "created_at": 1_700_000_000},
        {"address": huge, "name": "Bonk Huge", "symbol": "BH", "created_at": 10**20},
        {"address": nan, "name": "Bonk Nan", "symbol": "BN", "created_at": float("nan")},
    ]
    source = TokenListSource(fetch=_fetcher(payload), enrich_limit=0)
    records = {r.address: r for r in await source.collect(_ctx(gateway))}
    assert set(records) == {good, huge, nan}
    assert records[good].mint_date.timestamp() == 1_700_000_000
    assert records[huge].mint_date is None
    assert records[nan].mint_date is None


@pytest.mark.asyncio
async def test_token_list_ignores_absurd_block_time(gateway):
    mint = new_mint()
    gateway.signatures[mint] = [{"signature": "a", "blockTime": 10**20}]
    source = TokenListSource(fetch=_fetcher([{"address": mint, "name": "Bonk", "symbol": "BONK"}]))
    records = await source.collect(_ctx(gateway))
    assert records[0].mint_date is None


@pytest.mark.asyncio
async def test_token_list_fetch_failure_propagates(gateway):
    source = TokenListSource(fetch=_fetcher(unreachable()))
    with pytest.raises(RemoteCallError):
        await source.collect(_ctx(gateway))


def test_substring_hit():
    assert substring_hit("bon", {"symbol": "BONK"})
    assert substring_hit("dez", {"address": BONK})
    assert not substring_hit("", {"symbol": "BONK"})
    assert not substring_hit("wif", {"symbol": "BONK", "name": "Bonk"})


# --- ledger scan ----------------------------------------------------------


@pytest.mark.asyncio
async def test_scan_skips_a_corrupt_transaction(gateway, no_sleep):
    mints = _seed_scan(gateway, 10)
    gateway.transactions["sig4"] = corrupt()
    source = LedgerScanSource(gateway, TransactionCache(100), batch_size=3, sleep=no_sleep)
    records = await source.collect(_ctx(gateway))
    assert sorted(r.address for r in records) == sorted(m for i, m in enumerate(mints) if i != 4)
    assert all(r.source == Source.ON_CHAIN for r in records)


@pytest.mark.asyncio
async def test_scan_only_returns_matching_mints(gateway, no_sleep):
    _seed_scan(gateway, 3, name="Bonk")
    other = gateway.add_mint(new_mint(), name="Pepe", symbol="PEPE")
    gateway.add_transaction("pepe", [other], int(NOW), program=TOKEN_PROGRAM_ID)
    source = LedgerScanSource(gateway, TransactionCache(100), sleep=no_sleep)
    records = await source.collect(_ctx(gateway, "pepe"))
    assert [r.address for r in records] == [other]


@pytest.mark.asyncio
async def test_scan_resolves_each_mint_once(gateway, no_sleep):
    mint = gateway.add_mint(new_mint(), name="Bonk", symbol="BONK")
    for i in range(6):
        gateway.add_transaction(f"dup{i}", [mint], int(NOW), program=TOKEN_PROGRAM_ID)
    source = LedgerScanSource(gateway, TransactionCache(100), batch_size=6, sleep=no_sleep)
    records = await source.collect(_ctx(gateway))
    assert len(records) == 1
    mint_lookups = [c for c in gateway.calls if c[0] == "getAccountInfo" and c[1] == mint]
    assert len(mint_lookups) == 1


@pytest.mark.asyncio
async def test_scan_reuses_cached_transactions(gateway, no_sleep):
    _seed_scan(gateway, 4)
    cache = TransactionCache(100)
    source = LedgerScanSource(gateway, cache, sleep=no_sleep)
    await source.collect(_ctx(gateway))
    fetched = gateway.count("getTransaction")
    assert fetched == 4
    await source.collect(_ctx(gateway))
    assert gateway.count("getTransaction") == fetched
    assert cache.hits == 4


@pytest.mark.asyncio
async def test_scan_respects_time_range_and_failed_transactions(gateway, no_sleep):
    recent = gateway.add_mint(new_mint(), name="Bonk Fresh", symbol="BF")
    old = gateway.add_mint(new_mint(), name="Bonk Old", symbol="BO")
    failed = gateway.add_mint(new_mint(), name="Bonk Failed", symbol="BX")
    gateway.add_transaction("recent", [recent], int(NOW) - 3600, program=TOKEN_PROGRAM_ID)
    gateway.add_transaction("old", [old], int(NOW) - 3 * 86400, program=TOKEN_PROGRAM_ID)
    gateway.add_transaction("failed", [failed], int(NOW) - 60, program=TOKEN_PROGRAM_ID)
    gateway.signatures[TOKEN_PROGRAM_ID][-1]["err"] = {"InstructionError": [0, "Custom"]}

    source = LedgerScanSource(gateway, TransactionCache(100), sleep=no_sleep)
    records = await source.collect(_ctx(gateway, time_range="24h"))
    assert [r.address for r in records] == [recent]
    assert ("getSignaturesForAddress", TOKEN_PROGRAM_ID, 200) in gateway.calls
    assert ("getTransaction", "old") not in gateway.calls


@pytest.mark.asyncio
async def test_scan_pauses_between_batches(gateway):
    _seed_scan(gateway, 5)
    delays = []

    async def sleep(delay):
        delays.append(delay)

    source = LedgerScanSource(gateway, TransactionCache(100), batch_size=2, batch_delay=0.3, sleep=sleep)
    await source.collect(_ctx(gateway))
    assert delays == [0.3, 0.3]


@pytest.mark.asyncio
async def test_scan_stops_at_deadline(gateway, no_sleep):
    _seed_scan(gateway, 9)
    ticks = iter([0.0, 0.0, 100.0, 100.0, 100.0])
    source = LedgerScanSource(
        gateway,
        TransactionCache(100),
        batch_size=3,
        deadline=10.0,
        sleep=no_sleep,
        clock=lambda: next(ticks),
    )
    records = await source.collect(_ctx(gateway))
    assert len(records) == 3
    assert gateway.count("getTransaction") == 3


@pytest.mark.asyncio
async def test_scan_fails_when_every_transaction_fails(gateway, no_sleep):
    _seed_scan(gateway, 3)
    for sig in list(gateway.transactions):
        gateway.transactions[sig] = unreachable()
    source = LedgerScanSource(gateway, TransactionCache(100), sleep=no_sleep)
    with pytest.raises(RemoteCallError):
        await source.collect(_ctx(gateway))


@pytest.mark.asyncio
async def test_scan_fails_when_listing_fails(gateway, no_sleep):
    gateway.signature_error = unreachable()
    source = LedgerScanSource(gateway, TransactionCache(100), sleep=no_sleep)
    with pytest.raises(RemoteCallError):
        await source.collect(_ctx(gateway))


def test_scan_with_no_activity_is_empty(gateway, no_sleep):
    source = LedgerScanSource(gateway, TransactionCache(100), sleep=no_sleep)
    assert asyncio.run(source.collect(_ctx(gateway))) == []
