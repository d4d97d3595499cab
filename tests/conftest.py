"""
Shared fixtures: an in-memory stand-in for NSEClient and temp-dir journals.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from fno_scanner.core.errors import UniverseFetchError
from fno_scanner.core.models import LosersScanResult, ScanCategory, ScanResult
from fno_scanner.core.orchestrator import LosersScanOrchestrator, ScanOrchestrator
from fno_scanner.db.journal import ResultJournal
from fno_scanner.service import ScanService

EXPIRY = "27-Feb-2026"
FIXED_NOW = datetime(2026, 2, 18, 3, 50, 0, tzinfo=timezone.utc)  # 09:20 IST, a Wednesday


def future(open_price, prev_close, expiry=EXPIRY):
    return {
        "instrumentType": "FUTSTK",
        "expiryDate": expiry,
        "openPrice": open_price,
        "prevClose": prev_close,
        "highPrice": open_price,
        "lowPrice": open_price,
        "totalTradedVolume": 1000,
    }


def option(side, open_price, low, high, volume=100, expiry=EXPIRY):
    return {
        "instrumentType": "OPTSTK",
        "expiryDate": expiry,
        "optionType": side,
        "openPrice": open_price,
        "lowPrice": low,
        "highPrice": high,
        "totalTradedVolume": volume,
    }


class FakeNSEClient:
    """Implements the NSEClient surface from canned data.

    `derivatives` maps symbol -> list of rows, or an exception instance to raise.
    """

    def __init__(self, symbols=None, derivatives=None, losers=None, delay=0.0, universe_error=None):
        self.symbols = list(symbols or [])
        self.derivatives = derivatives or {}
        self.losers = losers or []
        self.delay = delay
        self.universe_error = universe_error
        self.in_flight = 0
        self.max_in_flight = 0
        self.opened = 0
        self.closed = 0

    async def __aenter__(self):
        self.opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed += 1

    async def fetch_fno_symbols(self):
        if self.universe_error:
            raise UniverseFetchError(self.universe_error)
        return sorted(self.symbols)

    async def fetch_derivatives(self, symbol):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            rows = self.derivatives.get(symbol, [])
            if isinstance(rows, BaseException):
                raise rows
            return rows
        finally:
            self.in_flight -= 1

    async def fetch_losers(self):
        if self.universe_error:
            raise UniverseFetchError(self.universe_error)
        return self.losers


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_service(tmp_path, fixed_clock):
    def _make(client, capacity=30, gate_capacity=10):
        journals = {
            ScanCategory.FNO: ResultJournal(tmp_path / "fno_scan_results.json", ScanResult, capacity),
            ScanCategory.LOSERS: ResultJournal(tmp_path / "losers_scan_results.json", LosersScanResult, capacity),
        }
        orchestrators = {
            ScanCategory.FNO: ScanOrchestrator(EXPIRY, gate_capacity=gate_capacity, clock=fixed_clock),
            ScanCategory.LOSERS: LosersScanOrchestrator(clock=fixed_clock),
        }
        return ScanService(journals, orchestrators, lambda: client)

    return _make
