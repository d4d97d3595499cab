"""
Scan orchestration: universe discovery, gated fan-out, fan-in and ranking.
"""
import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from .evaluator import SymbolEvaluator
from .gate import ConcurrencyGate
from .models import (
    BearishEntry,
    BullishEntry,
    LoserStock,
    LosersScanResult,
    ScanResult,
    ScanStatus,
    SymbolClassification,
    to_float,
)

logger = logging.getLogger(__name__)

TOP_N = 10
IST = timezone(timedelta(hours=5, minutes=30))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_scan_timestamp(now: datetime, tz: timezone = IST, label: str = "IST") -> str:
    return now.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S") + f" {label}"


def scan_id(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def rank_results(
    classifications: Sequence[SymbolClassification], top_n: int = TOP_N
) -> Tuple[List[BullishEntry], List[BearishEntry]]:
    """Build bullish/bearish top lists from qualified tickers.

    Input order is preserved among ties (sorted() is stable), so the result
    depends only on the aggregate, not on which fetch finished first.
    """
    qualified = [c for c in classifications if c.status is ScanStatus.SUCCESS]
    bullish = sorted(qualified, key=lambda c: c.call_open_low, reverse=True)[:top_n]
    bearish = sorted(qualified, key=lambda c: c.put_open_low, reverse=True)[:top_n]
    return (
        [BullishEntry(symbol=c.symbol, ce_ol=c.call_open_low, pe_oh=c.put_open_high) for c in bullish],
        [BearishEntry(symbol=c.symbol, pe_ol=c.put_open_low, ce_oh=c.call_open_high) for c in bearish],
    )


class ScanOrchestrator:
    """Runs one full F&O scan against an open upstream client."""

    def __init__(
        self,
        target_expiry: str,
        gate_capacity: int = 10,
        tz: timezone = IST,
        tz_label: str = "IST",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.target_expiry = target_expiry
        self.gate_capacity = gate_capacity
        self.tz = tz
        self.tz_label = tz_label
        self.clock = clock

    async def run(self, client) -> ScanResult:
        """Fetch the universe, evaluate every ticker under the gate and rank.

        A universe failure (UniverseFetchError) propagates; per-ticker
        failures are recorded in their classification and excluded from totals.
        """
        logger.info(f"FnO scan started (expiry {self.target_expiry})")
        started = time.monotonic()

        symbols = await client.fetch_fno_symbols()
        gate = ConcurrencyGate(self.gate_capacity)
        evaluator = SymbolEvaluator(client, self.target_expiry)

        async def evaluate(symbol: str) -> SymbolClassification:
            async with gate:
                return await evaluator.evaluate(symbol)

        classifications = await asyncio.gather(*(evaluate(s) for s in symbols))

        scanned = [c for c in classifications if not c.is_error]
        qualified = [c for c in scanned if c.status is ScanStatus.SUCCESS]
        bullish, bearish = rank_results(classifications)

        elapsed = round(time.monotonic() - started, 2)
        now = self.clock()
        result = ScanResult(
            id=scan_id(now),
            scan_timestamp=format_scan_timestamp(now, self.tz, self.tz_label),
            total_symbols=len(symbols),
            total_scanned_successfully=len(scanned),
            stocks_meeting_conditions=len(qualified),
            scan_time=elapsed,
            expiry=self.target_expiry,
            bullish=bullish,
            bearish=bearish,
        )
        failed = len(classifications) - len(scanned)
        logger.info(
            f"FnO scan complete: {result.stocks_meeting_conditions} qualified, "
            f"{result.total_scanned_successfully}/{result.total_symbols} scanned, "
            f"{failed} failed in {elapsed:.2f}s"
        )
        return result


def parse_loser(row: dict) -> Optional[LoserStock]:
    """Keep EQ-series rows whose open equals the day's high."""
    if row.get("series") != "EQ":
        return None
    open_price = to_float(row.get("open_price"))
    high_price = to_float(row.get("high_price"))
    if open_price != high_price:
        return None
    return LoserStock(
        symbol=str(row.get("symbol") or ""),
        open=open_price,
        high=high_price,
        low=to_float(row.get("low_price")),
        ltp=to_float(row.get("ltp")),
        change=to_float(row.get("perChange")),
        volume=to_float(row.get("trade_quantity")),
    )


class LosersScanOrchestrator:
    """Runs one Top Losers OH (open = high) scan."""

    def __init__(self, tz: timezone = IST, tz_label: str = "IST", clock: Callable[[], datetime] = _utcnow):
        self.tz = tz
        self.tz_label = tz_label
        self.clock = clock

    async def run(self, client) -> LosersScanResult:
        logger.info("Top Losers OH scan started")
        started = time.monotonic()

        rows = await client.fetch_losers()
        stocks = [s for s in (parse_loser(r) for r in rows) if s is not None]

        elapsed = round(time.monotonic() - started, 2)
        now = self.clock()
        result = LosersScanResult(
            id=scan_id(now),
            scan_timestamp=format_scan_timestamp(now, self.tz, self.tz_label),
            total_fosec_stocks=len(rows),
            qualified_stocks=len(stocks),
            scan_time=elapsed,
            stocks=stocks,
        )
        logger.info(f"Losers OH scan complete: {len(stocks)} stocks found in {elapsed:.2f}s")
        return result
