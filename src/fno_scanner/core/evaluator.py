"""
Per-ticker evaluation: the FUTSTK eligibility gate and the OPTSTK open=low/high counters.
"""
import asyncio
import logging
from typing import Iterable, List, Optional

import aiohttp

from .errors import UpstreamHTTPError
from .models import DerivativeRecord, OptionSide, ScanStatus, SymbolClassification

logger = logging.getLogger(__name__)

MAX_OPEN_DEVIATION_PCT = 0.5


def open_deviation_pct(record: DerivativeRecord) -> Optional[float]:
    """Percent move of open from previous close, or None without a usable close."""
    if record.prev_close <= 0:
        return None
    # multiply before dividing so round-number boundaries (e.g. 100 -> 100.5) stay exact
    return (record.open_price - record.prev_close) * 100.0 / record.prev_close


def is_eligible_future(record: DerivativeRecord, target_expiry: str) -> bool:
    if not record.is_stock_future or record.expiry_date != target_expiry:
        return False
    pct = open_deviation_pct(record)
    if pct is None:
        return False
    return -MAX_OPEN_DEVIATION_PCT <= pct <= MAX_OPEN_DEVIATION_PCT


def parse_records(raw_rows: Iterable) -> List[DerivativeRecord]:
    records = []
    for row in raw_rows or []:
        record = DerivativeRecord.from_raw(row)
        if record is not None:
            records.append(record)
    return records


def classify_records(symbol: str, records: Iterable[DerivativeRecord], target_expiry: str) -> SymbolClassification:
    """Classify one ticker's records against the target expiry.

    The ticker must first pass the eligibility gate (a FUTSTK at the target
    expiry opening within +/-0.5% of previous close). Only then are traded
    OPTSTK records at that expiry counted. Price comparisons are exact.
    """
    records = list(records)
    if not any(is_eligible_future(r, target_expiry) for r in records):
        return SymbolClassification(symbol=symbol, status=ScanStatus.CONDITION_NOT_MET)

    call_open_low = call_open_high = put_open_low = put_open_high = 0
    for r in records:
        if r.expiry_date != target_expiry or not r.is_stock_option:
            continue
        if r.open_price <= 0 or r.total_traded_volume <= 0:
            continue
        side = r.side
        if side is OptionSide.CALL:
            if r.open_price == r.low_price:
                call_open_low += 1
            if r.open_price == r.high_price:
                call_open_high += 1
        elif side is OptionSide.PUT:
            if r.open_price == r.low_price:
                put_open_low += 1
            if r.open_price == r.high_price:
                put_open_high += 1

    return SymbolClassification(
        symbol=symbol,
        call_open_low=call_open_low,
        call_open_high=call_open_high,
        put_open_low=put_open_low,
        put_open_high=put_open_high,
        status=ScanStatus.SUCCESS,
    )


class SymbolEvaluator:
    """Fetch one ticker's derivatives listing and classify it.

    Transport failures never propagate: they come back as a classification
    with an error status and zero counters.
    """

    def __init__(self, client, target_expiry: str):
        self.client = client
        self.target_expiry = target_expiry

    async def evaluate(self, symbol: str) -> SymbolClassification:
        try:
            raw_rows = await self.client.fetch_derivatives(symbol)
            records = parse_records(raw_rows)
        except UpstreamHTTPError as e:
            logger.warning(f"{symbol}: HTTP {e.status}")
            return SymbolClassification(symbol=symbol, status=ScanStatus.HTTP_ERROR, detail=str(e.status))
        except asyncio.TimeoutError:
            logger.warning(f"{symbol}: timed out")
            return SymbolClassification(symbol=symbol, status=ScanStatus.TIMEOUT)
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"{symbol}: transport error: {e}")
            return SymbolClassification(symbol=symbol, status=ScanStatus.TRANSPORT_ERROR, detail=str(e))
        except Exception as e:
            logger.exception(f"{symbol}: unexpected error while fetching")
            return SymbolClassification(symbol=symbol, status=ScanStatus.TRANSPORT_ERROR, detail=str(e))

        return classify_records(symbol, records, self.target_expiry)
