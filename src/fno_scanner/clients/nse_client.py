import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.errors import UniverseFetchError, UpstreamHTTPError

logger = logging.getLogger(__name__)

NSE_BASE = "https://www.nseindia.com"

# NSE rejects requests that don't look like they come from a browser
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.nseindia.com/",
    "Origin": "https://www.nseindia.com",
}


class NSEClient:
    """Thin async client for the NSE read endpoints used by the scanners.

    One instance (and one aiohttp session) per scan run:

        async with NSEClient() as client:
            symbols = await client.fetch_fno_symbols()
    """

    def __init__(
        self,
        base_url: str = NSE_BASE,
        session_timeout: float = 15,
        symbol_timeout: float = 10,
        warmup_timeout: float = 5,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session_timeout = session_timeout
        self.symbol_timeout = symbol_timeout
        self.warmup_timeout = warmup_timeout
        self.headers = headers or DEFAULT_HEADERS
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "NSEClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._session:
            return
        self._session = aiohttp.ClientSession(
            headers=self.headers,
            timeout=aiohttp.ClientTimeout(total=self.session_timeout),
        )
        await self._warm_up()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def _warm_up(self) -> None:
        """Hit the home page once so the session picks up NSE's cookies."""
        try:
            async with self._session.get(
                self.base_url, timeout=aiohttp.ClientTimeout(total=self.warmup_timeout)
            ) as response:
                await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Cookie warm-up failed (continuing): {e}")

    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None, timeout: Optional[float] = None) -> Any:
        if not self._session:
            raise RuntimeError("NSEClient not opened. Use `async with NSEClient()` or call .open().")
        url = f"{self.base_url}{path}"
        kwargs = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        async with self._session.get(url, **kwargs) as response:
            if response.status != 200:
                raise UpstreamHTTPError(response.status, url)
            return await response.json(content_type=None)

    async def fetch_fno_symbols(self) -> List[str]:
        """Return the sorted F&O underlying universe."""
        try:
            data = await self._get_json("/api/underlying-information", params={"segment": "equity"})
        except (UpstreamHTTPError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UniverseFetchError(f"Failed to fetch symbols: {e}") from e

        body = data.get("data") if isinstance(data, dict) else None
        rows = body.get("UnderlyingList") if isinstance(body, dict) else None
        symbols = []
        for row in rows or []:
            if isinstance(row, dict) and row.get("symbol"):
                symbols.append(str(row["symbol"]).strip())
        symbols.sort()
        return symbols

    async def fetch_derivatives(self, symbol: str) -> List[Dict[str, Any]]:
        """Return the raw derivatives rows for one underlying.

        Errors propagate to the caller (UpstreamHTTPError, asyncio.TimeoutError,
        aiohttp.ClientError); the evaluator turns them into a status.
        """
        data = await self._get_json(
            "/api/NextApi/apiClient/GetQuoteApi",
            params={"functionName": "getSymbolDerivativesData", "symbol": symbol},
            timeout=self.symbol_timeout,
        )
        rows = data.get("data") if isinstance(data, dict) else None
        return rows if isinstance(rows, list) else []

    async def fetch_losers(self) -> List[Dict[str, Any]]:
        """Return the F&O-securities rows of the top losers listing."""
        try:
            data = await self._get_json("/api/live-analysis-variations", params={"index": "loosers"})
        except (UpstreamHTTPError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UniverseFetchError(f"Failed to fetch losers: {e}") from e

        fosec = data.get("FOSec") if isinstance(data, dict) else None
        rows = fosec.get("data") if isinstance(fosec, dict) else None
        return [r for r in rows or [] if isinstance(r, dict)]
