"""
Scan service: the surface used by the HTTP routes and the scheduler.

Owns one result journal and one run lock per category, plus a factory for the
upstream client (one session per run).
"""
import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .clients.nse_client import NSEClient
from .config import ScannerConfig
from .core.errors import JournalWriteError, UnknownCategoryError
from .core.models import LosersScanResult, ScanCategory, ScanResult
from .core.orchestrator import LosersScanOrchestrator, ScanOrchestrator
from .db.journal import ResultJournal

logger = logging.getLogger(__name__)

AnyResult = Union[ScanResult, LosersScanResult]


def _coerce_category(category) -> ScanCategory:
    try:
        return ScanCategory(category)
    except ValueError:
        raise UnknownCategoryError(f"Unknown scan category: {category!r}") from None


class ScanService:
    def __init__(
        self,
        journals: Dict[ScanCategory, ResultJournal],
        orchestrators: Dict[ScanCategory, object],
        client_factory: Callable[[], NSEClient],
    ) -> None:
        self.journals = journals
        self.orchestrators = orchestrators
        self.client_factory = client_factory
        self._locks: Dict[ScanCategory, asyncio.Lock] = {c: asyncio.Lock() for c in orchestrators}

    @classmethod
    def from_config(cls, config: ScannerConfig) -> "ScanService":
        data_dir = Path(config.data_dir)
        tz = config.schedule.tz
        label = config.schedule.timezone_label
        journals = {
            ScanCategory.FNO: ResultJournal(
                data_dir / "fno_scan_results.json", ScanResult, config.history_capacity
            ),
            ScanCategory.LOSERS: ResultJournal(
                data_dir / "losers_scan_results.json", LosersScanResult, config.history_capacity
            ),
        }
        orchestrators = {
            ScanCategory.FNO: ScanOrchestrator(
                config.target_expiry, gate_capacity=config.gate_capacity, tz=tz, tz_label=label
            ),
            ScanCategory.LOSERS: LosersScanOrchestrator(tz=tz, tz_label=label),
        }

        def client_factory() -> NSEClient:
            return NSEClient(
                base_url=config.nse.base_url,
                session_timeout=config.nse.session_timeout_seconds,
                symbol_timeout=config.symbol_timeout_seconds,
                warmup_timeout=config.nse.warmup_timeout_seconds,
            )

        return cls(journals, orchestrators, client_factory)

    def _journal(self, category) -> ResultJournal:
        category = _coerce_category(category)
        if category not in self.journals:
            raise UnknownCategoryError(f"No journal configured for {category.value}")
        return self.journals[category]

    def is_running(self, category) -> bool:
        return self._locks[_coerce_category(category)].locked()

    async def trigger_scan(self, category) -> AnyResult:
        """Run one scan for `category` and record it.

        At most one run per category at a time; a second trigger waits for
        the first to finish. UniverseFetchError propagates and nothing is
        recorded. A failed journal write is logged and the result still
        returned.
        """
        category = _coerce_category(category)
        orchestrator = self.orchestrators.get(category)
        if orchestrator is None:
            raise UnknownCategoryError(f"No scanner configured for {category.value}")
        journal = self._journal(category)

        async with self._locks[category]:
            async with self.client_factory() as client:
                result = await orchestrator.run(client)
            try:
                await asyncio.to_thread(journal.append, result)
            except JournalWriteError as e:
                logger.error(f"{category.value} result {result.id} not persisted: {e}")
            return result

    async def list_results(self, category) -> List[AnyResult]:
        return await asyncio.to_thread(self._journal(category).load)

    async def latest_result(self, category) -> Optional[AnyResult]:
        return await asyncio.to_thread(self._journal(category).latest)

    async def get_result(self, category, result_id) -> Optional[AnyResult]:
        return await asyncio.to_thread(self._journal(category).get, result_id)
