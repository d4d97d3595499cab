"""
FastAPI server exposing manual scan triggers, result history and CSV downloads.
This file wires:
- ScanService (scan runs and the per-category result journals)
- optional ScanScheduler (started/stopped with the app lifespan)
- Web endpoints for control and inspection
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response

from ..core.errors import UniverseFetchError, UnknownCategoryError
from ..core.export import csv_filename, render_history_csv, render_result_csv
from ..core.models import ScanCategory
from ..core.scheduler import ScanScheduler
from ..service import ScanService

logger = logging.getLogger(__name__)


def _dump(result):
    return result.model_dump(mode="json", by_alias=True)


def _category(name: str) -> ScanCategory:
    try:
        return ScanCategory(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown scan category: {name}")


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(service: ScanService, scheduler: Optional[ScanScheduler] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop_task = None
        if scheduler is not None:
            loop_task = asyncio.create_task(scheduler.run_forever())
        yield
        if scheduler is not None:
            scheduler.stop()
            loop_task.cancel()
            with suppress(asyncio.CancelledError):
                await loop_task
            await scheduler.wait_idle()

    app = FastAPI(title="NSE F&O Scanner API", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/{category}/scan")
    async def run_scan(category: str):
        """Run a scan now and return its result."""
        cat = _category(category)
        try:
            result = await service.trigger_scan(cat)
        except UniverseFetchError as e:
            logger.error(f"{cat.value} scan error: {e}")
            return JSONResponse(status_code=502, content={"error": str(e)})
        except UnknownCategoryError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return _dump(result)

    @app.get("/api/{category}/results")
    async def list_results(category: str):
        results = await service.list_results(_category(category))
        return [_dump(r) for r in results]

    @app.get("/api/{category}/results/latest")
    async def latest_result(category: str):
        result = await service.latest_result(_category(category))
        return _dump(result) if result is not None else None

    @app.get("/api/{category}/results/{result_id}")
    async def get_result(category: str, result_id: str):
        result = await service.get_result(_category(category), result_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Scan not found")
        return _dump(result)

    # declared before the {result_id} route so "all" is not taken as an id
    @app.get("/api/{category}/download/csv/all")
    async def download_all_csv(category: str):
        cat = _category(category)
        results = await service.list_results(cat)
        if not results:
            raise HTTPException(status_code=404, detail="No results")
        return _csv_response(render_history_csv(results, cat), f"{cat.value}_all_scans.csv")

    @app.get("/api/{category}/download/csv/{result_id}")
    async def download_csv(category: str, result_id: str):
        cat = _category(category)
        result = await service.get_result(cat, result_id)
        if result is None:
            raise HTTPException(status_code=404, detail="Scan not found")
        return _csv_response(render_result_csv(result, cat), csv_filename(result, cat))

    return app
