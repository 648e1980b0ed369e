"""FastAPI operator surface: trigger stages, inspect the ledger."""
import logging
from datetime import datetime, timezone
from typing import Optional

import aiofiles
import orjson
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from pricefeed.chains.base import ChainSpec
from pricefeed.chains.registry import get_chain
from pricefeed.config import Config, config
from pricefeed.jobs.aggregate import DailyAggregator
from pricefeed.jobs.collect import CollectRunner
from pricefeed.jobs.decode import DecodeRunner
from pricefeed.jobs.metrics_exporter import METRICS_FILE
from pricefeed.logging_conf import setup_logging
from pricefeed.store.base import PriceStore
from pricefeed.store.factory import open_blobs, open_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Price Ingestion API", version="0.1.0")

# API Key security (if configured)
API_KEY_HEADER = APIKeyHeader(name="X-API-KEY", auto_error=False)

_store: Optional[PriceStore] = None


def verify_api_key(api_key: str = Depends(API_KEY_HEADER)) -> bool:
    """Verify API key if configured."""
    if config.API_KEY and api_key != config.API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return True


async def get_store() -> PriceStore:
    global _store
    if _store is None:
        _store = await open_store()
    return _store


def resolve_chain(chain: str) -> ChainSpec:
    try:
        return get_chain(chain)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    setup_logging()
    await get_store()


class CollectRequest(BaseModel):
    urls: Optional[list[str]] = None
    max_pages: Optional[int] = None
    max_downloads: Optional[int] = None


class DecodeRequest(BaseModel):
    limit: Optional[int] = None
    reprocess: Optional[int] = None


class AggregateRequest(BaseModel):
    days_back: Optional[int] = None


class Accepted(BaseModel):
    status: str = "accepted"
    stage: str
    chain: Optional[str] = None


@app.get("/health")
async def health():
    """Health check endpoint (no auth required)."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store_backend": config.STORE_BACKEND,
        "blob_backend": config.BLOB_BACKEND,
    }


@app.get("/ledger/stats")
async def ledger_stats(
    chain: Optional[str] = None,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    """Ledger status counts, optionally for one chain."""
    if chain:
        chain = resolve_chain(chain).name
    return {"chain": chain, "counts": await store.ledger_stats(chain)}


@app.get("/metrics")
async def get_metrics(_: bool = Depends(verify_api_key)):
    """Last 100 stage summaries."""
    if not METRICS_FILE.exists():
        return {"metrics": []}
    async with aiofiles.open(METRICS_FILE, "rb") as f:
        lines = (await f.read()).splitlines()
    return {"metrics": [orjson.loads(line) for line in lines[-100:] if line.strip()]}


@app.post("/collect/{chain}", response_model=Accepted, status_code=202)
async def collect(
    chain: str,
    background_tasks: BackgroundTasks,
    request: Optional[CollectRequest] = None,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    spec = resolve_chain(chain)
    request = request or CollectRequest()
    runner = CollectRunner(
        spec,
        store,
        open_blobs(),
        seeds=request.urls,
        max_pages=request.max_pages or config.MAX_PAGES,
        max_downloads=request.max_downloads if request.max_downloads is not None else config.MAX_DOWNLOADS,
    )
    background_tasks.add_task(_run_stage, "collect", spec.name, runner.run)
    return Accepted(stage="collect", chain=spec.name)


@app.post("/decode/{chain}", response_model=Accepted, status_code=202)
async def decode(
    chain: str,
    background_tasks: BackgroundTasks,
    request: Optional[DecodeRequest] = None,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    spec = resolve_chain(chain)
    request = request or DecodeRequest()
    runner = DecodeRunner(spec, store, open_blobs(), limit=request.limit or config.DECODE_BATCH_LIMIT)
    if request.reprocess is not None:
        raw_file_id = request.reprocess

        async def job():
            return await runner.reprocess(raw_file_id)
    else:
        job = runner.run
    background_tasks.add_task(_run_stage, "decode", spec.name, job)
    return Accepted(stage="decode", chain=spec.name)


@app.post("/aggregate", response_model=Accepted, status_code=202)
async def aggregate(
    background_tasks: BackgroundTasks,
    request: Optional[AggregateRequest] = None,
    store: PriceStore = Depends(get_store),
    _: bool = Depends(verify_api_key),
):
    request = request or AggregateRequest()
    days_back = request.days_back if request.days_back is not None else config.AGGREGATE_DAYS_BACK
    background_tasks.add_task(_run_stage, "aggregate", None, DailyAggregator(store).refresh, days_back)
    return Accepted(stage="aggregate")


async def _run_stage(stage: str, chain: Optional[str], fn, *args) -> None:
    """Run a stage in the background; failures are logged, not raised to the client."""
    try:
        await fn(*args)
        logger.info(f"Background {stage} finished for {chain or 'all chains'}")
    except Exception as e:
        logger.error(f"Background {stage} failed for {chain or 'all chains'}: {e}", exc_info=True)


if __name__ == "__main__":
    import uvicorn
    Config.validate()
    uvicorn.run(app, host="0.0.0.0", port=8000)
