"""Run summary exporter (JSONL)."""
import time
from pathlib import Path
from typing import Any, Dict, Optional
import aiofiles
import orjson

from pricefeed.config import DATA_DIR
from pricefeed.parse.redact import redact_json

METRICS_FILE = DATA_DIR / "metrics.jsonl"


class MetricsExporter:
    """Appends one JSON line per finished stage."""

    def __init__(self, run_id: str, metrics_file: Optional[Path] = None):
        self.run_id = run_id
        self.metrics_file = Path(metrics_file or METRICS_FILE)

    async def export(self, stage: str, chain: Optional[str], summary: Dict[str, Any]) -> None:
        record = {
            "ts": time.time(),
            "run_id": self.run_id,
            "stage": stage,
            "chain": chain,
            **summary,
        }
        self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
        line = orjson.dumps(redact_json(record), default=str) + b"\n"
        async with aiofiles.open(self.metrics_file, "ab") as f:
            await f.write(line)
