"""Durable storage for webhook deliveries that exhausted their retries."""

from __future__ import annotations

import asyncio
import json
import re
import time
from pathlib import Path

import structlog

from paygate.errors.exceptions import PersistenceError
from paygate.models.webhook import WebhookFailureRecord

FILE_PREFIX = "failed_webhook_"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._:-]")


def failure_filename(record: WebhookFailureRecord) -> str:
    """``failed_webhook_{epoch_ms}_{transactionId}.json``."""
    correlation = record.payload.correlation_id or "unknown"
    correlation = _UNSAFE_CHARS.sub("_", str(correlation))[:128]
    return f"{FILE_PREFIX}{time.time_ns() // 1_000_000}_{correlation}.json"


class WebhookFailureStore:
    """One JSON file per failed delivery, in a directory nobody else writes."""

    def __init__(self, directory: Path, logger=None) -> None:
        self._dir = Path(directory)
        self._log = logger or structlog.get_logger(__name__)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    async def save(self, record: WebhookFailureRecord) -> Path:
        base = self._dir / failure_filename(record)
        data = json.dumps(record.model_dump(mode="json", by_alias=True), indent=2)
        try:
            path = await asyncio.to_thread(self._write_new, base, data)
        except OSError as exc:
            raise PersistenceError(f"Could not save failed webhook {base.name}") from exc
        self._log.info("webhook_failure_saved", path=str(path))
        return path

    @staticmethod
    def _write_new(base: Path, data: str) -> Path:
        # two failures for the same id within one millisecond must not collide
        path = base
        suffix = 1
        while True:
            try:
                with path.open("x", encoding="utf-8") as fh:
                    fh.write(data)
                return path
            except FileExistsError:
                path = base.with_name(f"{base.stem}-{suffix}.json")
                suffix += 1

    def list_files(self) -> list[Path]:
        return sorted(self._dir.glob(f"{FILE_PREFIX}*.json"))

    async def load(self, path: Path) -> WebhookFailureRecord:
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return WebhookFailureRecord.model_validate_json(raw)

    async def delete(self, path: Path) -> None:
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def count(self) -> int:
        return len(self.list_files())
