"""File-based persistence for payment requests.

Two directories act as queues. ``pending`` holds ``{id}_{transactionId}.json``
for every accepted request, plus ``ERROR_{key}.json`` annotations for requests
whose settlement failed. ``sent`` holds the final record of every completed
payment under the same key.

A single process is assumed to own both directories; nothing here locks.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from paygate.errors.exceptions import PersistenceError
from paygate.models.payment import PaymentRequest

ERROR_PREFIX = "ERROR_"


@dataclass
class PartitionListing:
    """Records parsed from one partition plus the files that failed to parse."""

    records: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    """Replace ``path`` atomically: a crash leaves the old file or the new one."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _same_record(sent_path: Path, pending_path: Path) -> bool:
    """True when the sent copy parses and belongs to the pending record."""
    try:
        sent = json.loads(sent_path.read_text(encoding="utf-8"))
        pending = json.loads(pending_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    if not isinstance(sent, dict) or not isinstance(pending, dict):
        return False
    return all(
        sent.get(key) is not None and sent.get(key) == pending.get(key)
        for key in ("id", "transactionId")
    )


class PaymentRequestStore:
    """Owns the on-disk representation of every payment request."""

    def __init__(self, pending_dir: Path, sent_dir: Path, logger=None) -> None:
        self._pending_dir = Path(pending_dir)
        self._sent_dir = Path(sent_dir)
        self._log = logger or structlog.get_logger(__name__)
        self._pending_dir.mkdir(parents=True, exist_ok=True)
        self._sent_dir.mkdir(parents=True, exist_ok=True)

    @property
    def pending_dir(self) -> Path:
        return self._pending_dir

    @property
    def sent_dir(self) -> Path:
        return self._sent_dir

    def pending_path(self, request: PaymentRequest) -> Path:
        return self._pending_dir / f"{request.storage_key}.json"

    def error_path(self, request: PaymentRequest) -> Path:
        return self._pending_dir / f"{ERROR_PREFIX}{request.storage_key}.json"

    def sent_path(self, request: PaymentRequest) -> Path:
        return self._sent_dir / f"{request.storage_key}.json"

    async def _write(self, path: Path, request: PaymentRequest) -> None:
        try:
            await asyncio.to_thread(_write_json, path, request.to_wire())
        except OSError as exc:
            self._log.error("payment_write_failed", path=str(path), payment_id=request.id, error=str(exc))
            raise PersistenceError(
                f"Could not write payment record {request.storage_key}",
                {"path": path.name},
            ) from exc

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def save(self, request: PaymentRequest) -> Path:
        """Record a newly accepted request in the pending partition."""
        path = self.pending_path(request)
        await self._write(path, request)
        self._log.info("payment_saved", path=str(path), payment_id=request.id)
        return path

    async def move_to_sent(self, request: PaymentRequest) -> Path:
        """Write the final record to ``sent``, then drop the pending file.

        Crashing between the two steps leaves a duplicate, never a loss;
        :meth:`reconcile` removes the leftover pending copy.
        """
        source = self.pending_path(request)
        dest = self.sent_path(request)
        await self._write(dest, request)
        try:
            await asyncio.to_thread(source.unlink, missing_ok=True)
        except OSError as exc:
            self._log.error("payment_pending_unlink_failed", path=str(source), error=str(exc))
            raise PersistenceError(
                f"Sent record written but pending file {source.name} could not be removed",
                {"path": source.name},
            ) from exc
        self._log.info("payment_moved", source=str(source), dest=str(dest), payment_id=request.id)
        return dest

    async def record_error(self, request: PaymentRequest) -> Path:
        """Write the error-annotated record next to the untouched pending file."""
        path = self.error_path(request)
        await self._write(path, request)
        self._log.info("payment_error_saved", path=str(path), payment_id=request.id)
        return path

    # ------------------------------------------------------------------
    # Listing and recovery
    # ------------------------------------------------------------------

    async def list_pending(self) -> PartitionListing:
        return await asyncio.to_thread(self._list, self._pending_dir)

    async def list_sent(self) -> PartitionListing:
        return await asyncio.to_thread(self._list, self._sent_dir)

    def _list(self, directory: Path) -> PartitionListing:
        listing = PartitionListing()
        for path in sorted(directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("record is not a JSON object")
            except (OSError, ValueError) as exc:
                # a file may vanish mid-listing when a write-then-delete runs
                self._log.warning("payment_record_unreadable", path=str(path), error=str(exc))
                listing.errors.append({"filename": path.name, "error": str(exc)})
                continue
            listing.records.append({"filename": path.name, **data})
        return listing

    async def reconcile(self) -> int:
        """Delete pending files already recorded in the sent partition.

        A pending file is removed only when the sent copy under the same key
        parses and carries the same ``id`` and ``transactionId``.

        Returns the number of leftover pending files removed. Safe to run
        repeatedly.
        """
        return await asyncio.to_thread(self._reconcile)

    def _reconcile(self) -> int:
        removed = 0
        for path in self._pending_dir.glob("*.json"):
            if path.name.startswith(ERROR_PREFIX):
                continue
            sent = self._sent_dir / path.name
            if not sent.exists():
                continue
            if not _same_record(sent, path):
                # a torn or foreign sent file must not cost us the pending record
                self._log.warning("payment_reconcile_skipped", path=str(path), sent=str(sent))
                continue
            path.unlink(missing_ok=True)
            removed += 1
            self._log.info("payment_pending_reconciled", path=str(path))
        return removed
