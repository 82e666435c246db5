# fileshare/services/sweeper.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Collection, Optional

import structlog
from starlette.concurrency import run_in_threadpool

from fileshare.core.clock import Clock, utc_now
from fileshare.models.object_record import ObjectRecord
from fileshare.services.ids import sanitize_id
from fileshare.services.metadata_store import MetadataStore
from fileshare.services.object_store import ObjectStore, is_partial

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    orphans: int = 0
    partials: int = 0
    corrupt: int = 0

    @property
    def total(self) -> int:
        return self.expired + self.orphans + self.partials + self.corrupt


def purge(objects: ObjectStore, metadata: MetadataStore, record: ObjectRecord) -> None:
    """Delete bytes first, then the metadata that points at them."""
    objects.delete(record.stored_name)
    metadata.delete(record.id)


def _owner_id(location: str) -> str:
    # "<id>__<safe-name>" -> "<id>"
    head, sep, _ = location.partition("__")
    return head if sep and sanitize_id(head) == head else ""


class Sweeper:
    """Removes expired records, orphaned bytes and abandoned partial uploads."""

    def __init__(
        self,
        objects: ObjectStore,
        metadata: MetadataStore,
        *,
        orphan_grace_seconds: float = 3600,
        corrupt_grace_seconds: float = 48 * 3600,
        clock: Clock = utc_now,
    ):
        self.objects = objects
        self.metadata = metadata
        self.orphan_grace_seconds = orphan_grace_seconds
        self.corrupt_grace_seconds = corrupt_grace_seconds
        self.clock = clock

    def sweep(self, exclude: Collection[str] = ()) -> SweepResult:
        """
        One full pass. Ids in ``exclude`` are left to the read path, which
        reports them as Gone and purges them itself.
        """
        result = SweepResult()
        now = self.clock()

        scan = self.metadata.scan(corrupt_older_than_seconds=self.corrupt_grace_seconds)

        for record in scan.records:
            if record.id in exclude:
                continue
            if record.is_expired(now):
                purge(self.objects, self.metadata, record)
                result.expired += 1
                logger.info("record_expired", record_id=record.id)

        for record_id in scan.corrupt:
            if self.metadata.delete(record_id):
                result.corrupt += 1
                logger.warning("corrupt_record_removed", record_id=record_id)

        # bytes zonder metadata: crash tussen object-write en metadata-commit
        for name in self.objects.list_stale(self.orphan_grace_seconds):
            if is_partial(name):
                if self.objects.delete_partial(name):
                    result.partials += 1
                continue
            owner = _owner_id(name)
            if not owner:
                # geen "<id>__" naam: niet van ons, niet aankomen
                continue
            if self.metadata.exists(owner):
                continue
            if self.objects.delete(name):
                result.orphans += 1
                logger.warning("orphan_object_removed", location=name)

        if result.total:
            logger.info(
                "sweep_finished",
                expired=result.expired,
                orphans=result.orphans,
                partials=result.partials,
                corrupt=result.corrupt,
            )
        return result


class SweepScheduler:
    """Runs ``Sweeper.sweep`` on a fixed interval inside the event loop."""

    def __init__(self, sweeper: Sweeper, interval_seconds: float):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def _loop(self) -> None:
        while True:
            try:
                await run_in_threadpool(self.sweeper.sweep)
            except Exception:
                logger.exception("periodic_sweep_failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("sweep_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
