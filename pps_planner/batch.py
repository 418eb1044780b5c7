"""
Bulk enrichment of one item field across the whole tree.

Eligible items are split into fixed-size chunks. Items inside a chunk are
generated concurrently; chunks run strictly one after another with a cooldown
between them. Progress is pushed to ``on_progress`` after every chunk and is
also readable from ``BatchOrchestrator.progress``. ``on_chunk_done`` receives
the running tally once a chunk's results are in the tree.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, TypeVar

from .errors import BatchAlreadyRunningError
from .generator import FieldGenerator, GenerationOutcome, SleepFn
from .models import HierarchyTree, Item
from .prompts import FieldPrompt

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOTHING_TO_DO = (
    "Tidak ada item yang perlu diproses untuk '{label}'. Pastikan item memiliki data input yang dibutuhkan "
    "dan kolom target masih kosong atau berisi pesan kesalahan."
)


@dataclass
class BatchProgress:
    field: str
    completed: int
    total: int
    chunk_index: int
    chunk_count: int
    message: str = ""


@dataclass
class BatchResult:
    field: str
    success: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0
    aborted: bool = False
    notices: List[str] = field(default_factory=list)
    chunk_sizes: List[int] = field(default_factory=list)

    @property
    def nothing_to_do(self) -> bool:
        return self.total == 0

    @property
    def completed(self) -> int:
        return self.success + self.failed


def select_eligible(tree: HierarchyTree, prompt: FieldPrompt) -> List[Item]:
    """Items with usable source data whose target field is still empty, in tree order."""
    return [item for item in tree.iter_items() if prompt.is_eligible(item) and prompt.needs_value(item)]


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("Chunk size must be at least 1.")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class BatchOrchestrator:
    """
    Drives a FieldGenerator over every eligible item of ``tree``.

    One orchestrator owns one tree and runs at most one batch at a time, for
    any field. ``abort()`` stops scheduling further chunks, cancels the
    in-flight calls of the current chunk and interrupts a pending cooldown;
    cancelled items get their previous value back.
    """

    def __init__(
        self,
        tree: HierarchyTree,
        generator: FieldGenerator,
        chunk_size: int = 5,
        cooldown: float = 1.5,
        retry_delay: float = 3.0,
        sleep: Optional[SleepFn] = None,
        on_progress: Optional[Callable[[BatchProgress], None]] = None,
        on_chunk_done: Optional[Callable[[BatchResult], None]] = None,
    ) -> None:
        self.tree = tree
        self.generator = generator
        self.chunk_size = chunk_size
        self.cooldown = cooldown
        self.retry_delay = retry_delay
        self.sleep = sleep or generator.sleep
        self.on_progress = on_progress
        self.on_chunk_done = on_chunk_done
        self.progress: Optional[BatchProgress] = None
        self._running = False
        self._abort_requested = False
        self._pending: List["asyncio.Future[object]"] = []

    @property
    def running(self) -> bool:
        return self._running

    def abort(self) -> bool:
        """Request a stop; returns False when no batch is running."""
        if not self._running:
            return False
        self._abort_requested = True
        for future in self._pending:
            if not future.done():
                future.cancel()
        logger.info("Batch abort requested; cancelling %s pending task(s).", len(self._pending))
        return True

    def _publish(self, progress: BatchProgress) -> None:
        self.progress = progress
        if self.on_progress is not None:
            self.on_progress(progress)

    async def _run_chunk(self, prompt: FieldPrompt, chunk: List[Item]) -> List[object]:
        futures: List["asyncio.Future[object]"] = []
        for item in chunk:
            current = self.tree.get_item(item.id)
            coroutine = self.generator.run(self.tree, item.id, prompt.field, prompt.render(current), self.retry_delay)
            futures.append(asyncio.ensure_future(coroutine))
        self._pending = futures
        try:
            return await asyncio.gather(*futures, return_exceptions=True)
        finally:
            self._pending = []

    async def _cool_down(self) -> None:
        cooldown = asyncio.ensure_future(self.sleep(self.cooldown))
        self._pending = [cooldown]
        try:
            await cooldown
        except asyncio.CancelledError:
            if not self._abort_requested:
                raise
        finally:
            self._pending = []

    def _tally(self, result: BatchResult, outcomes: List[object]) -> None:
        for outcome in outcomes:
            if isinstance(outcome, GenerationOutcome):
                if outcome.success:
                    result.success += 1
                else:
                    result.failed += 1
                    if outcome.notice and outcome.notice not in result.notices:
                        result.notices.append(outcome.notice)
            elif isinstance(outcome, asyncio.CancelledError):
                result.cancelled += 1
            else:
                logger.error("Batch task failed unexpectedly: %r", outcome)
                result.failed += 1

    async def run(self, prompt: FieldPrompt) -> BatchResult:
        if self._running:
            raise BatchAlreadyRunningError("Proses massal lain sedang berjalan. Tunggu hingga selesai.")
        self._running = True
        self._abort_requested = False
        self.progress = None
        try:
            return await self._run(prompt)
        finally:
            self._running = False
            self._pending = []

    async def _run(self, prompt: FieldPrompt) -> BatchResult:
        eligible = select_eligible(self.tree, prompt)
        result = BatchResult(field=prompt.field, total=len(eligible))
        if not eligible:
            logger.info("No items need '%s'; nothing to do.", prompt.field)
            return result

        chunks = chunked(eligible, self.chunk_size)
        result.chunk_sizes = [len(chunk) for chunk in chunks]
        logger.info(
            "Generating '%s' for %s item(s) in %s chunk(s) of up to %s.",
            prompt.field,
            result.total,
            len(chunks),
            self.chunk_size,
        )
        self._publish(BatchProgress(prompt.field, 0, result.total, 0, len(chunks), f"Memproses 0/{result.total}..."))

        for index, chunk in enumerate(chunks, start=1):
            if self._abort_requested:
                break
            outcomes = await self._run_chunk(prompt, chunk)
            self._tally(result, outcomes)
            self._publish(
                BatchProgress(
                    prompt.field,
                    result.completed,
                    result.total,
                    index,
                    len(chunks),
                    f"Memproses {result.completed}/{result.total}...",
                )
            )
            logger.info("Chunk %s/%s done: %s/%s processed.", index, len(chunks), result.completed, result.total)
            if self.on_chunk_done is not None:
                self.on_chunk_done(result)
            if index < len(chunks) and not self._abort_requested:
                await self._cool_down()

        result.aborted = self._abort_requested
        if result.aborted:
            logger.warning(
                "Batch for '%s' aborted after %s of %s item(s).", prompt.field, result.completed, result.total
            )
        else:
            logger.info("Batch for '%s' finished: %s success, %s failed.", prompt.field, result.success, result.failed)
        return result
