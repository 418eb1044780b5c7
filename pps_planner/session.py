from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional

from .batch import BatchOrchestrator, BatchProgress, BatchResult
from .config import Settings
from .errors import BatchAlreadyRunningError, CredentialMissingError, EmptyInputError, StoreError
from .export import export_tree
from .generation_base import TextGenerator
from .generator import FieldGenerator, GenerationOutcome, SleepFn, describe_error
from .loaders import load_table
from .models import HierarchyTree
from .prompts import FieldPrompt, build_field_prompts, get_field_prompt
from .reconcile import MergeStats, load_snapshot_tree, reconcile_with_stats
from .store import DebouncedSaver, DocumentStore
from .summary import generate_summary
from .tree_builder import BuildReport, build_tree

logger = logging.getLogger(__name__)

NO_VALID_CODES = "Data tidak dapat diproses. Pastikan file Anda memiliki kolom kode hierarki yang valid."
MISSING_API_KEY = "Harap masukkan Kunci API Google AI Anda."


@dataclass
class ImportResult:
    tree: HierarchyTree
    report: BuildReport
    restored: bool
    stats: MergeStats


class PlanningSession:
    """
    One loaded source file: its reconciled tree, its summary and the saves
    that follow every change.
    """

    def __init__(
        self,
        settings: Settings,
        client: TextGenerator,
        store: Optional[DocumentStore] = None,
        owner_id: Optional[str] = None,
        prompts: Optional[Mapping[str, FieldPrompt]] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.store = store
        self.owner_id = owner_id or settings.owner_id
        self.prompts = dict(prompts) if prompts is not None else build_field_prompts()
        self.sleep = sleep
        self.generator = FieldGenerator(
            client,
            max_attempts=settings.max_attempts,
            timeout=settings.request_timeout,
            sleep=sleep,
        )
        self.tree = HierarchyTree()
        self.summary = ""
        self.file_name: Optional[str] = None
        self.notices: List[str] = []
        self.last_error: Optional[str] = None
        self.saver: Optional[DebouncedSaver] = None
        self.orchestrator: Optional[BatchOrchestrator] = None

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------
    def import_records(self, records: Iterable[Mapping[str, Any]], file_name: str) -> ImportResult:
        if self.orchestrator is not None and self.orchestrator.running:
            raise BatchAlreadyRunningError("Tidak dapat memuat file baru saat proses massal berjalan.")

        report = build_tree(records)
        if report.tree.is_empty():
            raise EmptyInputError(NO_VALID_CODES)
        if report.skipped:
            logger.warning("%s of %s row(s) skipped while building the tree.", len(report.skipped), report.row_count)

        document = None
        if self.store is not None:
            try:
                document = self.store.get(self.owner_id, file_name)
            except StoreError as exc:
                logger.error("Could not load saved data for %s: %s", file_name, exc)
                self.last_error = str(exc)

        tree, stats = reconcile_with_stats(report.tree, load_snapshot_tree(document))
        self.tree = tree
        self.summary = (document or {}).get("summary") or ""
        self.file_name = file_name
        self.orchestrator = BatchOrchestrator(
            tree,
            self.generator,
            chunk_size=self.settings.chunk_size,
            cooldown=self.settings.chunk_cooldown,
            retry_delay=self.settings.batch_retry_delay,
            sleep=self.sleep,
            on_chunk_done=lambda _result: self._schedule_save(),
        )
        if self.store is not None:
            self.saver = DebouncedSaver(
                self.store,
                self.owner_id,
                file_name,
                delay=self.settings.save_debounce,
                on_error=self._record_store_error,
            )
        restored = document is not None
        logger.info(
            "Loaded %s with %s item(s)%s.", file_name, len(tree), " (restored saved annotations)" if restored else ""
        )
        self._schedule_save()
        return ImportResult(tree=tree, report=report, restored=restored, stats=stats)

    def import_file(self, path: Path) -> ImportResult:
        path = Path(path)
        return self.import_records(load_table(path), path.name)

    # ------------------------------------------------------------------
    # edits and generation
    # ------------------------------------------------------------------
    def update_field(self, item_id: str, field: str, value: str) -> None:
        self.tree.set_field(item_id, field, value)
        self._schedule_save()

    async def generate_field(self, item_id: str, field: str) -> GenerationOutcome:
        """Regenerate one field of one item, whatever its current value."""
        self._ensure_idle()
        prompt = get_field_prompt(self.prompts, field)
        item = self.tree.get_item(item_id)
        if not prompt.is_eligible(item):
            self.tree.set_field(item_id, field, prompt.insufficient_marker)
            self._schedule_save()
            return GenerationOutcome(item_id, field, prompt.insufficient_marker, False, 0, "insufficient_data")

        outcome = await self.generator.run(
            self.tree, item_id, field, prompt.render(item), self.settings.single_retry_delay
        )
        if outcome.notice:
            self._add_notice(outcome.notice)
        self._schedule_save()
        return outcome

    async def generate_all(
        self, field: str, on_progress: Optional[Callable[[BatchProgress], None]] = None
    ) -> BatchResult:
        """
        Fill ``field`` on every eligible item. Each finished chunk is saved
        through the debounced saver while the batch continues.

        Raises:
            CredentialMissingError: no API key is configured; no item is touched.
        """
        prompt = get_field_prompt(self.prompts, field)
        orchestrator = self._require_orchestrator()
        self._require_api_key()
        orchestrator.on_progress = on_progress
        result = await orchestrator.run(prompt)
        for notice in result.notices:
            self._add_notice(notice)
        return result

    def abort_batch(self) -> bool:
        if self.orchestrator is None:
            return False
        return self.orchestrator.abort()

    async def generate_summary(self, on_status: Optional[Callable[[str], None]] = None) -> str:
        self._require_api_key()
        self.summary = await generate_summary(
            self.generator, self.tree, retry_delay=self.settings.summary_retry_delay, on_status=on_status
        )
        self._schedule_save()
        return self.summary

    # ------------------------------------------------------------------
    # output
    # ------------------------------------------------------------------
    def export(self, path: Path, fmt: str) -> Path:
        if self.tree.is_empty():
            raise EmptyInputError("Tidak ada data untuk diunduh.")
        return export_tree(self.tree, path, fmt, self.summary)

    def flush(self) -> bool:
        if self.saver is None:
            return False
        return self.saver.flush()

    # ------------------------------------------------------------------
    def _require_orchestrator(self) -> BatchOrchestrator:
        if self.orchestrator is None:
            raise EmptyInputError("Belum ada data yang dimuat.")
        return self.orchestrator

    def _require_api_key(self) -> None:
        if not self.settings.api_key:
            error = CredentialMissingError(MISSING_API_KEY)
            self._add_notice(describe_error(error))
            raise error

    def _ensure_idle(self) -> None:
        if self.orchestrator is not None and self.orchestrator.running:
            raise BatchAlreadyRunningError("Proses massal lain sedang berjalan. Tunggu hingga selesai.")

    def _add_notice(self, notice: str) -> None:
        if notice not in self.notices:
            self.notices.append(notice)

    def _record_store_error(self, exc: StoreError) -> None:
        self.last_error = str(exc)

    def _schedule_save(self) -> None:
        if self.saver is not None:
            self.saver.schedule(self.tree, self.summary)
