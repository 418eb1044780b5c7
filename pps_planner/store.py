"""
Persisted planning documents.

Documents live under ``artifacts/<app_id>/users/<owner>/pps_data/`` and are
keyed by the exact source file name. ``upsert`` merges top-level fields into
an existing document instead of replacing it.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from .errors import StoreError
from .models import HierarchyTree

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    @abstractmethod
    def get(self, owner_id: str, file_name: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, owner_id: str, file_name: str, document: Dict[str, Any]) -> None:
        raise NotImplementedError

    def exists(self, owner_id: str, file_name: str) -> bool:
        return self.get(owner_id, file_name) is not None


class JsonDocumentStore(DocumentStore):
    def __init__(self, root: Path, app_id: str = "default-app-id") -> None:
        self.root = Path(root)
        self.app_id = app_id

    def path_for(self, owner_id: str, file_name: str) -> Path:
        # The digest keeps names that differ only by case apart on
        # case-insensitive filesystems.
        digest = hashlib.sha1(file_name.encode("utf-8")).hexdigest()[:8]
        safe_name = quote(file_name, safe="")
        return (
            self.root
            / "artifacts"
            / quote(self.app_id, safe="")
            / "users"
            / quote(owner_id, safe="")
            / "pps_data"
            / f"{safe_name}-{digest}.json"
        )

    def get(self, owner_id: str, file_name: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(owner_id, file_name)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Gagal memuat data tersimpan untuk '{file_name}': {exc}") from exc

    def upsert(self, owner_id: str, file_name: str, document: Dict[str, Any]) -> None:
        path = self.path_for(owner_id, file_name)
        merged = {**(self.get(owner_id, file_name) or {}), **document, "file_name": file_name}
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(merged, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StoreError(f"Gagal menyimpan data untuk '{file_name}': {exc}") from exc
        logger.debug("Saved %s", path)


class DebouncedSaver:
    """
    Coalesce bursts of edits into one upsert after ``delay`` seconds of quiet.

    Outside a running event loop ``schedule`` saves immediately. Write
    failures go to ``on_error`` and never propagate to the caller.
    """

    def __init__(
        self,
        store: DocumentStore,
        owner_id: str,
        file_name: str,
        delay: float = 1.0,
        on_error: Optional[Callable[[StoreError], None]] = None,
    ) -> None:
        self.store = store
        self.owner_id = owner_id
        self.file_name = file_name
        self.delay = delay
        self.on_error = on_error
        self.save_count = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[tuple] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, tree: HierarchyTree, summary: str = "") -> None:
        self._pending = (tree, summary)
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._handle = loop.call_later(self.delay, self.flush)

    def flush(self) -> bool:
        """Write the pending state now; returns True when something was saved."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is None:
            return False
        tree, summary = self._pending
        self._pending = None
        return self.save_now(tree, summary)

    def save_now(self, tree: HierarchyTree, summary: str = "") -> bool:
        if tree.is_empty() and not summary:
            return False
        document = {
            "tree": tree.to_dict(),
            "summary": summary,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self.store.upsert(self.owner_id, self.file_name, document)
        except StoreError as exc:
            logger.error("Auto-save failed: %s", exc)
            if self.on_error is not None:
                self.on_error(exc)
            return False
        self.save_count += 1
        logger.info("Saved planning data for '%s'.", self.file_name)
        return True
