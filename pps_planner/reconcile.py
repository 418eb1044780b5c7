"""Fuse a freshly parsed tree with the snapshot saved for the same source file.

The source file decides what exists (structure, codes, descriptions); the
snapshot only contributes the annotation fields a user or the generator filled
in. Items match on identity (code + row position), looked up along the same
chapter/standard/criterion path. Reordering rows in a re-uploaded file changes
identities, and those items silently start from the file's values again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Tuple, Union

from .models import HierarchyTree, Item
from .schema import CARRIED_FIELDS

logger = logging.getLogger(__name__)

Snapshot = Union[HierarchyTree, Mapping[str, Any], None]


@dataclass
class MergeStats:
    matched: int = 0
    unmatched: int = 0
    carried_values: int = 0


def merge_item(new_item: Item, old_item: Item) -> Tuple[Item, int]:
    """Carry non-empty annotation values of ``old_item`` onto ``new_item``."""
    updates = {}
    for name in CARRIED_FIELDS:
        old_value = getattr(old_item, name)
        if old_value and old_value != getattr(new_item, name):
            updates[name] = old_value
    if not updates:
        return new_item, 0
    return replace(new_item, **updates), len(updates)


def reconcile_with_stats(new_tree: HierarchyTree, old: Snapshot) -> Tuple[HierarchyTree, MergeStats]:
    stats = MergeStats()
    merged = new_tree.snapshot()
    if old is None:
        stats.unmatched = len(new_tree)
        return merged, stats

    old_tree = old if isinstance(old, HierarchyTree) else HierarchyTree.from_dict(old)
    for chapter, standard, criterion, item in new_tree.iter_nodes():
        previous = old_tree.find_item(chapter.key, standard.key, criterion.key, item.id)
        if previous is None:
            stats.unmatched += 1
            continue
        stats.matched += 1
        updated, carried = merge_item(item, previous)
        if carried:
            merged.replace_item(updated)
            stats.carried_values += carried

    logger.info(
        "Reconciled %s item(s): %s matched, %s new, %s value(s) carried forward.",
        len(new_tree),
        stats.matched,
        stats.unmatched,
        stats.carried_values,
    )
    return merged, stats


def reconcile(new_tree: HierarchyTree, old: Snapshot) -> HierarchyTree:
    """Return a new tree; neither input is modified."""
    merged, _ = reconcile_with_stats(new_tree, old)
    return merged


def load_snapshot_tree(document: Optional[Mapping[str, Any]]) -> Optional[HierarchyTree]:
    if not document or not document.get("tree"):
        return None
    return HierarchyTree.from_dict(document["tree"])
