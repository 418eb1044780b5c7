from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from .codes import parse_code
from .errors import MalformedCodeError
from .models import HierarchyTree, Item, item_identity
from .schema import cell_text, find_code_column, normalize_column_name, read_item_fields

logger = logging.getLogger(__name__)


@dataclass
class SkippedRow:
    position: int
    reason: str
    value: str = ""


@dataclass
class BuildReport:
    tree: HierarchyTree
    row_count: int
    skipped: List[SkippedRow] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.tree)


def normalize_record(record: Mapping[Any, Any]) -> Dict[str, Any]:
    """Re-key a decoded row by normalized column names."""
    return {normalize_column_name(key): value for key, value in record.items()}


def build_tree(records: Iterable[Mapping[Any, Any]]) -> BuildReport:
    """
    Assemble the Chapter -> Standard -> Criterion -> Item tree from decoded rows.

    Rows without a usable hierarchy code are skipped and listed in the report;
    they never abort the build. Items keep source row order inside their
    criterion. An empty tree means no row was usable; the caller decides how to
    reject that.
    """

    tree = HierarchyTree()
    skipped: List[SkippedRow] = []
    row_count = 0

    for position, record in enumerate(records):
        row_count += 1
        row = normalize_record(record)
        code_column = find_code_column(list(row.keys()))
        raw_code = cell_text(row.get(code_column)) if code_column else ""
        if not raw_code:
            logger.warning("Skipping row %s: hierarchy code column missing or empty.", position)
            skipped.append(SkippedRow(position, "missing_code"))
            continue

        try:
            code = parse_code(raw_code)
        except MalformedCodeError:
            logger.warning("Skipping row %s: invalid hierarchy code (fewer than 4 segments): %s", position, raw_code)
            skipped.append(SkippedRow(position, "malformed_code", raw_code))
            continue

        values = read_item_fields(row)
        item = Item(id=item_identity(raw_code, position), code=raw_code, **values)
        tree.add_item(code.path, item)

    logger.debug("Built tree with %s item(s) from %s row(s); %s skipped.", len(tree), row_count, len(skipped))
    return BuildReport(tree=tree, row_count=row_count, skipped=skipped)
