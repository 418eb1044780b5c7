"""
Write a reconciled tree (plus the optional strategic summary) to disk.

Formats:
  xlsx  data sheet, document inventory, documents grouped by type, summary
  csv   the same tables stacked as sections, comma separated
  txt   as csv, tab separated
  doc   HTML that word processors open as a document
"""

from __future__ import annotations

import html
import io
import logging
import re
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .classify import GROUPED_COLUMNS, INVENTORY_COLUMNS, build_inventory, grouped_document_rows
from .codes import parse_code
from .models import HierarchyTree
from .schema import TEMPLATE_HEADERS

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("xlsx", "csv", "txt", "doc")

# flattened row key -> exported column header
EXPORT_HEADERS: Dict[str, str] = {
    "chapter": "BAB",
    "standard": "STANDAR",
    "criterion": "KRITERIA",
    "element": "ELEMEN PENILAIAN",
    "corrective_plan": "RENCANA PERBAIKAN",
    "indicator": "INDIKATOR",
    "target": "SASARAN",
    "timeline": "WAKTU",
    "responsible": "PJ",
    "evidence_title": "KETERANGAN",
}

DATA_SHEET = "Data PPS"
INVENTORY_SHEET = "Inventaris Dokumen"
GROUPED_SHEET = "Pengelompokan Dokumen"
SUMMARY_SHEET = "Kesimpulan AI"
TEMPLATE_SHEET = "Template PPS"

_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")


def flatten_rows(tree: HierarchyTree) -> List[Dict[str, str]]:
    """One row per item, depth-first in insertion order."""
    rows = []
    for item in tree.iter_items():
        code = parse_code(item.code)
        rows.append(
            {
                "chapter": code.chapter,
                "standard": code.standard,
                "criterion": code.criterion,
                "element": code.element,
                "corrective_plan": item.corrective_plan,
                "indicator": item.indicator,
                "target": item.target,
                "timeline": item.timeline,
                "responsible": item.responsible,
                "evidence_title": item.evidence_title,
            }
        )
    return rows


def data_frame(tree: HierarchyTree) -> pd.DataFrame:
    df = pd.DataFrame(flatten_rows(tree), columns=list(EXPORT_HEADERS))
    return df.rename(columns=EXPORT_HEADERS)


def output_filename(fmt: str, today: Optional[date] = None) -> str:
    return f"Hasil PPS - {(today or date.today()).isoformat()}.{fmt}"


def strip_markdown_bold(text: str) -> str:
    return text.replace("**", "")


def export_excel(tree: HierarchyTree, path: Path, summary: str = "") -> Path:
    inventory = build_inventory(tree)
    grouped = grouped_document_rows(tree)
    with pd.ExcelWriter(path, engine="xlsxwriter") as writer:
        data_frame(tree).to_excel(writer, sheet_name=DATA_SHEET, index=False)
        if inventory:
            pd.DataFrame(inventory, columns=list(INVENTORY_COLUMNS)).to_excel(
                writer, sheet_name=INVENTORY_SHEET, index=False
            )
        if grouped:
            pd.DataFrame(grouped, columns=list(GROUPED_COLUMNS)).to_excel(writer, sheet_name=GROUPED_SHEET, index=False)
        if summary:
            lines = strip_markdown_bold(summary).split("\n")
            pd.DataFrame({"": lines}).to_excel(writer, sheet_name=SUMMARY_SHEET, index=False, header=False)
            writer.sheets[SUMMARY_SHEET].set_column("A:A", 100)
        writer.sheets[DATA_SHEET].set_column("E:G", 40)
    return path


def _section(df: pd.DataFrame, delimiter: str) -> str:
    buffer = io.StringIO()
    df.to_csv(buffer, sep=delimiter, index=False, lineterminator="\n")
    return buffer.getvalue()


def render_delimited(tree: HierarchyTree, summary: str = "", delimiter: str = ",") -> str:
    content = _section(data_frame(tree), delimiter)
    inventory = build_inventory(tree)
    if inventory:
        content += "\n\n\nINVENTARIS DOKUMEN\n\n"
        content += _section(pd.DataFrame(inventory, columns=list(INVENTORY_COLUMNS)), delimiter)
    grouped = grouped_document_rows(tree)
    if grouped:
        content += "\n\n\nPENGELOMPOKAN DOKUMEN BERDASARKAN TIPE\n\n"
        content += _section(pd.DataFrame(grouped, columns=list(GROUPED_COLUMNS)), delimiter)
    if summary:
        content += f"\n\n\nKESIMPULAN & SARAN STRATEGIS AI\n\n{strip_markdown_bold(summary)}"
    return content


def _summary_html(summary: str) -> str:
    escaped = html.escape(summary)
    return _BOLD_RE.sub(r"<strong>\1</strong>", escaped).replace("\n", "<br/>")


def render_word_html(tree: HierarchyTree, summary: str = "") -> str:
    parts = [
        "<!DOCTYPE html><html><head><meta charset='UTF-8'><title>Hasil PPS</title>",
        "<style>table, th, td { border: 1px solid black; border-collapse: collapse; padding: 5px; } "
        "h1, h2 { font-family: sans-serif; }</style></head><body>",
        "<h1>Data Perencanaan Perbaikan Strategis</h1>",
        data_frame(tree).to_html(index=False, border=0),
    ]
    inventory = build_inventory(tree)
    if inventory:
        parts.append("<h2>Inventaris Dokumen</h2>")
        parts.append(pd.DataFrame(inventory, columns=list(INVENTORY_COLUMNS)).to_html(index=False, border=0))
    grouped = grouped_document_rows(tree)
    if grouped:
        parts.append("<h2>Pengelompokan Dokumen Berdasarkan Tipe</h2>")
        parts.append(pd.DataFrame(grouped, columns=list(GROUPED_COLUMNS)).to_html(index=False, border=0))
    if summary:
        parts.append(f"<h2>Kesimpulan & Saran Strategis AI</h2><div>{_summary_html(summary)}</div>")
    parts.append("</body></html>")
    return "".join(parts)


def export_tree(tree: HierarchyTree, path: Path, fmt: str, summary: str = "") -> Path:
    """Write ``tree`` in one of EXPORT_FORMATS; returns the written path."""
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Choose one of: {', '.join(EXPORT_FORMATS)}")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "xlsx":
        export_excel(tree, path, summary)
    elif fmt == "doc":
        path.write_text(render_word_html(tree, summary), encoding="utf-8")
    else:
        delimiter = "," if fmt == "csv" else "\t"
        path.write_text(render_delimited(tree, summary, delimiter), encoding="utf-8")
    logger.info("Exported %s item(s) to %s", len(tree), path)
    return path


def export_template(path: Path) -> Path:
    """Blank import workbook containing only the canonical headers."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="xlsxwriter") as writer:
        pd.DataFrame(columns=list(TEMPLATE_HEADERS)).to_excel(writer, sheet_name=TEMPLATE_SHEET, index=False)
        writer.sheets[TEMPLATE_SHEET].set_column(0, len(TEMPLATE_HEADERS) - 1, 25)
    return path


def template_filename(today: Optional[date] = None) -> str:
    return f"Template PPS - {(today or date.today()).isoformat()}.xlsx"
