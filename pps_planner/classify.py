"""Evidence-document inventory and keyword-based document typing."""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

from .models import HierarchyTree
from .schema import clean_ai_input

DEFAULT_DOCUMENT_TYPE = "Dokumen Umum / Lain-lain"


def _starts_with(*prefixes: str) -> Callable[[str], bool]:
    return lambda title: title.startswith(prefixes)


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda title: any(needle in title for needle in needles)


def _either(*predicates: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda title: any(predicate(title) for predicate in predicates)


# Evaluated top to bottom against the lowercased title; first match wins.
DOCUMENT_TYPE_RULES: Sequence[Tuple[Callable[[str], bool], str]] = (
    (_starts_with("sk "), "SK (Surat Keputusan)"),
    (_either(_starts_with("sop "), _contains("standar operasional prosedur")), "SOP (Standar Operasional Prosedur)"),
    (_contains("notulen", "notulensi", "risalah rapat"), "Notulen Rapat"),
    (_contains("laporan"), "Laporan"),
    (_contains("pedoman"), "Pedoman"),
    (_contains("panduan"), "Panduan"),
    (_contains("kak", "kerangka acuan kegiatan"), "KAK (Kerangka Acuan Kegiatan)"),
    (_contains("bukti evaluasi", "hasil evaluasi", "hasil penilaian"), "Bukti Evaluasi/Penilaian"),
    (_contains("bukti tindak lanjut", "laporan tindak lanjut"), "Bukti Tindak Lanjut"),
    (_contains("daftar hadir"), "Daftar Hadir"),
    (_contains("form", "formulir", "lembar"), "Formulir/Lembar Kerja"),
    (_contains("surat edaran", "memo", "instruksi kerja"), "Surat Edaran/Internal"),
    (_contains("profil", "data program"), "Profil/Data Program"),
    (_contains("bukti sosialisasi", "materi sosialisasi"), "Bukti Sosialisasi"),
    (_contains("bukti pelaksanaan", "dokumentasi kegiatan"), "Bukti Pelaksanaan Kegiatan"),
)

INVENTORY_COLUMNS = (
    "Judul Dokumen (Keterangan)",
    "Kode Elemen Penilaian Terkait",
    "Uraian Elemen Penilaian Terkait",
)

GROUPED_COLUMNS = (
    "Tipe Dokumen",
    "Judul Dokumen",
    "Kode EP Terkait",
    "Uraian EP Terkait",
    "Rencana Perbaikan",
    "Indikator",
    "Sasaran",
    "Waktu",
    "PJ",
)


def classify_document(title: str, rules: Sequence[Tuple[Callable[[str], bool], str]] = DOCUMENT_TYPE_RULES) -> str:
    lowered = title.lower()
    for predicate, category in rules:
        if predicate(lowered):
            return category
    return DEFAULT_DOCUMENT_TYPE


def build_inventory(tree: HierarchyTree) -> List[Dict[str, str]]:
    """
    One row per distinct evidence title, in first-seen order.

    Placeholder and failure markers are not documents and are left out. Related
    codes and descriptions are de-duplicated and sorted before joining.
    """
    codes: Dict[str, set] = {}
    descriptions: Dict[str, set] = {}
    for item in tree.iter_items():
        title = clean_ai_input(item.evidence_title)
        if not title:
            continue
        codes.setdefault(title, set()).add(item.code)
        descriptions.setdefault(title, set()).add(item.description)

    return [
        {
            INVENTORY_COLUMNS[0]: title,
            INVENTORY_COLUMNS[1]: ", ".join(sorted(codes[title])),
            INVENTORY_COLUMNS[2]: "; ".join(sorted(descriptions[title])),
        }
        for title in codes
    ]


def group_documents_by_type(tree: HierarchyTree) -> Dict[str, List[Dict[str, str]]]:
    groups: Dict[str, List[Dict[str, str]]] = {}
    for item in tree.iter_items():
        title = clean_ai_input(item.evidence_title)
        if not title:
            continue
        groups.setdefault(classify_document(title), []).append(
            {
                "Judul Dokumen": title,
                "Kode EP Terkait": item.code,
                "Uraian EP Terkait": item.description,
                "Rencana Perbaikan": item.corrective_plan,
                "Indikator": item.indicator,
                "Sasaran": item.target,
                "Waktu": item.timeline,
                "PJ": item.responsible,
            }
        )
    return {category: groups[category] for category in sorted(groups)}


def grouped_document_rows(tree: HierarchyTree) -> List[Dict[str, str]]:
    """Flat rows for export, ordered by document type (stable within a type)."""
    rows = []
    for category, documents in group_documents_by_type(tree).items():
        for document in documents:
            rows.append({"Tipe Dokumen": category, **document})
    return rows
