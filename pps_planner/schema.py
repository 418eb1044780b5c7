from __future__ import annotations

import math
import re
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


def normalize_column_name(name: Any) -> str:
    """
    Collapse a spreadsheet header into its lookup key.

    Headers arrive in whatever casing and spacing the source workbook used
    ("Kode EP", "KODE  EP ", "kodeEP"); all of them map to "kodeep".
    """
    if name is None:
        return ""
    return re.sub(r"\s+", "", str(name).strip().lower())


def cell_text(value: Any) -> str:
    """Coerce a decoded cell to text; missing cells become empty strings."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


# Normalized header fragments that identify the hierarchy-code column,
# checked in order against every normalized column name.
CODE_COLUMN_ALIASES: Tuple[str, ...] = (
    "babstandarkriteriaelemenpenilaian",
    "kodeep",
    "kode",
)

# item field -> normalized header names, first non-empty value wins
FIELD_COLUMN_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "description": ("uraianelemenpenilaian",),
    "survey_recommendation": ("rekomendasihasilsurvey",),
    "corrective_plan": ("rencanaperbaikan",),
    "indicator": ("indikatorpencapaian", "indikator"),
    "target": ("sasaran",),
    "timeline": ("waktupenyelesaian", "waktu"),
    "responsible": ("penanggungjawab", "pj"),
    "evidence_title": ("keterangan",),
}

STRUCTURAL_FIELDS: Tuple[str, ...] = ("code", "description", "survey_recommendation")

# Fields a user (or the generator) may edit; these survive a re-import.
CARRIED_FIELDS: Tuple[str, ...] = (
    "corrective_plan",
    "indicator",
    "target",
    "timeline",
    "responsible",
    "evidence_title",
)

GENERATABLE_FIELDS: Tuple[str, ...] = ("corrective_plan", "indicator", "target", "evidence_title")

FIELD_LABELS: Mapping[str, str] = {
    "code": "Kode EP",
    "description": "Uraian Elemen Penilaian",
    "survey_recommendation": "Rekomendasi Hasil Survey",
    "corrective_plan": "Rencana Perbaikan",
    "indicator": "Indikator",
    "target": "Sasaran",
    "timeline": "Waktu",
    "responsible": "PJ",
    "evidence_title": "Keterangan",
}

CHAPTER_LABEL = "BAB"
STANDARD_LABEL = "Standar"
CRITERION_LABEL = "Kriteria"

# Headers of the blank import template, in column order.
TEMPLATE_HEADERS: Tuple[str, ...] = (
    "Kode EP",
    "Uraian Elemen Penilaian",
    "Rekomendasi Hasil Survey",
    "Rencana Perbaikan",
    "Indikator Pencapaian",
    "Sasaran",
    "Waktu Penyelesaian",
    "Penanggung Jawab",
    "Keterangan",
)


########################
# PLACEHOLDER / STATUS MARKERS
########################

EVIDENCE_PLACEHOLDER = "Klik 'Buat Keterangan'"
FAILED_PREFIX = "Gagal diproses"
INPUT_NOT_READY = "Input data tidak siap (isi RTL/Indikator/Sasaran)"
RATE_LIMIT_RETRYING = "Batas permintaan AI tercapai, mencoba lagi... (percobaan {attempt}/{max_attempts})"
RETRIES_EXHAUSTED = "Gagal setelah beberapa percobaan (Batas Kecepatan)"
INVALID_RESPONSE = "Respons AI tidak valid."

# Any value containing one of these was written by the app itself and must
# never be treated as real data.
SANITIZE_MARKERS: Tuple[str, ...] = (
    EVIDENCE_PLACEHOLDER,
    FAILED_PREFIX,
    "Input data tidak siap",
    "Batas permintaan AI tercapai",
    "Data tidak cukup",
    "Gagal setelah beberapa percobaan",
    INVALID_RESPONSE,
)


def clean_ai_input(value: Any, markers: Sequence[str] = SANITIZE_MARKERS) -> str:
    """Return the trimmed value, or "" when it is empty or an app-written marker."""
    text = cell_text(value).strip()
    if not text:
        return ""
    for marker in markers:
        if marker in text:
            return ""
    return text


def lookup_field(record: Mapping[str, Any], aliases: Sequence[str], default: str = "") -> str:
    for alias in aliases:
        value = cell_text(record.get(alias))
        if value:
            return value
    return default


def find_code_column(columns: Sequence[str], aliases: Sequence[str] = CODE_COLUMN_ALIASES) -> Optional[str]:
    """Return the first normalized column name containing any code alias."""
    for column in columns:
        if any(alias in column for alias in aliases):
            return column
    return None


def read_item_fields(record: Mapping[str, Any]) -> Dict[str, str]:
    """Read every known annotation column of a normalized record."""
    fields = {name: lookup_field(record, aliases) for name, aliases in FIELD_COLUMN_ALIASES.items()}
    if not fields["evidence_title"]:
        fields["evidence_title"] = EVIDENCE_PLACEHOLDER
    return fields
