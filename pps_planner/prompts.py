"""Prompt templates for the generatable item fields."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .models import Item
from .schema import FIELD_LABELS, GENERATABLE_FIELDS, SANITIZE_MARKERS, clean_ai_input


@dataclass(frozen=True)
class FieldPrompt:
    field: str
    label: str
    sources: Tuple[str, ...]
    role: str
    task: str
    rules: str
    insufficient_marker: str

    def source_values(self, item: Item) -> Dict[str, str]:
        return {name: clean_ai_input(getattr(item, name)) for name in self.sources}

    def is_eligible(self, item: Item) -> bool:
        """At least one source field holds real data."""
        return any(self.source_values(item).values())

    def needs_value(self, item: Item) -> bool:
        return not clean_ai_input(getattr(item, self.field))

    def render(self, item: Item) -> str:
        lines = [f"PERAN: {self.role}.", f"TUGAS: {self.task}.", "DATA:"]
        for name, value in self.source_values(item).items():
            lines.append(f'- {FIELD_LABELS[name]}: "{value}"')
        lines.append(f"ATURAN: {self.rules}")
        return "\n".join(lines)


DEFAULT_FIELD_PROMPTS: Mapping[str, FieldPrompt] = {
    "corrective_plan": FieldPrompt(
        field="corrective_plan",
        label="RTL",
        sources=("description", "survey_recommendation"),
        role="Anda adalah konsultan mutu",
        task="Buatkan satu kalimat RENCANA PERBAIKAN (RTL) yang operasional dan terukur",
        rules=(
            "Jawaban harus berupa kalimat tindakan yang jelas. Contoh: \"Melakukan sosialisasi SOP "
            "pendaftaran pasien baru kepada seluruh petugas pendaftaran.\""
        ),
        insufficient_marker="Data tidak cukup untuk ide RTL",
    ),
    "indicator": FieldPrompt(
        field="indicator",
        label="Indikator",
        sources=("description", "corrective_plan"),
        role="Anda adalah seorang perencana mutu",
        task="Buatkan satu poin indikator pencapaian yang spesifik, terukur, dan relevan untuk rencana perbaikan berikut",
        rules=(
            "Jawaban harus berupa frasa indikator yang jelas (contoh: \"Persentase pasien yang "
            "mendapatkan edukasi sesuai standar\")."
        ),
        insufficient_marker="Data tidak cukup untuk indikator",
    ),
    "target": FieldPrompt(
        field="target",
        label="Sasaran",
        sources=("description", "corrective_plan"),
        role="Anda adalah seorang manajer strategi",
        task="Buatkan satu poin sasaran yang jelas dan berorientasi hasil untuk rencana perbaikan berikut",
        rules=(
            "Jawaban harus berupa kalimat sasaran yang ringkas (contoh: \"Meningkatnya kepuasan "
            "pasien terhadap pelayanan pendaftaran.\")."
        ),
        insufficient_marker="Data tidak cukup untuk sasaran",
    ),
    "evidence_title": FieldPrompt(
        field="evidence_title",
        label="Keterangan",
        sources=("corrective_plan", "indicator", "target"),
        role="Anda adalah auditor akreditasi",
        task="Buatkan satu judul DOKUMEN BUKTI IMPLEMENTASI yang konkret berdasarkan data berikut",
        rules=(
            "Jawaban harus berupa satu frasa/kalimat tunggal, spesifik, dan dalam format nama dokumen "
            "resmi (contoh: \"SK Rektor tentang...\", \"Notulensi Rapat...\", \"Laporan Hasil...\")."
        ),
        insufficient_marker="Input data tidak siap (isi RTL/Indikator/Sasaran)",
    ),
}


def build_field_prompts(overrides: Optional[Mapping[str, Mapping[str, Any]]] = None) -> Dict[str, FieldPrompt]:
    """Merge YAML overrides (see config.load_prompt_config) over the defaults."""
    prompts = dict(DEFAULT_FIELD_PROMPTS)
    for name, values in (overrides or {}).items():
        if name not in GENERATABLE_FIELDS:
            raise ValueError(f"Field '{name}' cannot be generated.")
        changes: Dict[str, Any] = {}
        for key in ("label", "role", "task", "rules", "insufficient_marker"):
            if values.get(key):
                changes[key] = str(values[key])
        if values.get("sources"):
            sources = tuple(str(source) for source in values["sources"])
            unknown = [source for source in sources if source not in FIELD_LABELS]
            if unknown:
                raise ValueError(f"Unknown source field(s) for '{name}': {', '.join(unknown)}")
            changes["sources"] = sources
        # Written into item fields; must stay a sanitized marker.
        marker = changes.get("insufficient_marker")
        if marker and clean_ai_input(marker):
            raise ValueError(
                f"insufficient_marker for '{name}' must contain one of: {', '.join(repr(m) for m in SANITIZE_MARKERS)}"
            )
        prompts[name] = replace(prompts[name], **changes)
    return prompts


def get_field_prompt(prompts: Mapping[str, FieldPrompt], name: str) -> FieldPrompt:
    try:
        return prompts[name]
    except KeyError:
        raise ValueError(f"Field '{name}' cannot be generated. Choose one of: {', '.join(GENERATABLE_FIELDS)}") from None
