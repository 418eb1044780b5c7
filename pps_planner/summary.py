from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from .errors import GenerationError, RetriesExhaustedError
from .generator import FieldGenerator, describe_error
from .models import HierarchyTree
from .schema import clean_ai_input

logger = logging.getLogger(__name__)

NO_PLANS_MESSAGE = "Tidak ada Rencana Perbaikan yang cukup untuk dibuat kesimpulan."
RETRYING_MESSAGE = "Batas permintaan AI tercapai. Mencoba lagi dalam {delay:g} detik... (percobaan {attempt}/{max_attempts})"
EXHAUSTED_MESSAGE = "Gagal membuat kesimpulan setelah beberapa percobaan (Batas Kecepatan)."
FAILURE_TEMPLATE = "**Terjadi Kesalahan:**\n\nGagal membuat kesimpulan. {message}"

SUMMARY_CATEGORIES = (
    ("Audit Mutu Internal", "EP yang perlu diperiksa kepatuhan dan pelaksanaannya secara internal (misal: audit dokumen, audit kepatuhan SOP)."),
    ("Sosialisasi & Pelatihan Internal", "EP yang membutuhkan peningkatan pemahaman atau pelatihan untuk staf di dalam Puskesmas."),
    (
        "Konsultasi & Bimbingan Teknis Eksternal (contoh: Dinkes)",
        "EP yang secara spesifik membutuhkan arahan, bimbingan teknis, koordinasi, atau konsultasi dari pihak eksternal seperti Dinas Kesehatan.",
    ),
    ("Peningkatan Monev Internal Rutin", "EP yang hasilnya perlu dipantau secara berkala (misal: monitoring capaian indikator mingguan/bulanan)."),
    (
        "Kegiatan Lainnya",
        "Kelompokkan EP lain ke dalam kegiatan spesifik yang Anda identifikasi (contoh: 'Pengembangan/Revisi Dokumen SOP', 'Perbaikan Sarana & Prasarana').",
    ),
)


def collect_plan_lines(tree: HierarchyTree) -> List[Tuple[str, str]]:
    """(element code, corrective plan) for every item with a real plan."""
    lines = []
    for item in tree.iter_items():
        plan = clean_ai_input(item.corrective_plan)
        if plan:
            lines.append((item.code, plan))
    return lines


def build_summary_prompt(lines: List[Tuple[str, str]]) -> str:
    categories = "\n".join(
        f"{number}. **{name}**: {hint}" for number, (name, hint) in enumerate(SUMMARY_CATEGORIES, start=1)
    )
    data = "\n".join(f"Elemen {code}: {plan}" for code, plan in lines)
    return (
        "PERAN: Anda adalah seorang manajer mutu senior.\n"
        "TUGAS: Analisis semua rencana perbaikan (RTL) yang diberikan. Kelompokkan Elemen Penilaian (EP) "
        "yang relevan ke dalam kategori kegiatan strategis berikut:\n"
        f"{categories}\n"
        f"DATA RTL:\n{data}\n"
        "ATURAN: Berikan jawaban dalam format Markdown. Gunakan heading untuk setiap kategori. "
        "Di bawah setiap heading, sebutkan kode EP yang relevan."
    )


async def generate_summary(
    generator: FieldGenerator,
    tree: HierarchyTree,
    retry_delay: float = 5.0,
    on_status: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Ask for a strategic summary grouping element codes by activity category.

    Always returns displayable Markdown text; failures become an error
    paragraph instead of raising.
    """
    lines = collect_plan_lines(tree)
    if not lines:
        return NO_PLANS_MESSAGE

    def report_retry(attempt: int) -> None:
        if on_status is not None:
            on_status(
                RETRYING_MESSAGE.format(delay=retry_delay, attempt=attempt, max_attempts=generator.max_attempts)
            )

    try:
        text, _ = await generator.generate_value(build_summary_prompt(lines), retry_delay, on_retry=report_retry)
    except RetriesExhaustedError:
        logger.warning("Summary generation gave up after %s rate-limited attempts.", generator.max_attempts)
        return EXHAUSTED_MESSAGE
    except GenerationError as exc:
        logger.warning("Summary generation failed: %s", exc)
        if on_status is not None:
            on_status(describe_error(exc))
        return FAILURE_TEMPLATE.format(message=exc)
    logger.info("Generated summary from %s corrective plan(s).", len(lines))
    return text
