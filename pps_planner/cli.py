from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from .batch import NOTHING_TO_DO, BatchProgress
from .config import ensure_directories, load_prompt_config, load_settings
from .errors import PlannerError
from .export import EXPORT_FORMATS, export_template, output_filename, template_filename
from .gemini_client import GeminiClient
from .prompts import build_field_prompts
from .schema import FIELD_LABELS, GENERATABLE_FIELDS
from .session import PlanningSession
from .store import JsonDocumentStore

logger = logging.getLogger(__name__)


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build, enrich and export PPS improvement plans from accreditation spreadsheets.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Enable debug logging.")
    parser.add_argument("--owner", help="Owner id used to key saved data (default: PPS_OWNER_ID).")
    parser.add_argument(
        "--prompt-config",
        type=Path,
        default=Path("config/prompts.yaml"),
        help="YAML file overriding the per-field prompt templates.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Parse a file, restore saved annotations and save the result.")
    p_import.add_argument("file", type=Path)

    p_generate = sub.add_parser("generate", help="Fill one field with AI, for every eligible item or a single one.")
    p_generate.add_argument("file", type=Path)
    p_generate.add_argument("--field", required=True, choices=GENERATABLE_FIELDS)
    p_generate.add_argument("--item", help="Item id (<code>-<row>) to regenerate instead of running a batch.")

    p_summary = sub.add_parser("summarize", help="Generate the strategic summary over all corrective plans.")
    p_summary.add_argument("file", type=Path)

    p_export = sub.add_parser("export", help="Export the reconciled plan.")
    p_export.add_argument("file", type=Path)
    p_export.add_argument("--format", dest="fmt", choices=EXPORT_FORMATS, default="xlsx")
    p_export.add_argument("--output", type=Path, help="Output path (default: 'Hasil PPS - <date>.<format>').")

    p_template = sub.add_parser("template", help="Write a blank import template.")
    p_template.add_argument("--output", type=Path, help="Output path (default: 'Template PPS - <date>.xlsx').")
    return parser.parse_args(argv)


def _print_progress(progress: BatchProgress) -> None:
    print(f"[..] {progress.message} (kumpulan {progress.chunk_index}/{progress.chunk_count})")


async def _generate(session: PlanningSession, field: str, item_id: Optional[str]) -> int:
    if item_id:
        outcome = await session.generate_field(item_id, field)
        status = "OK" if outcome.success else "FAIL"
        print(f"[{status}] {item_id} {FIELD_LABELS[field]}: {outcome.value}")
        return 0 if outcome.success else 1

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.abort_batch)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will not abort gracefully.")

    result = await session.generate_all(field, on_progress=_print_progress)
    if result.nothing_to_do:
        print(f"[SKIP] {NOTHING_TO_DO.format(label=session.prompts[field].label)}")
        return 0
    state = "dibatalkan" if result.aborted else "selesai"
    print(
        f"[OK] Proses 'Buat Semua {session.prompts[field].label}' {state}: "
        f"Berhasil: {result.success}, Gagal: {result.failed}, Dibatalkan: {result.cancelled}"
    )
    return 1 if result.failed else 0


async def _summarize(session: PlanningSession) -> int:
    summary = await session.generate_summary(on_status=lambda message: print(f"[..] {message}"))
    print(summary)
    return 0


def run(args: argparse.Namespace) -> int:
    settings = load_settings()

    if args.command == "template":
        path = export_template(args.output or Path(template_filename()))
        print(f"[OK] Template written to {path}")
        return 0

    ensure_directories(settings)
    prompts = build_field_prompts(load_prompt_config(args.prompt_config))
    session = PlanningSession(
        settings,
        GeminiClient(settings.api_key, settings.model, settings.endpoint, settings.request_timeout),
        store=JsonDocumentStore(settings.store_dir, settings.app_id),
        owner_id=args.owner,
        prompts=prompts,
    )

    result = session.import_file(args.file)
    print(
        f"[OK] {args.file.name}: {result.report.item_count} item(s), {len(result.report.skipped)} row(s) skipped"
        + (f", {result.stats.carried_values} saved value(s) restored" if result.restored else "")
    )

    code = 0
    if args.command == "generate":
        code = asyncio.run(_generate(session, args.field, args.item))
    elif args.command == "summarize":
        code = asyncio.run(_summarize(session))
    elif args.command == "export":
        path = session.export(args.output or Path(output_filename(args.fmt)), args.fmt)
        print(f"[OK] Exported to {path}")

    session.flush()
    for notice in session.notices:
        print(f"[WARN] {notice}")
    if session.last_error:
        print(f"[WARN] {session.last_error}")
    return code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    try:
        return run(args)
    except PlannerError as exc:
        print(f"[ERROR] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
