from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .errors import EmptyInputError

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
TEXT_SUFFIXES = {".csv", ".txt"}
UNREADABLE_MESSAGE = "File Excel kosong atau formatnya tidak bisa dibaca."


def _read_frame(data: bytes, suffix: str) -> pd.DataFrame:
    buffer = io.BytesIO(data)
    if suffix in EXCEL_SUFFIXES:
        return pd.read_excel(buffer, sheet_name=0, dtype=str, keep_default_na=False)
    sep = "\t" if suffix == ".txt" else ","
    return pd.read_csv(buffer, sep=sep, dtype=str, keep_default_na=False, encoding="utf-8-sig")


def decode_table(data: bytes, file_name: str) -> List[Dict[str, Any]]:
    """
    Decode the first sheet of a workbook (or a CSV/TXT export) into row dicts.

    Column names are kept exactly as written; empty cells become "". Raises
    EmptyInputError when the file has no rows or cannot be parsed.
    """
    suffix = Path(file_name).suffix.lower()
    if suffix not in EXCEL_SUFFIXES | TEXT_SUFFIXES:
        raise ValueError(f"Unsupported file type '{suffix or file_name}'. Use .xlsx or .csv.")
    if not data:
        raise EmptyInputError(UNREADABLE_MESSAGE)
    try:
        df = _read_frame(data, suffix)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, zipfile.BadZipFile, ValueError) as exc:
        logger.warning("Could not decode %s: %s", file_name, exc)
        raise EmptyInputError(UNREADABLE_MESSAGE) from exc

    df = df.fillna("")
    if df.empty:
        raise EmptyInputError(UNREADABLE_MESSAGE)
    logger.debug("Decoded %s row(s) from %s with columns %s", len(df), file_name, list(df.columns))
    return df.to_dict(orient="records")


def load_table(path: Path) -> List[Dict[str, Any]]:
    path = Path(path)
    return decode_table(path.read_bytes(), path.name)
