"""Parse dotted hierarchy codes (BAB.Standar.Kriteria.EP) into their segments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .errors import MalformedCodeError
from .schema import cell_text

MIN_SEGMENTS = 4


@dataclass(frozen=True)
class HierarchicalCode:
    chapter: str
    standard: str
    criterion: str
    element: str

    @property
    def text(self) -> str:
        return ".".join((self.chapter, self.standard, self.criterion, self.element))

    @property
    def path(self) -> tuple[str, str, str]:
        return self.chapter, self.standard, self.criterion


def parse_code(raw: Any) -> HierarchicalCode:
    """Split a hierarchy code into chapter, standard, criterion and element.

    Args:
        raw: Code value from the source row; coerced to text.

    Returns:
        HierarchicalCode whose element joins every segment after the third.

    Raises:
        MalformedCodeError: the code has fewer than four segments.

    Examples:
        "1.2.3.4"   -> ("1", "2", "3", "4")
        "1.2.3.4.a" -> ("1", "2", "3", "4.a")
        "1.2.3"     -> MalformedCodeError
    """
    code = cell_text(raw)
    parts = code.split(".")
    if len(parts) < MIN_SEGMENTS:
        raise MalformedCodeError(code)
    chapter, standard, criterion, *element = parts
    return HierarchicalCode(chapter, standard, criterion, ".".join(element))


def try_parse_code(raw: Any) -> Optional[HierarchicalCode]:
    try:
        return parse_code(raw)
    except MalformedCodeError:
        return None
