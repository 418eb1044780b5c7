"""
Data structures for the improvement-plan hierarchy.

The tree keeps the Chapter -> Standard -> Criterion skeleton as plain
insertion-ordered dicts, while the leaf items live in a single arena keyed by
item identity. Items are frozen: every edit swaps exactly one arena entry, so
two writers touching different items can never overwrite each other.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import UnknownItemError
from .schema import CARRIED_FIELDS, CHAPTER_LABEL, CRITERION_LABEL, STANDARD_LABEL, cell_text


def item_identity(code: str, position: int) -> str:
    """Identity token of a leaf: the code plus its 0-based source row."""
    return f"{code}-{position}"


@dataclass(frozen=True)
class Item:
    id: str
    code: str
    description: str = ""
    survey_recommendation: str = ""
    corrective_plan: str = ""
    indicator: str = ""
    target: str = ""
    timeline: str = ""
    responsible: str = ""
    evidence_title: str = ""

    def with_field(self, name: str, value: str) -> "Item":
        if name not in CARRIED_FIELDS:
            raise ValueError(f"Field '{name}' is not editable.")
        return replace(self, **{name: value})

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        names = [f.name for f in fields(cls)]
        return cls(**{name: cell_text(data.get(name)) for name in names})


@dataclass
class Criterion:
    key: str
    title: str
    item_ids: List[str] = field(default_factory=list)


@dataclass
class Standard:
    key: str
    title: str
    criteria: Dict[str, Criterion] = field(default_factory=dict)


@dataclass
class Chapter:
    key: str
    title: str
    standards: Dict[str, Standard] = field(default_factory=dict)


class HierarchyTree:
    def __init__(self) -> None:
        self.chapters: Dict[str, Chapter] = {}
        self._items: Dict[str, Item] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def is_empty(self) -> bool:
        return not self.chapters

    def ensure_criterion(self, chapter_key: str, standard_key: str, criterion_key: str) -> Criterion:
        chapter = self.chapters.get(chapter_key)
        if chapter is None:
            chapter = self.chapters[chapter_key] = Chapter(chapter_key, f"{CHAPTER_LABEL} {chapter_key}")
        standard = chapter.standards.get(standard_key)
        if standard is None:
            standard = chapter.standards[standard_key] = Standard(standard_key, f"{STANDARD_LABEL} {standard_key}")
        criterion = standard.criteria.get(criterion_key)
        if criterion is None:
            criterion = standard.criteria[criterion_key] = Criterion(
                criterion_key, f"{CRITERION_LABEL} {criterion_key}"
            )
        return criterion

    def add_item(self, path: Tuple[str, str, str], item: Item) -> None:
        if item.id in self._items:
            raise ValueError(f"Duplicate item identity: {item.id}")
        criterion = self.ensure_criterion(*path)
        criterion.item_ids.append(item.id)
        self._items[item.id] = item

    def get_item(self, item_id: str) -> Item:
        try:
            return self._items[item_id]
        except KeyError:
            raise UnknownItemError(item_id) from None

    def find_item(self, chapter_key: str, standard_key: str, criterion_key: str, item_id: str) -> Optional[Item]:
        """Locate an item only through its own chapter/standard/criterion path."""
        chapter = self.chapters.get(chapter_key)
        if chapter is None:
            return None
        standard = chapter.standards.get(standard_key)
        if standard is None:
            return None
        criterion = standard.criteria.get(criterion_key)
        if criterion is None or item_id not in criterion.item_ids:
            return None
        return self._items.get(item_id)

    def set_field(self, item_id: str, name: str, value: str) -> Item:
        updated = self.get_item(item_id).with_field(name, value)
        self._items[item_id] = updated
        return updated

    def replace_item(self, item: Item) -> None:
        if item.id not in self._items:
            raise UnknownItemError(item.id)
        self._items[item.id] = item

    def iter_nodes(self) -> Iterator[Tuple[Chapter, Standard, Criterion, Item]]:
        """Depth-first walk in insertion order."""
        for chapter in self.chapters.values():
            for standard in chapter.standards.values():
                for criterion in standard.criteria.values():
                    for item_id in criterion.item_ids:
                        yield chapter, standard, criterion, self._items[item_id]

    def iter_items(self) -> Iterator[Item]:
        for _, _, _, item in self.iter_nodes():
            yield item

    def snapshot(self) -> "HierarchyTree":
        """Independent copy; items are shared because they are immutable."""
        copy = HierarchyTree()
        for chapter in self.chapters.values():
            new_chapter = copy.chapters[chapter.key] = Chapter(chapter.key, chapter.title)
            for standard in chapter.standards.values():
                new_standard = new_chapter.standards[standard.key] = Standard(standard.key, standard.title)
                for criterion in standard.criteria.values():
                    new_standard.criteria[criterion.key] = Criterion(
                        criterion.key, criterion.title, list(criterion.item_ids)
                    )
        copy._items = dict(self._items)
        return copy

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for chapter in self.chapters.values():
            standards: Dict[str, Any] = {}
            for standard in chapter.standards.values():
                criteria: Dict[str, Any] = {}
                for criterion in standard.criteria.values():
                    criteria[criterion.key] = {
                        "title": criterion.title,
                        "items": [self._items[item_id].to_dict() for item_id in criterion.item_ids],
                    }
                standards[standard.key] = {"title": standard.title, "criteria": criteria}
            data[chapter.key] = {"title": chapter.title, "standards": standards}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HierarchyTree":
        tree = cls()
        for chapter_key, chapter_data in (data or {}).items():
            chapter = tree.chapters[chapter_key] = Chapter(
                chapter_key, chapter_data.get("title") or f"{CHAPTER_LABEL} {chapter_key}"
            )
            for standard_key, standard_data in (chapter_data.get("standards") or {}).items():
                standard = chapter.standards[standard_key] = Standard(
                    standard_key, standard_data.get("title") or f"{STANDARD_LABEL} {standard_key}"
                )
                for criterion_key, criterion_data in (standard_data.get("criteria") or {}).items():
                    criterion = standard.criteria[criterion_key] = Criterion(
                        criterion_key, criterion_data.get("title") or f"{CRITERION_LABEL} {criterion_key}"
                    )
                    for raw_item in criterion_data.get("items") or []:
                        item = Item.from_dict(raw_item)
                        if item.id in tree._items:
                            continue
                        criterion.item_ids.append(item.id)
                        tree._items[item.id] = item
        return tree
