"""
PPS improvement-plan tooling: parse hierarchy-coded spreadsheets into a
Chapter -> Standard -> Criterion -> Item tree, carry saved annotations across
re-imports, and fill missing fields with batched AI generation.
"""

from .batch import BatchOrchestrator, BatchProgress, BatchResult, select_eligible  # noqa: F401
from .codes import HierarchicalCode, parse_code  # noqa: F401
from .errors import (  # noqa: F401
    BatchAlreadyRunningError,
    CredentialInvalidError,
    CredentialMissingError,
    EmptyInputError,
    GenerationError,
    HttpStatusError,
    MalformedCodeError,
    NetworkError,
    PlannerError,
    StoreError,
    UnknownItemError,
)
from .generator import FieldGenerator, GenerationOutcome  # noqa: F401
from .models import HierarchyTree, Item  # noqa: F401
from .reconcile import reconcile  # noqa: F401
from .session import PlanningSession  # noqa: F401
from .tree_builder import BuildReport, build_tree  # noqa: F401

__all__ = [
    "BatchOrchestrator",
    "BatchProgress",
    "BatchResult",
    "select_eligible",
    "HierarchicalCode",
    "parse_code",
    "BatchAlreadyRunningError",
    "CredentialInvalidError",
    "CredentialMissingError",
    "EmptyInputError",
    "GenerationError",
    "HttpStatusError",
    "MalformedCodeError",
    "NetworkError",
    "PlannerError",
    "StoreError",
    "UnknownItemError",
    "FieldGenerator",
    "GenerationOutcome",
    "HierarchyTree",
    "Item",
    "reconcile",
    "PlanningSession",
    "BuildReport",
    "build_tree",
]
