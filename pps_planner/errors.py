from __future__ import annotations


class PlannerError(Exception):
    """Base error for the PPS planner."""


class MalformedCodeError(PlannerError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Hierarchy code has fewer than 4 segments: {code!r}")
        self.code = code


class EmptyInputError(PlannerError):
    pass


class GenerationError(PlannerError):
    """Terminal failure of a single text-generation call."""

    reason = "GENERATION_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)


class CredentialMissingError(GenerationError):
    reason = "API_KEY_MISSING"


class CredentialInvalidError(GenerationError):
    reason = "API_KEY_INVALID"


class NetworkError(GenerationError):
    reason = "NETWORK_ERROR"


class HttpStatusError(GenerationError):
    reason = "HTTP_ERROR"

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(f"HTTP error! status: {status} - {message or 'Tidak dikenal.'}")
        self.status = status


class RetriesExhaustedError(GenerationError):
    reason = "RETRIES_EXHAUSTED"


class BatchAlreadyRunningError(PlannerError):
    pass


class StoreError(PlannerError):
    pass


class UnknownItemError(PlannerError, KeyError):
    def __init__(self, item_id: str) -> None:
        super().__init__(f"Item tidak ditemukan: {item_id}")
        self.item_id = item_id

    def __str__(self) -> str:
        return str(self.args[0])
