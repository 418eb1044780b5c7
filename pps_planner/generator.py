from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from .errors import (
    CredentialInvalidError,
    CredentialMissingError,
    GenerationError,
    HttpStatusError,
    NetworkError,
    RetriesExhaustedError,
)
from .generation_base import RATE_LIMIT, TextGenerator
from .models import HierarchyTree
from .schema import FAILED_PREFIX, RATE_LIMIT_RETRYING, RETRIES_EXHAUSTED

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class GenerationOutcome:
    item_id: str
    field: str
    value: str
    success: bool
    attempts: int = 0
    error: Optional[str] = None
    notice: Optional[str] = None


def describe_error(exc: BaseException) -> str:
    """User-facing notice for a generation failure."""
    if isinstance(exc, CredentialInvalidError):
        return "Kunci API tidak valid. Harap periksa kembali kunci API dari Google AI Studio dan coba lagi."
    if isinstance(exc, CredentialMissingError):
        return "Harap masukkan Kunci API Google AI Anda terlebih dahulu."
    if isinstance(exc, NetworkError):
        return (
            "Gagal terhubung ke server AI. Mohon periksa koneksi internet Anda dan pastikan tidak ada "
            "pemblokir iklan (ad-blocker) atau firewall yang aktif."
        )
    if isinstance(exc, HttpStatusError):
        return f"Kesalahan server AI: {exc}. Coba lagi nanti."
    return f"Gagal menghubungi AI: {exc}"


def is_global_failure(exc: BaseException) -> bool:
    return isinstance(exc, (CredentialMissingError, CredentialInvalidError, NetworkError))


class FieldGenerator:
    """
    Run one generation call with the rate-limit retry policy and write the
    outcome into a single item field.

    Only a RATE_LIMIT answer is retried. Every other failure is terminal for
    the call and lands in the field as a "Gagal diproses" marker; credential
    and network failures also carry a user-facing notice on the outcome.
    """

    def __init__(
        self,
        client: TextGenerator,
        max_attempts: int = 3,
        timeout: Optional[float] = 60.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self.sleep = sleep

    async def _call(self, prompt: str) -> str:
        if not self.timeout:
            return await self.client.agenerate(prompt)
        try:
            return await asyncio.wait_for(self.client.agenerate(prompt), self.timeout)
        except asyncio.TimeoutError:
            raise NetworkError(f"Permintaan AI melebihi batas waktu {self.timeout:g} detik.") from None

    async def generate_value(
        self,
        prompt: str,
        retry_delay: float,
        on_retry: Optional[Callable[[int], None]] = None,
    ) -> Tuple[str, int]:
        """
        Return ``(text, attempts)``.

        Raises the client's GenerationError subclasses unchanged, and
        RetriesExhaustedError when every attempt came back rate limited.
        """
        for attempt in range(1, self.max_attempts + 1):
            result = await self._call(prompt)
            if result != RATE_LIMIT:
                return result, attempt
            logger.info("Rate limited (attempt %s/%s).", attempt, self.max_attempts)
            if attempt < self.max_attempts:
                if on_retry is not None:
                    on_retry(attempt)
                await self.sleep(retry_delay)
        raise RetriesExhaustedError(RETRIES_EXHAUSTED)

    async def run(
        self,
        tree: HierarchyTree,
        item_id: str,
        field: str,
        prompt: str,
        retry_delay: float,
    ) -> GenerationOutcome:
        original = getattr(tree.get_item(item_id), field)
        retries = [0]

        def mark_retry(attempt: int) -> None:
            retries[0] = attempt
            tree.set_field(item_id, field, RATE_LIMIT_RETRYING.format(attempt=attempt, max_attempts=self.max_attempts))

        try:
            value, attempts = await self.generate_value(prompt, retry_delay, on_retry=mark_retry)
        except asyncio.CancelledError:
            tree.set_field(item_id, field, original)
            raise
        except RetriesExhaustedError as exc:
            tree.set_field(item_id, field, RETRIES_EXHAUSTED)
            return GenerationOutcome(item_id, field, RETRIES_EXHAUSTED, False, self.max_attempts, str(exc))
        except GenerationError as exc:
            logger.warning("Generation failed for %s/%s: %s", item_id, field, exc)
            message = f"{FAILED_PREFIX}: {exc}"
            tree.set_field(item_id, field, message)
            notice = describe_error(exc) if is_global_failure(exc) else None
            return GenerationOutcome(item_id, field, message, False, retries[0] + 1, str(exc), notice)
        except Exception as exc:
            logger.exception("Unexpected error while generating %s/%s", item_id, field)
            message = f"{FAILED_PREFIX}: {exc}"
            tree.set_field(item_id, field, message)
            return GenerationOutcome(item_id, field, message, False, retries[0] + 1, str(exc))

        tree.set_field(item_id, field, value)
        return GenerationOutcome(item_id, field, value, True, attempts)
