from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

# Returned instead of text when the service asks the caller to slow down.
RATE_LIMIT = "RATE_LIMIT"


class TextGenerator(ABC):
    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Return generated text, or RATE_LIMIT; raise GenerationError subclasses on failure."""
        raise NotImplementedError

    async def agenerate(self, prompt: str) -> str:
        return await asyncio.to_thread(self.generate, prompt)
