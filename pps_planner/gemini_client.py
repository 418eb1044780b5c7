from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .errors import CredentialInvalidError, CredentialMissingError, HttpStatusError, NetworkError
from .generation_base import RATE_LIMIT, TextGenerator
from .schema import INVALID_RESPONSE

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"


def clean_generated_text(text: str) -> str:
    """Trim and drop one leading and one trailing double quote."""
    cleaned = text.strip()
    if cleaned.startswith('"'):
        cleaned = cleaned[1:]
    if cleaned.endswith('"'):
        cleaned = cleaned[:-1]
    return cleaned


def extract_text(payload: Any) -> str:
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return INVALID_RESPONSE
    if not isinstance(text, str):
        return INVALID_RESPONSE
    return clean_generated_text(text)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error") or {}
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return ""


class GeminiClient(TextGenerator):
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise CredentialMissingError()
        logger.debug("Calling %s with API key ending in %s", self.model, self.api_key[-4:])
        url = f"{self.endpoint}/models/{self.model}:generateContent"
        try:
            response = self.session.post(
                url,
                params={"key": self.api_key},
                json=self._payload(prompt),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Network error during generation request: %s", exc)
            raise NetworkError() from exc

        if response.status_code == 429:
            return RATE_LIMIT
        if not response.ok:
            message = _error_message(response)
            if response.status_code == 400 and "API key not valid" in message:
                raise CredentialInvalidError()
            raise HttpStatusError(response.status_code, message)

        try:
            data = response.json()
        except ValueError:
            return INVALID_RESPONSE
        return extract_text(data)
