"""Client for an OpenAI-compatible chat completions API.

Used for screenshot, document and activity checks. Any transport, provider
or parsing problem is raised as VerificationError; callers decide on the
fallback verdict.
"""

import json
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import Depends

from ..config import Settings, get_settings
from ..errors import VerificationError
from ..logging_config import get_logger

logger = get_logger("earnhub.verification.client")

CHAT_COMPLETIONS_PATH = "/chat/completions"


def text_with_images(prompt: str, *image_urls: str) -> list[dict]:
    """Build a single user message with a text part and image parts."""
    content: list[dict] = [{"type": "text", "text": prompt}]
    content.extend({"type": "image_url", "image_url": {"url": url}} for url in image_urls if url)
    return [{"role": "user", "content": content}]


class VerificationClient:
    """Thin async wrapper around the chat completions endpoint."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerificationClient":
        return cls(
            api_key=settings.ai_api_key,
            base_url=settings.ai_base_url,
            model=settings.ai_model,
            timeout=settings.ai_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: list[dict],
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        """Return the content of the first choice."""
        if not self.configured:
            raise VerificationError("AI provider is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}{CHAT_COMPLETIONS_PATH}",
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self.api_key}",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"AI request failed: {e}")
            raise VerificationError(f"AI request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            logger.error(f"AI provider error {response.status_code}: {message}")
            raise VerificationError(message or f"AI provider error: {response.status_code}")

        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise VerificationError("Malformed AI provider response") from e

    async def complete_json(self, messages: list[dict]) -> dict:
        """Request a JSON answer and parse it."""
        content = await self.complete(messages, json_mode=True)
        try:
            parsed = json.loads(content or "{}")
        except json.JSONDecodeError as e:
            raise VerificationError("AI answer was not valid JSON") from e
        if not isinstance(parsed, dict):
            raise VerificationError("AI answer was not a JSON object")
        return parsed


@lru_cache
def get_verification_client() -> VerificationClient:
    """FastAPI dependency for the shared client."""
    return VerificationClient.from_settings(get_settings())


Verifier = Annotated[VerificationClient, Depends(get_verification_client)]
