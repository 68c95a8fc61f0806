"""Gemini provider.

Wraps ``google.genai`` and turns its failures into the AIError family:
rate limits and busy servers become TransientAIError, an empty answer
becomes MalformedResponseError, everything else is a plain AIError.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import TYPE_CHECKING, Any, Protocol

from testmo.errors import AIError, MalformedResponseError, TransientAIError

if TYPE_CHECKING:
    from testmo.types import MediaInput

logger = logging.getLogger(__name__)

TRANSIENT_CODES = (429, 503)
TRANSIENT_STATUSES = ("RESOURCE_EXHAUSTED", "UNAVAILABLE")


class Provider(Protocol):
    def generate(
        self,
        prompt: str,
        *,
        system: str,
        schema: dict[str, Any],
        temperature: float,
        media: MediaInput | None = None,
    ) -> str: ...


def decode_media(media: MediaInput) -> bytes:
    """Accept raw base64 or a ``data:<mime>;base64,`` URL."""
    data = media.data
    if data.startswith("data:"):
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AIError(f"Attached media is not valid base64: {e}") from e


def classify_api_error(error: Exception) -> AIError:
    code = getattr(error, "code", None)
    status = getattr(error, "status", None)
    message = str(error)
    if code in TRANSIENT_CODES or status in TRANSIENT_STATUSES or "429" in message or "quota" in message:
        return TransientAIError(f"Gemini is rate limited or busy: {message}", status=code)
    return AIError(f"Gemini request failed: {message}")


class GeminiProvider:
    """Google Gemini via the google-genai SDK."""

    def __init__(self, model: str = "gemini-2.5-flash", api_key: str | None = None,
                 api_key_env: str = "GEMINI_API_KEY"):
        self.model = model
        self.api_key = api_key if api_key is not None else os.getenv(api_key_env, "")
        self.api_key_env = api_key_env
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise AIError(f"No Gemini API key. Set {self.api_key_env}.")
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generate(
        self,
        prompt: str,
        *,
        system: str,
        schema: dict[str, Any],
        temperature: float,
        media: MediaInput | None = None,
    ) -> str:
        from google.genai import errors, types

        client = self._get_client()
        parts = []
        if media is not None:
            parts.append(types.Part.from_bytes(data=decode_media(media), mime_type=media.mime_type))
        parts.append(types.Part(text=prompt))

        config = types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json",
            response_schema=schema,
            temperature=temperature,
        )
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=[types.Content(role="user", parts=parts)],
                config=config,
            )
        except errors.APIError as e:
            raise classify_api_error(e) from e

        text = response.text
        if not text:
            logger.error("Gemini returned no text (model=%s)", self.model)
            raise MalformedResponseError("The AI service returned no answer.")
        return text
