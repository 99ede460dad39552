"""Gemini client for structured (JSON-schema constrained) generation."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from dialectica.config import DEFAULT_MODEL
from dialectica.errors import (
    ConfigurationError,
    DialecticaError,
    ServiceUnavailableError,
    SynthesisError,
)
from dialectica.utils.text import strip_code_fences

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MISSING_KEY_MESSAGE = "Gemini API key is not set."
INVALID_KEY_MESSAGE = "Your Gemini API key is not valid. Please check it and try again."
UNAVAILABLE_MESSAGE = "The analysis service is temporarily unavailable. Please try again."


# ---------------------------------------------------------------------------
# Tagged parse results
# ---------------------------------------------------------------------------

@dataclass
class Parsed(Generic[T]):
    """A response that validated against its schema."""

    value: T
    raw_text: str


@dataclass
class ParseFailure:
    """A response that could not be read as the expected structure."""

    reason: str
    raw_text: str


StructuredResult = Union[Parsed[T], ParseFailure]


def parse_structured(text: Optional[str], schema: type[T]) -> "StructuredResult[T]":
    """Validate *text* against *schema* without ever raising."""
    raw = text or ""
    payload = strip_code_fences(raw)
    if not payload:
        return ParseFailure(reason="empty response", raw_text=raw)
    try:
        return Parsed(value=schema.model_validate_json(payload), raw_text=raw)
    except ValidationError as e:
        return ParseFailure(reason=_describe_validation_error(e, payload), raw_text=raw)


def _describe_validation_error(error: ValidationError, payload: str) -> str:
    first = error.errors()[0] if error.errors() else {}
    if first.get("type") == "json_invalid":
        try:
            json.loads(payload)
        except json.JSONDecodeError as je:
            context = payload[max(0, je.pos - 50): je.pos + 50]
            return f"invalid JSON at position {je.pos}: ...{context}..."
    return str(error)


def translate_error(error: Exception, fallback: str) -> DialecticaError:
    """Map a raw client exception onto the user-facing error taxonomy."""
    if isinstance(error, DialecticaError):
        return error
    message = str(error)
    if "API key not valid" in message or "API_KEY_INVALID" in message:
        return ConfigurationError(INVALID_KEY_MESSAGE)
    code = getattr(error, "code", None)
    if code == 503 or "503" in message or "unavailable" in message.lower():
        return ServiceUnavailableError(UNAVAILABLE_MESSAGE)
    return SynthesisError(f"{fallback}: {message}")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class LanguageService(ABC):
    """A generative-language backend that can answer with schema-shaped JSON."""

    model: str = DEFAULT_MODEL

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when a credential is available."""

    @abstractmethod
    async def generate(
        self,
        *,
        system: str,
        contents: str,
        schema: type[BaseModel],
        temperature: Optional[float] = None,
    ) -> str:
        """Return the raw response text for one structured request."""

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

    async def generate_structured(
        self,
        *,
        system: str,
        contents: str,
        schema: type[T],
        temperature: Optional[float] = None,
    ) -> "StructuredResult[T]":
        """Send one request and validate the answer against *schema*.

        Transport/service errors propagate; only the parsing outcome is
        folded into the returned result.
        """
        self.ensure_configured()
        text = await self.generate(
            system=system, contents=contents, schema=schema, temperature=temperature
        )
        result = parse_structured(text, schema)
        if isinstance(result, ParseFailure):
            logger.warning("%s response did not match schema: %s", schema.__name__, result.reason)
        return result


class GeminiService(LanguageService):
    """Google Gemini via the ``google-genai`` async client."""

    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL):
        self.api_key = api_key
        self.model = model
        self._client = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def configure(self, api_key: Optional[str], model: Optional[str] = None) -> None:
        """Swap credentials; the client is rebuilt on the next request."""
        self.api_key = api_key
        if model:
            self.model = model
        self._client = None

    def _get_client(self):
        """Create the genai client lazily (first request)."""
        if self._client is None:
            from google import genai

            self.ensure_configured()
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate(
        self,
        *,
        system: str,
        contents: str,
        schema: type[BaseModel],
        temperature: Optional[float] = None,
    ) -> str:
        from google.genai import types

        client = self._get_client()
        config = types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json",
            response_schema=schema,
            temperature=temperature,
        )
        logger.debug("Gemini request: schema=%s, %d chars", schema.__name__, len(contents))
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        return (getattr(response, "text", None) or "").strip()
