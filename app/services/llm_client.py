"""
Remote generation client for an OpenAI-compatible chat completions endpoint
(xAI by default).

Public API
----------
XaiChatClient.generate(messages) -> GenerationResult

The result is an explicit variant:

* ``ok``          — ``text`` and ``model`` are populated
* ``unavailable`` — no API key configured; a soft miss, callers fall back
* ``failed``      — key configured but the call errored; callers also fall
                    back, and the failure is logged

The client never raises for remote errors.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Message / result types
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class GenerationStatus(str, enum.Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class GenerationResult:
    status: GenerationStatus
    text: str = ""
    model: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is GenerationStatus.OK

    @classmethod
    def success(cls, text: str, model: str) -> "GenerationResult":
        return cls(status=GenerationStatus.OK, text=text, model=model)

    @classmethod
    def unavailable(cls) -> "GenerationResult":
        return cls(status=GenerationStatus.UNAVAILABLE)

    @classmethod
    def failure(cls, error: str) -> "GenerationResult":
        return cls(status=GenerationStatus.FAILED, error=error)


class RemoteGenerationError(RuntimeError):
    """Configured remote call did not yield usable content."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class XaiChatClient:
    """
    Thin adapter over ``POST {base_url}/chat/completions``.

    *transport* is passed straight to ``httpx.AsyncClient`` so tests can
    plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.XAI_API_KEY
        self.base_url = (base_url or settings.XAI_BASE_URL).rstrip("/")
        self.model = model or settings.XAI_MODEL
        self.temperature = settings.XAI_TEMPERATURE if temperature is None else temperature
        self.timeout = httpx.Timeout(timeout or settings.XAI_TIMEOUT, connect=10.0)
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def generate(self, messages: Sequence[ChatMessage]) -> GenerationResult:
        """Send *messages* and return the generated text as a GenerationResult."""
        if not self.configured:
            logger.debug("generate: no XAI_API_KEY configured — skipping remote call")
            return GenerationResult.unavailable()

        try:
            text = await self._post(messages)
        except (RemoteGenerationError, httpx.HTTPError) as exc:
            logger.warning("Remote generation failed (%s): %s", self.model, exc)
            return GenerationResult.failure(str(exc) or exc.__class__.__name__)

        return GenerationResult.success(text, self.model)

    async def _post(self, messages: Sequence[ChatMessage]) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [m.as_dict() for m in messages],
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            )

        if resp.status_code < 200 or resp.status_code >= 300:
            raise RemoteGenerationError(
                f"xAI request failed ({resp.status_code}): {resp.text[:500]}"
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise RemoteGenerationError("xAI response was not valid JSON") from exc

        text = _extract_content(body)
        if not text:
            raise RemoteGenerationError("xAI response did not include a message content")
        return text


def _extract_content(body: Any) -> str:
    """Pull ``choices[0].message.content`` out of a completion body."""
    if not isinstance(body, dict):
        return ""
    choices: List[Any] = body.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return content.strip() if isinstance(content, str) else ""
