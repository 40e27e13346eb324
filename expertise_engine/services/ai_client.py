"""AI completion service client.

``AIClient`` is what interview sessions, synthesis jobs and suggestion
editors depend on. ``HttpAIClient`` talks to the service's own HTTP API
(see ``expertise_engine.api``) and hands back raw byte streams for the
frame parser to decode.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import httpx

from expertise_engine.core.config import get_settings
from expertise_engine.core.errors import UpstreamError
from expertise_engine.core.logging import get_logger
from expertise_engine.core.schemas_documents import EditOperation
from expertise_engine.core.schemas_interviews import ChatMessage, InterviewPromptContext
from expertise_engine.core.schemas_playbooks import SynthesisRequest

logger = get_logger(__name__)


class AIClient(ABC):
    """Black-box AI completion service."""

    @abstractmethod
    def stream_chat(
        self, messages: list[ChatMessage], context: InterviewPromptContext
    ) -> AsyncIterator[bytes]:
        """Next interviewer turn as a simple-dialect stream."""

    @abstractmethod
    async def complete_once(self, messages: list[ChatMessage], context: InterviewPromptContext) -> str:
        """Final document markdown for a transcript."""

    @abstractmethod
    def stream_synthesis(self, request: SynthesisRequest) -> AsyncIterator[bytes]:
        """Playbook synthesis as a typed-dialect stream."""

    @abstractmethod
    async def suggest_edit(self, selected_text: str, operation: EditOperation) -> str:
        """Rewrite a selection."""

    @abstractmethod
    async def request_summary(self, document_id: str) -> None:
        """Ask the service to (re)generate a document's AI summary."""


class HttpAIClient(AIClient):
    """AIClient over the service's HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> HttpAIClient:
        settings = get_settings()
        return cls(settings.AI_SERVICE_URL, timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpAIClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def stream_chat(
        self, messages: list[ChatMessage], context: InterviewPromptContext
    ) -> AsyncIterator[bytes]:
        return self._stream("/interviews/chat", _chat_body(messages, context))

    def stream_synthesis(self, request: SynthesisRequest) -> AsyncIterator[bytes]:
        return self._stream("/playbooks/synthesize", request.model_dump(mode="json"))

    async def _stream(self, path: str, body: dict[str, Any]) -> AsyncIterator[bytes]:
        try:
            async with self._client.stream("POST", path, json=body) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise UpstreamError(_error_message(resp))
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"Streaming request to {path} failed: {e}")
            raise UpstreamError(f"AI service request failed: {e}") from e

    # ------------------------------------------------------------------
    # One-shot calls
    # ------------------------------------------------------------------

    async def complete_once(self, messages: list[ChatMessage], context: InterviewPromptContext) -> str:
        data = await self._post("/interviews/document", _chat_body(messages, context))
        return data.get("document") or ""

    async def suggest_edit(self, selected_text: str, operation: EditOperation) -> str:
        data = await self._post(
            "/editor/suggest",
            {"selected_text": selected_text, "operation": EditOperation(operation).value},
        )
        return data.get("text") or ""

    async def request_summary(self, document_id: str) -> None:
        await self._post(f"/documents/{document_id}/summary", {})

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"Request to {path} failed: {e}")
            raise UpstreamError(f"AI service request failed: {e}") from e
        if resp.status_code >= 400:
            raise UpstreamError(_error_message(resp))
        return resp.json()


def _chat_body(messages: list[ChatMessage], context: InterviewPromptContext) -> dict[str, Any]:
    return {
        "messages": [m.model_dump(mode="json") for m in messages],
        "context": context.model_dump(mode="json"),
    }


def _error_message(resp: httpx.Response) -> str:
    """Prefer the server's detail/error field over the bare status line."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("detail") or data.get("error") or data.get("message")
        if message:
            return str(message)
    return f"AI service returned HTTP {resp.status_code}"
