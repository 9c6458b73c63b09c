"""generation clients: claude-agent-sdk, a remote generation service, and a mock.

all clients stream text as an async iterator of chunks; the concatenation
of the chunks is the generator's output.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Protocol, runtime_checkable

import httpx
from claude_agent_sdk import (
    ClaudeAgentOptions,
    ClaudeSDKClient,
)

from .models import GeneratedImage

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """the generation backend failed or answered with an error."""

    pass


@dataclass
class GenerationRequest:
    """either a plain prompt or structured multi-part messages."""

    provider: str
    model: str
    prompt: Optional[str] = None
    messages: Optional[list[dict]] = None

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"provider": self.provider, "model": self.model}
        if self.messages is not None:
            body["messages"] = self.messages
        else:
            body["prompt"] = self.prompt or ""
        return body


@dataclass
class ImageResult:
    images: list[GeneratedImage] = field(default_factory=list)
    text_fallback: Optional[str] = None  # some multimodal models answer in text

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "images": [
                {
                    "base64": img.base64,
                    "mimeType": img.mime_type,
                    **({"revisedPrompt": img.revised_prompt} if img.revised_prompt else {}),
                }
                for img in self.images
            ]
        }
        if self.text_fallback is not None:
            d["textFallback"] = self.text_fallback
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ImageResult:
        return cls(
            images=[GeneratedImage.from_dict(i) for i in d.get("images", [])],
            text_fallback=d.get("textFallback"),
        )


@runtime_checkable
class ClientProtocol(Protocol):
    """protocol for generation clients (real or mock)."""

    def stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        """stream the textual response chunk by chunk."""
        ...

    async def generate_image(self, request: GenerationRequest) -> ImageResult:
        ...


# a 1x1 transparent png
_MOCK_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class MockClient:
    """mock client for testing without api calls."""

    def __init__(
        self,
        responses: Optional[dict[str, str]] = None,
        delay: float = 0.0,
        fail_with: Optional[str] = None,
    ):
        """responses maps prompt substrings (case-insensitive) to replies.

        delay is paid once before each chunk. fail_with makes every call raise.
        """
        self.responses = responses or {}
        self.delay = delay
        self.fail_with = fail_with
        self.calls: list[GenerationRequest] = []
        self.default_response = "## mock response\n\nthis is a simulated response from mock mode."

    def _reply(self, request: GenerationRequest) -> str:
        text = request.prompt or ""
        if request.messages:
            text = " ".join(
                part.get("text", "")
                for message in request.messages
                for part in message.get("content", [])
                if part.get("type") == "text"
            )
        lowered = text.lower()
        for key, response in self.responses.items():
            if key.lower() in lowered:
                return response
        return self.default_response

    async def stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        self.calls.append(request)
        if self.fail_with:
            raise GenerationError(self.fail_with)
        words = self._reply(request).split(" ")
        for i, word in enumerate(words):
            await asyncio.sleep(self.delay)
            yield word if i == len(words) - 1 else word + " "

    async def generate_image(self, request: GenerationRequest) -> ImageResult:
        self.calls.append(request)
        await asyncio.sleep(self.delay)
        if self.fail_with:
            raise GenerationError(self.fail_with)
        return ImageResult(images=[GeneratedImage(base64=_MOCK_PNG, mime_type="image/png")])


def _anthropic_block(part: dict) -> dict:
    """message content part -> anthropic content block."""
    kind = part.get("type")
    if kind == "image":
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part["mimeType"], "data": part["image"]},
        }
    if kind == "file":
        return {
            "type": "document",
            "source": {"type": "base64", "media_type": part["mimeType"], "data": part["data"]},
        }
    return {"type": "text", "text": part.get("text", "")}


async def _sdk_messages(messages: list[dict]) -> AsyncIterator[dict]:
    for message in messages:
        yield {
            "type": "user",
            "message": {
                "role": "user",
                "content": [_anthropic_block(p) for p in message.get("content", [])],
            },
            "parent_tool_use_id": None,
            "session_id": "default",
        }


class ClaudeClient:
    """streams text from claude using claude-agent-sdk.

    creates a fresh connection per query to avoid state conflicts.
    """

    def __init__(self, cwd: Optional[str] = None):
        self.cwd = cwd

    async def stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        options = ClaudeAgentOptions(
            cwd=self.cwd,
            model=request.model,
            tools=[],
            allowed_tools=[],
        )
        client: Optional[ClaudeSDKClient] = None
        try:
            client = ClaudeSDKClient(options)
            await client.connect()
            if request.messages is not None:
                await client.query(_sdk_messages(request.messages))
            else:
                await client.query(request.prompt or "")

            async for event in client.receive_response():
                content = getattr(getattr(event, "message", event), "content", None)
                if not isinstance(content, list):
                    continue
                for block in content:
                    text = getattr(block, "text", None)
                    if text:
                        yield text
        except (GeneratorExit, asyncio.CancelledError):
            raise
        except Exception as e:
            raise GenerationError(f"claude api error: {e}") from e
        finally:
            if client:
                try:
                    await client.disconnect()
                except Exception as e:
                    logger.debug("ignoring disconnect error: %s", e)

    async def generate_image(self, request: GenerationRequest) -> ImageResult:
        raise GenerationError(f"model {request.model} cannot generate images through claude")


class HTTPGenerationClient:
    """talks to a generation service exposing /generate and /generate-image."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def stream_text(self, request: GenerationRequest) -> AsyncIterator[str]:
        try:
            async with self._client() as client:
                async with client.stream("POST", f"{self.base_url}/generate", json=request.to_dict()) as response:
                    if response.status_code != httpx.codes.OK:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise GenerationError(body or f"Generation failed ({response.status_code})")
                    async for chunk in response.aiter_text():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as e:
            raise GenerationError(f"generation service unreachable: {e}") from e

    async def generate_image(self, request: GenerationRequest) -> ImageResult:
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/generate-image", json=request.to_dict())
        except httpx.HTTPError as e:
            raise GenerationError(f"generation service unreachable: {e}") from e
        if response.status_code != httpx.codes.OK:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = (body.get("error") or body.get("detail")) if isinstance(body, dict) else None
            raise GenerationError(message or f"Image generation failed ({response.status_code})")
        return ImageResult.from_dict(response.json())
