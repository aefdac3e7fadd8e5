"""LiteLLM capability backend.

Serves every capability node type from a chat-completion model. Each node
type is turned into a system prompt built from the session options; the
resolved input becomes the user message. Multimodal prompt requests are
converted to OpenAI-style content parts, which LiteLLM translates for the
configured provider.
"""

import base64
import logging
import time
from collections.abc import AsyncIterator, Mapping
from pathlib import Path
from typing import Any

import litellm

from nodeflow.capabilities.provider import (
    Availability,
    CapabilityProvider,
    CapabilityRequest,
    CapabilitySession,
)
from nodeflow.config import RuntimeConfig
from nodeflow.graph.models import NodeType

logger = logging.getLogger(__name__)

SUMMARY_STYLES = {
    "tldr": "a TL;DR",
    "key-points": "the key points as a list",
    "teaser": "a teaser that makes the reader want more",
    "headline": "a single headline",
}


def _with_shared_context(prompt: str, options: Mapping[str, Any]) -> str:
    shared = options.get("shared_context")
    if shared:
        return f"{prompt}\n\nShared context: {shared}"
    return prompt


def build_system_prompt(node_type: str, options: Mapping[str, Any]) -> str:
    """Compose the system prompt for a node type from its session options."""
    if node_type == NodeType.WRITER:
        prompt = (
            "You are a writing assistant. Write new text for the user's request. "
            f"Tone: {options.get('tone', 'neutral')}. "
            f"Format: {options.get('format', 'plain-text')}. "
            f"Length: {options.get('length', 'medium')}. "
            "Return only the text."
        )
        return _with_shared_context(prompt, options)

    if node_type == NodeType.REWRITER:
        prompt = (
            "You are a rewriting assistant. Rewrite the user's text, keeping its meaning. "
            f"Tone: {options.get('tone', 'as-is')}. "
            f"Length: {options.get('length', 'as-is')}. "
            "Return only the rewritten text."
        )
        return _with_shared_context(prompt, options)

    if node_type == NodeType.SUMMARIZER:
        style = SUMMARY_STYLES.get(options.get("type", "tldr"), SUMMARY_STYLES["tldr"])
        prompt = (
            f"Summarize the user's text as {style}. "
            f"Format: {options.get('format', 'markdown')}. "
            f"Length: {options.get('length', 'short')}. "
            "Return only the summary."
        )
        return _with_shared_context(prompt, options)

    if node_type == NodeType.TRANSLATOR:
        return (
            f"Translate the user's text from {options.get('source_language', 'en')} "
            f"to {options.get('target_language', 'es')}. Return only the translation."
        )

    # prompt / proofreader carry their own system prompt
    parts = [
        p.get("content", "")
        for p in options.get("initial_prompts", [])
        if p.get("role") == "system"
    ]
    return "\n\n".join(part for part in parts if part)


def _encode_file(value: Any) -> str:
    """Base64-encode a file handle: raw bytes or a filesystem path."""
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (str, Path)):
        return base64.b64encode(Path(value).read_bytes()).decode("ascii")
    raise ValueError(f"Unsupported attachment handle: {type(value).__name__}")


def convert_content_part(part: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a request content part to the LiteLLM/OpenAI message format."""
    kind = part.get("type")
    value = part.get("value")

    if kind == "text":
        return {"type": "text", "text": value or ""}

    if kind == "image":
        if isinstance(value, str) and value.startswith(("http://", "https://", "data:")):
            url = value
        else:
            mime_type = part.get("mime_type") or "image/png"
            url = f"data:{mime_type};base64,{_encode_file(value)}"
        return {"type": "image_url", "image_url": {"url": url}}

    if kind == "audio":
        mime_type = part.get("mime_type") or "audio/wav"
        audio_format = mime_type.split("/")[-1].replace("mpeg", "mp3").replace("x-wav", "wav")
        return {
            "type": "input_audio",
            "input_audio": {"data": _encode_file(value), "format": audio_format},
        }

    raise ValueError(f"Unsupported content part type: {kind}")


def build_messages(
    system: str, request: CapabilityRequest, context: str | None = None
) -> list[dict[str, Any]]:
    """Build the chat messages for a request."""
    if context:
        system = f"{system}\n\nAdditional context: {context}" if system else context

    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    if isinstance(request, str):
        messages.append({"role": "user", "content": request})
        return messages

    for message in request:
        content = message.get("content")
        if isinstance(content, list):
            content = [convert_content_part(part) for part in content]
        messages.append({"role": message.get("role", "user"), "content": content})
    return messages


class LiteLLMSession(CapabilitySession):
    """One chat-completion conversation for a single node invocation."""

    def __init__(self, node_type: str, options: Mapping[str, Any], config: RuntimeConfig):
        self.node_type = node_type
        self.config = config
        self.system = build_system_prompt(node_type, options)
        self.temperature = options.get("temperature", config.temperature)
        self.top_k = options.get("top_k")

    def _completion_kwargs(self, request: CapabilityRequest, **kwargs: Any) -> dict[str, Any]:
        call: dict[str, Any] = {
            "model": self.config.model,
            "messages": build_messages(self.system, request, kwargs.get("context")),
            "temperature": self.temperature,
            "max_tokens": self.config.max_tokens,
            "drop_params": True,
        }
        if self.top_k is not None:
            call["top_k"] = self.top_k
        if self.config.api_key:
            call["api_key"] = self.config.api_key
        if self.config.api_base:
            call["api_base"] = self.config.api_base
        return call

    async def generate(self, request: CapabilityRequest, **kwargs: Any) -> str:
        start = time.perf_counter()
        response = await litellm.acompletion(**self._completion_kwargs(request, **kwargs))
        content = response.choices[0].message.content or ""
        logger.info(
            f"{self.node_type} completion finished",
            extra={
                "model": self.config.model,
                "latency_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return content

    async def generate_streaming(
        self, request: CapabilityRequest, **kwargs: Any
    ) -> AsyncIterator[str]:
        start = time.perf_counter()
        response = await litellm.acompletion(
            **self._completion_kwargs(request, **kwargs), stream=True
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
        logger.info(
            f"{self.node_type} stream finished",
            extra={
                "model": self.config.model,
                "latency_ms": int((time.perf_counter() - start) * 1000),
            },
        )


class LiteLLMCapabilityProvider(CapabilityProvider):
    """
    Capability provider for one node type, backed by any LiteLLM model.

    Example:
        provider = LiteLLMCapabilityProvider("summarizer", config=RuntimeConfig(
            model="openai/gpt-4o-mini",
        ))
    """

    def __init__(self, node_type: str, config: RuntimeConfig | None = None):
        self.node_type = str(node_type)
        self.config = config or RuntimeConfig()

    async def availability(self, options: Mapping[str, Any] | None = None) -> Availability:
        # Remote models need no download; a configured model is all it takes
        if not self.config.model:
            return Availability.UNAVAILABLE
        return Availability.AVAILABLE

    async def create_session(self, options: Mapping[str, Any]) -> LiteLLMSession:
        logger.debug(f"Creating {self.node_type} session on {self.config.model}")
        return LiteLLMSession(self.node_type, options, self.config)
