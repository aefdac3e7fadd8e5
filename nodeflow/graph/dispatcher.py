"""
Capability Dispatcher - runs one node against its capability backend.

Input nodes pass their content straight through. Capability nodes:
1. Look up the provider for the node type in the injected registry
2. Check availability for the node-specific options
3. Create a session, feed it the resolved input (streaming or one-shot)
4. Dispose the session and normalize the output to a ResultPayload

Every backend failure surfaces as a CapabilityError naming the node. There
are no retries here; retry policy belongs to the caller.

Translator providers that report a downloadable model receive a
``monitor`` coroutine function in the creation options. Backends await
``monitor(loaded=<0..1 or 0..100>)`` while downloading and
``monitor(state="downloaded")`` once ready; each call is reported to the
caller as a streaming chunk.
"""

import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from contextlib import aclosing
from typing import Any

from nodeflow.capabilities.provider import (
    Availability,
    CapabilityProvider,
    CapabilityRegistry,
    CapabilityRequest,
    CapabilitySession,
)
from nodeflow.graph.attachments import collect_selected_attachments
from nodeflow.graph.errors import CapabilityError
from nodeflow.graph.models import (
    ATTACHMENT_NODE_TYPES,
    Attachment,
    Node,
    NodeType,
    ResultPayload,
)
from nodeflow.graph.progress import ChunkCallback, notify

logger = logging.getLogger(__name__)

CAPABILITY_LABELS = {
    NodeType.WRITER: "Writer",
    NodeType.REWRITER: "Rewriter",
    NodeType.SUMMARIZER: "Summarizer",
    NodeType.PROMPT: "Prompt API",
    NodeType.PROOFREADER: "Proofreader",
    NodeType.TRANSLATOR: "Translator",
}

PROOFREADER_SYSTEM_PROMPT = (
    "You are a professional proofreader. Fix grammar, spelling, and punctuation errors. "
    "Return only the corrected text without explanations."
)

TRANSLATOR_READY_STATES = frozenset({"available", "ready", "readily"})
TRANSLATOR_DOWNLOADABLE_STATES = frozenset(
    {"downloadable", "downloading", "pending", "needsdownload"}
)

DEFAULT_TEMPERATURE = 1
DEFAULT_TOP_K = 3

Handler = Callable[[Node, str, Mapping[str, ResultPayload], ChunkCallback | None], Awaitable[Any]]


def normalize_summary_type(value: str | None) -> str:
    if not value:
        return "tldr"
    cleaned = "".join(ch for ch in str(value).lower() if "a" <= ch <= "z")
    if cleaned == "keypoints":
        return "key-points"
    if cleaned in ("teaser", "headline"):
        return cleaned
    return "tldr"


def normalize_summary_format(value: str | None) -> str:
    if not value:
        return "markdown"
    return "plain-text" if str(value).lower() in ("plain-text", "plaintext") else "markdown"


def normalize_summary_length(value: str | None) -> str:
    if not value:
        return "short"
    lowered = str(value).lower()
    return lowered if lowered in ("medium", "long") else "short"


def build_prompt_request(text: str, attachments: list[Attachment]) -> CapabilityRequest:
    """
    Build the request sent to a prompt session.

    Plain text when no attachment is selected, otherwise a single user
    message with a text part followed by one part per attachment.
    """
    if not attachments:
        return text
    content: list[dict[str, Any]] = [{"type": "text", "value": text}]
    for attachment in attachments:
        content.append(
            {
                "type": attachment.kind,
                "value": attachment.file_handle,
                "mime_type": attachment.mime_type,
                "name": attachment.name,
            }
        )
    return [{"role": "user", "content": content}]


def _download_percentage(loaded: Any) -> int:
    try:
        value = float(loaded)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    scaled = value * 100 if value <= 1 else value
    return min(100, max(0, round(scaled)))


class CapabilityDispatcher:
    """
    Maps a node's type to its capability backend and runs it.

    Example:
        dispatcher = CapabilityDispatcher(CapabilityRegistry.for_all(provider))
        payload = await dispatcher.execute(node, "resolved text", results, on_chunk)
    """

    def __init__(self, registry: CapabilityRegistry):
        self.registry = registry
        self._handlers: dict[NodeType, Handler] = {
            NodeType.WRITER: self._run_writer,
            NodeType.REWRITER: self._run_rewriter,
            NodeType.SUMMARIZER: self._run_summarizer,
            NodeType.PROMPT: self._run_prompt,
            NodeType.PROOFREADER: self._run_proofreader,
            NodeType.TRANSLATOR: self._run_translator,
        }

    async def execute(
        self,
        node: Node,
        resolved_input: str,
        results: Mapping[str, ResultPayload],
        on_chunk: ChunkCallback | None = None,
    ) -> ResultPayload:
        """
        Execute a single node and return its normalized payload.

        Raises:
            CapabilityError: unknown node type, unavailable backend, or backend failure
        """
        node_type = node.node_type
        if node_type is None:
            raise CapabilityError(
                f"Unsupported node type '{node.type}'", node_id=node.id, node_name=node.name
            )

        if node_type in (NodeType.TEXT_INPUT, NodeType.PDF_INPUT):
            return ResultPayload(text=resolved_input or "")

        if node_type in ATTACHMENT_NODE_TYPES:
            attachment = node.config.attachment
            return ResultPayload(
                text=resolved_input or "",
                attachments=[attachment.model_copy()] if attachment else [],
            )

        label = CAPABILITY_LABELS[node_type]
        try:
            raw = await self._handlers[node_type](node, resolved_input, results, on_chunk)
        except Exception as e:
            logger.error(f"{label} error on node '{node.name}': {e}")
            raise CapabilityError(
                f"{label} failed: {e}", node_id=node.id, node_name=node.name
            ) from e

        return ResultPayload.normalize(raw)

    # === BACKEND HELPERS ===

    def _provider(self, node_type: NodeType) -> CapabilityProvider:
        provider = self.registry.get(node_type)
        if provider is None:
            raise CapabilityError(f"{CAPABILITY_LABELS[node_type]} API is not available")
        return provider

    async def _require_available(
        self,
        node_type: NodeType,
        provider: CapabilityProvider,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        status = await provider.availability(options)
        normalized = str(status or Availability.UNAVAILABLE).lower()
        if normalized != Availability.AVAILABLE:
            raise CapabilityError(
                f"{CAPABILITY_LABELS[node_type]} API is not available (status: {normalized})"
            )

    async def _stream(
        self,
        session: CapabilitySession,
        request: CapabilityRequest,
        on_chunk: ChunkCallback | None,
        **kwargs: Any,
    ) -> str:
        """Drain a streaming call, reporting the accumulated text after each chunk."""
        text = ""
        try:
            # The stream must be closed before the session is disposed
            async with aclosing(session.generate_streaming(request, **kwargs)) as stream:
                async for chunk in stream:
                    text += chunk or ""
                    await notify(on_chunk, ResultPayload(text=text))
        finally:
            await session.dispose()
        return text

    async def _one_shot(
        self,
        session: CapabilitySession,
        request: CapabilityRequest,
        on_chunk: ChunkCallback | None,
    ) -> ResultPayload:
        try:
            raw = await session.generate(request)
        finally:
            await session.dispose()
        payload = ResultPayload.normalize(raw)
        await notify(on_chunk, payload)
        return payload

    # === NODE HANDLERS ===

    async def _run_writer(self, node, text, results, on_chunk):
        config = node.config
        options: dict[str, Any] = {
            "tone": config.tone or "neutral",
            "format": config.format or "plain-text",
            "length": config.length or "medium",
        }
        if config.shared_context:
            options["shared_context"] = config.shared_context

        provider = self._provider(NodeType.WRITER)
        await self._require_available(NodeType.WRITER, provider, options)
        session = await provider.create_session(options)
        return await self._stream(session, text, on_chunk)

    async def _run_rewriter(self, node, text, results, on_chunk):
        config = node.config
        options: dict[str, Any] = {
            "tone": config.tone or "as-is",
            "length": config.length or "as-is",
        }
        if config.shared_context:
            options["shared_context"] = config.shared_context

        provider = self._provider(NodeType.REWRITER)
        await self._require_available(NodeType.REWRITER, provider, options)
        session = await provider.create_session(options)
        return await self._stream(session, text, on_chunk)

    async def _run_summarizer(self, node, text, results, on_chunk):
        config = node.config
        options: dict[str, Any] = {
            "type": normalize_summary_type(config.summary_type),
            "format": normalize_summary_format(config.format),
            "length": normalize_summary_length(config.length),
        }
        if config.shared_context:
            options["shared_context"] = config.shared_context

        provider = self._provider(NodeType.SUMMARIZER)
        await self._require_available(NodeType.SUMMARIZER, provider, options)
        session = await provider.create_session(options)

        call_context = config.instructions or config.context_hint
        if call_context:
            return await self._stream(session, text, on_chunk, context=call_context)
        return await self._stream(session, text, on_chunk)

    async def _run_prompt(self, node, text, results, on_chunk):
        config = node.config
        attachments = collect_selected_attachments(node, results)

        availability_options: dict[str, Any] = {}
        kinds = {a.kind for a in attachments}
        modalities = [kind for kind in ("image", "audio") if kind in kinds]
        if modalities:
            availability_options["expected_inputs"] = [
                {"type": "text", "languages": ["en"]},
                *({"type": kind} for kind in modalities),
            ]

        provider = self._provider(NodeType.PROMPT)
        await self._require_available(NodeType.PROMPT, provider, availability_options)

        options: dict[str, Any] = {
            "temperature": config.temperature or DEFAULT_TEMPERATURE,
            "top_k": config.top_k or DEFAULT_TOP_K,
        }
        if "expected_inputs" in availability_options:
            options["expected_inputs"] = availability_options["expected_inputs"]
        if config.system_prompt and config.system_prompt.strip():
            options["initial_prompts"] = [{"role": "system", "content": config.system_prompt}]

        if attachments:
            logger.debug(
                f"Prompt node '{node.name}' sending {len(attachments)} attachment(s) from "
                f"{sorted({a.source_node for a in attachments})}"
            )

        session = await provider.create_session(options)
        return await self._stream(session, build_prompt_request(text, attachments), on_chunk)

    async def _run_proofreader(self, node, text, results, on_chunk):
        provider = self._provider(NodeType.PROOFREADER)
        await self._require_available(NodeType.PROOFREADER, provider)
        session = await provider.create_session(
            {
                "temperature": 0.5,
                "top_k": 3,
                "initial_prompts": [{"role": "system", "content": PROOFREADER_SYSTEM_PROMPT}],
            }
        )
        request = f"Proofread and correct this text:\n\n{text}"
        return await self._one_shot(session, request, on_chunk)

    async def _run_translator(self, node, text, results, on_chunk):
        config = node.config
        source_language = config.source_language or "en"
        target_language = config.target_language or "es"
        language_pair = {"source_language": source_language, "target_language": target_language}

        provider = self._provider(NodeType.TRANSLATOR)
        status = await provider.availability(language_pair)
        normalized = str(status or Availability.UNAVAILABLE).lower()
        if (
            normalized not in TRANSLATOR_READY_STATES
            and normalized not in TRANSLATOR_DOWNLOADABLE_STATES
        ):
            raise CapabilityError(
                f"Translation for {source_language} → {target_language} is not available "
                f"(status: {normalized})"
            )

        options: dict[str, Any] = dict(language_pair)
        if normalized in TRANSLATOR_DOWNLOADABLE_STATES:

            async def monitor(loaded: Any = None, state: str | None = None) -> None:
                if state and str(state).lower() in ("downloaded", "ready"):
                    ready = ResultPayload(text="Model ready. Starting translation...")
                    await notify(on_chunk, ready)
                elif loaded is not None:
                    percentage = _download_percentage(loaded)
                    await notify(
                        on_chunk,
                        ResultPayload(text=f"Downloading translation model... {percentage}%"),
                    )

            options["monitor"] = monitor

        session = await provider.create_session(options)
        return await self._one_shot(session, text, on_chunk)
