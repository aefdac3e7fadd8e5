"""Mock capability backend for tests and offline runs.

Replies are scripted: a fixed string, or a callable of (request, options).
Every session creation, request and disposal is recorded so tests can
assert on what the dispatcher sent.
"""

import re
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from nodeflow.capabilities.provider import (
    Availability,
    CapabilityProvider,
    CapabilityRequest,
    CapabilitySession,
)

Reply = str | Callable[[CapabilityRequest, Mapping[str, Any]], str]


def request_text(request: CapabilityRequest) -> str:
    """Text content of a request, ignoring attachment parts."""
    if isinstance(request, str):
        return request
    texts = []
    for message in request:
        content = message.get("content")
        if isinstance(content, str):
            texts.append(content)
            continue
        for part in content or []:
            if part.get("type") == "text":
                texts.append(str(part.get("value") or ""))
    return "\n".join(texts)


@dataclass
class MockCall:
    """A request received by a mock session."""

    options: dict[str, Any]
    request: CapabilityRequest
    kwargs: dict[str, Any] = field(default_factory=dict)
    streaming: bool = False


class MockCapabilitySession(CapabilitySession):
    def __init__(self, provider: "MockCapabilityProvider", options: Mapping[str, Any]):
        self.provider = provider
        self.options = dict(options)

    def _record(self, request: CapabilityRequest, kwargs: dict[str, Any], streaming: bool) -> str:
        self.provider.calls.append(MockCall(self.options, request, kwargs, streaming))
        if self.provider.error is not None:
            raise self.provider.error
        return self.provider.reply_for(request, self.options)

    async def generate(self, request: CapabilityRequest, **kwargs: Any) -> str:
        return self._record(request, kwargs, streaming=False)

    async def generate_streaming(
        self, request: CapabilityRequest, **kwargs: Any
    ) -> AsyncIterator[str]:
        reply = self._record(request, kwargs, streaming=True)
        chunks = self.provider.chunks
        if chunks is None:
            chunks = re.findall(r"\S+\s*", reply) or [reply]
        for chunk in chunks:
            yield chunk

    async def dispose(self) -> None:
        self.provider.disposed += 1


class MockCapabilityProvider(CapabilityProvider):
    """
    Scripted capability provider.

    Args:
        reply: Fixed reply, or a callable of (request, options) returning one.
            Defaults to echoing the request text with the provider label.
        chunks: Explicit streaming chunks; defaults to splitting the reply by word
        status: Availability reported for every options set
        error: Exception raised by every generate call
        label: Prefix used by the default echo reply
        download_progress: ``loaded`` values reported to a ``monitor`` option
    """

    def __init__(
        self,
        reply: Reply | None = None,
        *,
        chunks: list[str] | None = None,
        status: Availability | str = Availability.AVAILABLE,
        error: Exception | None = None,
        label: str = "mock",
        download_progress: list[float] | None = None,
    ):
        self.reply = reply
        self.chunks = chunks
        self.status = status
        self.error = error
        self.label = label
        self.download_progress = download_progress or [0.5, 1.0]

        self.calls: list[MockCall] = []
        self.availability_requests: list[dict[str, Any] | None] = []
        self.created: list[dict[str, Any]] = []
        self.disposed = 0

    def reply_for(self, request: CapabilityRequest, options: Mapping[str, Any]) -> str:
        if callable(self.reply):
            return self.reply(request, options)
        if self.reply is not None:
            return self.reply
        return f"[{self.label}] {request_text(request)}"

    async def availability(self, options: Mapping[str, Any] | None = None) -> Availability | str:
        self.availability_requests.append(dict(options) if options is not None else None)
        return self.status

    async def create_session(self, options: Mapping[str, Any]) -> MockCapabilitySession:
        self.created.append(dict(options))
        monitor = options.get("monitor")
        if monitor is not None:
            for loaded in self.download_progress:
                await monitor(loaded=loaded)
            await monitor(state="downloaded")
        return MockCapabilitySession(self, options)
