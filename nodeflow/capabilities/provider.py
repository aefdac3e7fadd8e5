"""Capability provider abstraction for pluggable AI backends."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Mapping
from enum import StrEnum
from typing import Any

# A plain prompt string, or a list of chat messages whose ``content`` is a
# list of parts: {"type": "text"|"image"|"audio", "value": ..., "mime_type": ...}
CapabilityRequest = str | list[dict[str, Any]]


class Availability(StrEnum):
    """Availability states a capability backend can report."""

    AVAILABLE = "available"
    DOWNLOADABLE = "downloadable"
    DOWNLOADING = "downloading"
    UNAVAILABLE = "unavailable"


class CapabilitySession(ABC):
    """
    A single-use backend session created for one node invocation.

    Sessions are never pooled: the dispatcher creates one, feeds it one
    request and disposes it.
    """

    @abstractmethod
    async def generate(self, request: CapabilityRequest, **kwargs: Any) -> str:
        """Run the request to completion and return the full text."""
        pass

    async def generate_streaming(
        self, request: CapabilityRequest, **kwargs: Any
    ) -> AsyncIterator[str]:
        """
        Stream the reply as text chunks.

        Default implementation wraps generate() in a single chunk.
        Subclasses SHOULD override for true streaming, as an async generator:
        callers close it with ``aclose()`` when they stop reading early.
        """
        yield await self.generate(request, **kwargs)

    async def dispose(self) -> None:
        """Release backend resources held by the session."""
        return None


class CapabilityProvider(ABC):
    """
    Abstract capability backend - plug in any text-generation provider.

    Implementations report availability for a set of creation options and
    create sessions from them.
    """

    @abstractmethod
    async def availability(self, options: Mapping[str, Any] | None = None) -> Availability | str:
        """Report whether a session with these options can be created."""
        pass

    @abstractmethod
    async def create_session(self, options: Mapping[str, Any]) -> CapabilitySession:
        """Create a session configured with the node-specific options."""
        pass


class CapabilityRegistry:
    """
    Maps capability node types to the provider that serves them.

    Supplied to the dispatcher at construction time instead of looking
    backends up from global state.

    Example:
        registry = CapabilityRegistry()
        registry.register("writer", my_writer_provider)
        registry.register_many(["prompt", "proofreader"], my_language_model)
    """

    def __init__(self, providers: Mapping[str, CapabilityProvider] | None = None):
        self._providers: dict[str, CapabilityProvider] = {}
        for node_type, provider in (providers or {}).items():
            self.register(node_type, provider)

    def register(self, node_type: str, provider: CapabilityProvider) -> None:
        self._providers[str(node_type)] = provider

    def register_many(self, node_types: Iterable[str], provider: CapabilityProvider) -> None:
        for node_type in node_types:
            self.register(node_type, provider)

    def get(self, node_type: str) -> CapabilityProvider | None:
        return self._providers.get(str(node_type))

    def __contains__(self, node_type: object) -> bool:
        return str(node_type) in self._providers

    @property
    def node_types(self) -> list[str]:
        return list(self._providers)

    @classmethod
    def for_all(cls, provider: CapabilityProvider) -> "CapabilityRegistry":
        """Registry serving every capability node type from one provider."""
        from nodeflow.graph.models import CAPABILITY_NODE_TYPES

        registry = cls()
        registry.register_many(sorted(CAPABILITY_NODE_TYPES), provider)
        return registry

    @classmethod
    def from_litellm(cls, config: Any = None) -> "CapabilityRegistry":
        """Registry backed by LiteLLM, one adapter per capability node type."""
        from nodeflow.capabilities.litellm import LiteLLMCapabilityProvider
        from nodeflow.graph.models import CAPABILITY_NODE_TYPES

        registry = cls()
        for node_type in sorted(CAPABILITY_NODE_TYPES):
            registry.register(node_type, LiteLLMCapabilityProvider(node_type, config=config))
        return registry
