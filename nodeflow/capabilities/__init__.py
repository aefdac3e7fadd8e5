"""Capability backends: the pluggable AI services behind capability nodes."""

from nodeflow.capabilities.mock import MockCapabilityProvider
from nodeflow.capabilities.provider import (
    Availability,
    CapabilityProvider,
    CapabilityRegistry,
    CapabilityRequest,
    CapabilitySession,
)

__all__ = [
    "Availability",
    "CapabilityProvider",
    "CapabilityRegistry",
    "CapabilityRequest",
    "CapabilitySession",
    "MockCapabilityProvider",
]
