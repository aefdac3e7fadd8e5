"""
Attachment selection for prompt nodes.

A prompt node lists, in ``selected_attachments``, the names of upstream
image/audio nodes whose attachments it wants. Each modality is capped by
its own limit; a limit of 0 means unlimited.
"""

import math
from collections.abc import Mapping, Sequence
from typing import Any

from nodeflow.graph.models import (
    ATTACHMENT_NODE_TYPES,
    Attachment,
    Edge,
    Node,
    NodeType,
    ResultPayload,
)

DEFAULT_ATTACHMENT_LIMIT = 1


def normalize_attachment_limit(value: Any) -> int:
    """Coerce a configured limit; missing or invalid values fall back to the default."""
    if value is None or isinstance(value, bool):
        return DEFAULT_ATTACHMENT_LIMIT
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return DEFAULT_ATTACHMENT_LIMIT
    if not math.isfinite(parsed) or parsed < 0:
        return DEFAULT_ATTACHMENT_LIMIT
    return int(parsed)


def attachment_limits(node: Node) -> dict[str, int]:
    return {
        "image": normalize_attachment_limit(node.config.image_attachment_limit),
        "audio": normalize_attachment_limit(node.config.audio_attachment_limit),
    }


def selected_names(node: Node) -> list[str]:
    """Selected source names; entries may be plain names or ``{"nodeName": ...}``."""
    names = []
    for selection in node.config.selected_attachments or []:
        if isinstance(selection, str):
            name = selection
        elif isinstance(selection, Mapping):
            name = selection.get("nodeName") or selection.get("node_name")
        else:
            name = None
        if name:
            names.append(name)
    return names


def collect_selected_attachments(
    node: Node, results: Mapping[str, ResultPayload]
) -> list[Attachment]:
    """
    Gather the attachments a prompt node selected, honouring per-modality limits.

    Each returned attachment is a copy stamped with ``source_node``.
    Attachments without a file handle are not forwarded.
    """
    limits = attachment_limits(node)
    counts = {"image": 0, "audio": 0}
    collected: list[Attachment] = []

    for name in selected_names(node):
        payload = results.get(name)
        if payload is None:
            continue
        for attachment in ResultPayload.normalize(payload).attachments:
            if not attachment.has_file:
                continue
            limit = limits.get(attachment.kind, DEFAULT_ATTACHMENT_LIMIT)
            if limit > 0 and counts[attachment.kind] >= limit:
                continue
            counts[attachment.kind] += 1
            collected.append(attachment.model_copy(update={"source_node": name}))

    return collected


def _modality(node: Node) -> str:
    return "image" if node.node_type == NodeType.IMAGE_INPUT else "audio"


def _reconcile(
    current: Sequence[str], modality_by_name: Mapping[str, str], limits: Mapping[str, int]
) -> list[str]:
    counts = {"image": 0, "audio": 0}
    selection: list[str] = []
    # Keep existing choices first, then fill remaining slots in edge order
    for name in [*current, *modality_by_name]:
        kind = modality_by_name[name]
        if name in selection or (limits[kind] > 0 and counts[kind] >= limits[kind]):
            continue
        selection.append(name)
        counts[kind] += 1
    return selection


def sync_prompt_attachment_selections(
    nodes: Sequence[Node], edges: Sequence[Edge]
) -> list[Node]:
    """
    Reconcile every prompt node's selection with its connected attachment sources.

    Stale names (no longer connected) are dropped, then connected sources are
    auto-selected until each modality's limit is reached. Returns a new list;
    nodes whose selection did not change are returned as-is.
    """
    by_id = {node.id: node for node in nodes}
    updated: list[Node] = []

    for node in nodes:
        if node.node_type != NodeType.PROMPT:
            updated.append(node)
            continue

        sources = [
            by_id[edge.source]
            for edge in edges
            if edge.target == node.id
            and edge.source in by_id
            and by_id[edge.source].node_type in ATTACHMENT_NODE_TYPES
        ]
        modality_by_name = {source.name: _modality(source) for source in sources}
        current = [name for name in selected_names(node) if name in modality_by_name]

        selection = _reconcile(current, modality_by_name, attachment_limits(node))

        if selection == selected_names(node):
            updated.append(node)
        else:
            config = node.config.model_copy(update={"selected_attachments": selection})
            updated.append(node.model_copy(update={"config": config}))

    return updated
