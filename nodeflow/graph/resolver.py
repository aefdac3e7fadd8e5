"""
Variable Resolver - substitutes ``{{Name}}`` placeholders with upstream text.

Placeholders whose target has no text (absent, or attachment-only) are left
verbatim; attachments reach prompt nodes through attachment selection, not
through text substitution. Substituted text is never re-scanned.
"""

import re
from collections.abc import Mapping

from nodeflow.graph.models import INPUT_NODE_TYPES, Node, NodeType, ResultPayload

VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

TRANSFORM_NODE_TYPES = frozenset(
    {NodeType.REWRITER, NodeType.SUMMARIZER, NodeType.PROOFREADER, NodeType.TRANSLATOR}
)


def get_input_text(node: Node) -> str:
    """Return the raw text of the node's input-bearing field."""
    config = node.config
    node_type = node.node_type
    if node_type in INPUT_NODE_TYPES:
        return config.text or ""
    if node_type == NodeType.WRITER:
        return config.context or ""
    if node_type in TRANSFORM_NODE_TYPES:
        return config.text or config.instructions or config.context or ""
    if node_type == NodeType.PROMPT:
        return config.prompt or ""
    return ""


def find_variables(text: str) -> list[str]:
    """Names referenced by ``{{...}}`` placeholders, in order of appearance."""
    return [match.strip() for match in VARIABLE_PATTERN.findall(text or "")]


def resolve_text(text: str, results: Mapping[str, ResultPayload]) -> str:
    """Substitute placeholders in ``text`` using the result map."""

    def substitute(match: re.Match) -> str:
        value = results.get(match.group(1).strip())
        if value is None:
            return match.group(0)
        if isinstance(value, str):
            return value
        payload = ResultPayload.normalize(value)
        if payload.text:
            return payload.text
        if payload.attachments:
            return match.group(0)
        return ""

    return VARIABLE_PATTERN.sub(substitute, text or "")


def resolve_input(node: Node, results: Mapping[str, ResultPayload]) -> str:
    """Materialize the node's input text against the accumulated results."""
    return resolve_text(get_input_text(node), results)
