"""Static validation of a workflow graph before execution.

All checks are accumulated so the caller sees every problem at once; only
an empty graph short-circuits. Callers must not execute a graph whose
result is not valid.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from nodeflow.graph.errors import CycleError, DuplicateNodeError, GraphError
from nodeflow.graph.models import Edge, Node, NodeType
from nodeflow.graph.sequencer import compute_order

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a graph."""

    valid: bool
    errors: list[str] = field(default_factory=list)

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(self.errors) if self.errors else ""


def _duplicates(values: Sequence[str]) -> list[str]:
    counts = Counter(values)
    seen: list[str] = []
    for value in values:
        if counts[value] > 1 and value not in seen:
            seen.append(value)
    return seen


def _content_errors(node: Node) -> list[str]:
    config = node.config
    node_type = node.node_type
    errors = []

    if node_type == NodeType.TEXT_INPUT and not (config.text or "").strip():
        errors.append(f'Input node "{node.name}" is empty. Provide some text to process.')
    elif node_type == NodeType.PDF_INPUT:
        if not config.files:
            errors.append(f'PDF Input node "{node.name}" has no files selected.')
        if not (config.text or "").strip():
            errors.append(f'PDF Input node "{node.name}" has no extracted text.')
    elif node_type == NodeType.IMAGE_INPUT:
        if config.attachment is None or not config.attachment.has_file:
            errors.append(f'Image Input node "{node.name}" has no image selected.')
    elif node_type == NodeType.AUDIO_INPUT:
        if config.attachment is None or not config.attachment.has_file:
            errors.append(f'Audio Input node "{node.name}" has no audio selected.')

    return errors


def validate_graph(nodes: Sequence[Node], edges: Sequence[Edge]) -> ValidationResult:
    """Validate graph structure and input-node content."""
    errors: list[str] = []

    if not nodes:
        errors.append("Workflow is empty. Add at least one node to get started.")
        return ValidationResult(valid=False, errors=errors)

    duplicate_ids = _duplicates([node.id for node in nodes])
    if duplicate_ids:
        errors.append(f"Duplicate node ids detected: {', '.join(duplicate_ids)}.")

    duplicate_names = _duplicates([node.name for node in nodes])
    if duplicate_names:
        errors.append(
            f"Duplicate node names detected: {', '.join(duplicate_names)}. "
            "Each node must have a unique name."
        )

    for node in nodes:
        if node.node_type is None:
            errors.append(f'Node "{node.name}" has unsupported type "{node.type}".')

    if not any(node.is_input for node in nodes):
        errors.append(
            "No input node found. Add a text, PDF, image, or audio input node "
            "to start your workflow."
        )

    # Check edge references
    node_ids = {node.id for node in nodes}
    known_edges = []
    for edge in edges:
        dangling = False
        if edge.source not in node_ids:
            errors.append(f"Edge references missing source node '{edge.source}'.")
            dangling = True
        if edge.target not in node_ids:
            errors.append(f"Edge references missing target node '{edge.target}'.")
            dangling = True
        if not dangling:
            known_edges.append(edge)

    connected = {edge.source for edge in known_edges} | {edge.target for edge in known_edges}
    disconnected = [node.name for node in nodes if node.id not in connected and not node.is_input]
    if disconnected:
        errors.append(
            f"Disconnected nodes found: {', '.join(disconnected)}. "
            "Connect them to the workflow or remove them."
        )

    try:
        compute_order(nodes, known_edges)
    except CycleError:
        errors.append(
            "Circular dependency detected. Remove loops from your workflow to enable execution."
        )
    except DuplicateNodeError:
        pass  # already reported as duplicate ids
    except GraphError as e:
        errors.append(str(e))

    for node in nodes:
        errors.extend(_content_errors(node))

    if errors:
        logger.debug(f"Graph validation found {len(errors)} problem(s)")
    return ValidationResult(valid=not errors, errors=errors)
