"""
nodeflow - a sequential execution engine for AI text-processing workflows.

A workflow is a directed acyclic graph of typed, named nodes. Input nodes
supply text, PDF text, images or audio; capability nodes (writer, rewriter,
summarizer, prompt, proofreader, translator) transform text through
pluggable AI backends. Later nodes reference earlier results with
``{{Node Name}}`` placeholders.
"""

from nodeflow.capabilities import (
    Availability,
    CapabilityProvider,
    CapabilityRegistry,
    CapabilitySession,
)
from nodeflow.graph import (
    CapabilityDispatcher,
    Edge,
    ExecutionResult,
    Flow,
    Node,
    NodeProgress,
    NodeStatus,
    NodeType,
    ResultPayload,
    WorkflowExecutor,
    compute_order,
    resolve_input,
    validate_graph,
)

__version__ = "0.1.0"

__all__ = [
    "Availability",
    "CapabilityProvider",
    "CapabilityRegistry",
    "CapabilitySession",
    "CapabilityDispatcher",
    "Edge",
    "ExecutionResult",
    "Flow",
    "Node",
    "NodeProgress",
    "NodeStatus",
    "NodeType",
    "ResultPayload",
    "WorkflowExecutor",
    "compute_order",
    "resolve_input",
    "validate_graph",
]
