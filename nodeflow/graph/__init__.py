"""Graph structures: Nodes, Edges, Flows, and sequential execution."""

from nodeflow.graph.attachments import (
    collect_selected_attachments,
    normalize_attachment_limit,
    sync_prompt_attachment_selections,
)
from nodeflow.graph.dispatcher import CapabilityDispatcher
from nodeflow.graph.errors import (
    CapabilityError,
    CycleError,
    DuplicateNodeError,
    GraphError,
    MissingNodeError,
    NodeExecutionError,
    NodeflowError,
    OrderingError,
    WorkflowValidationError,
)
from nodeflow.graph.executor import ExecutionResult, WorkflowExecutor, plan_range
from nodeflow.graph.models import (
    Attachment,
    Edge,
    Flow,
    Node,
    NodeConfig,
    NodeType,
    ResultPayload,
)
from nodeflow.graph.progress import NodeProgress, NodeStatus
from nodeflow.graph.resolver import find_variables, resolve_input, resolve_text
from nodeflow.graph.sequencer import compute_order
from nodeflow.graph.validator import ValidationResult, validate_graph

__all__ = [
    # Model
    "Attachment",
    "Edge",
    "Flow",
    "Node",
    "NodeConfig",
    "NodeType",
    "ResultPayload",
    # Ordering and resolution
    "compute_order",
    "plan_range",
    "find_variables",
    "resolve_input",
    "resolve_text",
    # Attachments
    "collect_selected_attachments",
    "normalize_attachment_limit",
    "sync_prompt_attachment_selections",
    # Execution
    "CapabilityDispatcher",
    "ExecutionResult",
    "NodeProgress",
    "NodeStatus",
    "WorkflowExecutor",
    # Validation
    "ValidationResult",
    "validate_graph",
    # Errors
    "NodeflowError",
    "GraphError",
    "CycleError",
    "DuplicateNodeError",
    "MissingNodeError",
    "OrderingError",
    "CapabilityError",
    "NodeExecutionError",
    "WorkflowValidationError",
]
