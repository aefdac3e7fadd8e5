"""Exception hierarchy for graph structure, ordering, and node execution failures."""


class NodeflowError(Exception):
    """Base class for every error raised by the workflow engine."""


class GraphError(NodeflowError):
    """Structural problem in the node/edge graph."""


class CycleError(GraphError):
    """The graph contains a circular dependency."""

    def __init__(self, remaining: list[str] | None = None):
        self.remaining = remaining or []
        super().__init__("Circular dependency detected in workflow")


class DuplicateNodeError(GraphError):
    """Two or more nodes share an id, so the order could not name each node once."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = node_ids
        super().__init__(f"Duplicate node ids in workflow: {', '.join(node_ids)}")


class MissingNodeError(GraphError):
    """An edge references a node id that does not exist."""

    def __init__(self, node_id: str, role: str = "source"):
        self.node_id = node_id
        self.role = role
        super().__init__(f"Edge references missing {role} node '{node_id}'")


class OrderingError(NodeflowError):
    """A partial run asked for a start/stop node outside the computed order."""


class CapabilityError(NodeflowError):
    """A capability backend was unavailable or failed for a single node."""

    def __init__(self, message: str, node_id: str | None = None, node_name: str | None = None):
        self.node_id = node_id
        self.node_name = node_name
        super().__init__(message)


class NodeExecutionError(NodeflowError):
    """A node failed during a run; carries its graph position."""

    def __init__(self, node_id: str, node_name: str, message: str):
        self.node_id = node_id
        self.node_name = node_name
        self.reason = message
        super().__init__(f'Failed to execute node "{node_name}": {message}')


class WorkflowValidationError(NodeflowError):
    """The graph failed static validation and must not be executed."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) if self.errors else "Workflow is invalid")
