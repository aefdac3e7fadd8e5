"""
Topological Sequencer - execution order for a workflow graph.

Uses Kahn's algorithm. Nodes that become ready together are processed in
FIFO order, so the result is deterministic for a given node ordering.
"""

from collections import Counter, deque
from collections.abc import Sequence

from nodeflow.graph.errors import CycleError, DuplicateNodeError, MissingNodeError
from nodeflow.graph.models import Edge, Node


def compute_order(nodes: Sequence[Node], edges: Sequence[Edge]) -> list[str]:
    """
    Compute a valid execution order of node ids.

    Raises:
        DuplicateNodeError: two nodes share an id
        MissingNodeError: an edge references an unknown node id
        CycleError: the graph contains a circular dependency
    """
    adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}
    in_degree: dict[str, int] = {node.id: 0 for node in nodes}

    if len(in_degree) != len(nodes):
        counts = Counter(node.id for node in nodes)
        raise DuplicateNodeError([node_id for node_id, n in counts.items() if n > 1])

    for edge in edges:
        if edge.source not in adjacency:
            raise MissingNodeError(edge.source, "source")
        if edge.target not in in_degree:
            raise MissingNodeError(edge.target, "target")
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    order: list[str] = []

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for neighbor in adjacency[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(order) != len(in_degree):
        emitted = set(order)
        raise CycleError([node_id for node_id in in_degree if node_id not in emitted])

    return order
