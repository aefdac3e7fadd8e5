"""
Workflow Executor - Runs workflow graphs.

The executor:
1. Computes the execution order (topological sort)
2. Narrows it to the requested range (start node / stop-after node)
3. For each node: resolves its input, dispatches it, stores the result
4. Reports progress for every node and stops at the first failure

Execution is strictly sequential: a node never starts before the previous
one has finished, even when the graph would allow parallel branches.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from nodeflow.graph.dispatcher import CapabilityDispatcher
from nodeflow.graph.errors import NodeExecutionError, OrderingError, WorkflowValidationError
from nodeflow.graph.models import Edge, Flow, Node, ResultPayload
from nodeflow.graph.progress import NodeProgress, NodeStatus, ProgressCallback, notify
from nodeflow.graph.resolver import resolve_input
from nodeflow.graph.sequencer import compute_order
from nodeflow.graph.validator import validate_graph
from nodeflow.observability import set_trace_context
from nodeflow.runtime.event_bus import EventBus


@dataclass
class ExecutionResult:
    """Result of executing a flow."""

    success: bool
    results: dict[str, ResultPayload] = field(default_factory=dict)
    error: str | None = None
    failed_node_id: str | None = None
    failed_node_name: str | None = None
    path: list[str] = field(default_factory=list)  # Node IDs executed, in order
    execution_id: str = ""
    duration_ms: int = 0


@dataclass
class _RunState:
    """Mutable bookkeeping for one run; the result map is only written here."""

    execution_id: str
    on_progress: ProgressCallback | None
    flow_id: str = ""
    results: dict[str, ResultPayload] = field(default_factory=dict)
    path: list[str] = field(default_factory=list)

    @property
    def view(self) -> Mapping[str, ResultPayload]:
        """Read-only view handed to the resolver and dispatcher."""
        return MappingProxyType(self.results)


def plan_range(
    order: Sequence[str],
    start_node_id: str | None = None,
    stop_after_node_id: str | None = None,
) -> list[str]:
    """
    Slice the execution order to the contiguous range to run.

    Raises:
        OrderingError: start or stop node not in the order, or stop precedes start
    """
    start_index = 0
    if start_node_id is not None:
        if start_node_id not in order:
            raise OrderingError(f"Start node '{start_node_id}' not found in workflow")
        start_index = order.index(start_node_id)

    remaining = list(order[start_index:])
    if stop_after_node_id is None:
        return remaining

    if stop_after_node_id not in remaining:
        if stop_after_node_id in order:
            raise OrderingError(
                f"Stop node '{stop_after_node_id}' comes before start node '{start_node_id}'"
            )
        raise OrderingError(f"Stop node '{stop_after_node_id}' not found in workflow")
    return remaining[: remaining.index(stop_after_node_id) + 1]


class WorkflowExecutor:
    """
    Executes workflow graphs.

    Example:
        executor = WorkflowExecutor(
            dispatcher=CapabilityDispatcher(registry),
            event_bus=bus,
        )

        results = await executor.run(
            nodes,
            edges,
            on_progress=print,
            start_node_id="3",
            initial_results={"Input": ResultPayload(text="Hello")},
        )
    """

    def __init__(
        self,
        dispatcher: CapabilityDispatcher,
        event_bus: EventBus | None = None,
        flow_id: str = "",
        node_delay_ms: int = 0,
    ):
        """
        Initialize the executor.

        Args:
            dispatcher: Runs individual nodes against capability backends
            event_bus: Optional event bus receiving run and node events
            flow_id: Tags events; when empty, execute_flow tags them with the flow's own id
            node_delay_ms: Pause between completed nodes (UI pacing only)
        """
        self.dispatcher = dispatcher
        self.logger = logging.getLogger(__name__)
        self._event_bus = event_bus
        self._flow_id = flow_id
        self._node_delay = max(0, node_delay_ms) / 1000

    async def run(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        on_progress: ProgressCallback | None = None,
        on_complete: Callable[[dict[str, ResultPayload]], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        *,
        start_node_id: str | None = None,
        stop_after_node_id: str | None = None,
        initial_results: Mapping[str, Any] | None = None,
    ) -> dict[str, ResultPayload]:
        """
        Run the whole graph, or the range from ``start_node_id`` to ``stop_after_node_id``.

        For a partial run, ``initial_results`` supplies the outputs of the
        nodes before the start node, keyed by node name. Exactly one of
        ``on_complete`` / ``on_error`` is called.

        Returns:
            The result map, keyed by node name

        Raises:
            OrderingError: start/stop node outside the order (nothing executed)
            GraphError: the graph has a cycle or a dangling edge
            NodeExecutionError: a node failed; later nodes were not run
        """
        state = _RunState(uuid.uuid4().hex, on_progress, flow_id=self._flow_id)
        return await self._run(
            state,
            nodes,
            edges,
            on_complete=on_complete,
            on_error=on_error,
            start_node_id=start_node_id,
            stop_after_node_id=stop_after_node_id,
            initial_results=initial_results,
        )

    async def execute_flow(
        self,
        flow: Flow,
        on_progress: ProgressCallback | None = None,
        *,
        start_node_id: str | None = None,
        stop_after_node_id: str | None = None,
        initial_results: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Validate a flow, then run it and summarize the outcome.

        Node failures are reported in the returned ExecutionResult together
        with the results of the nodes that completed before the failure.

        Raises:
            WorkflowValidationError: the flow is invalid (nothing executed)
            OrderingError: start/stop node outside the order (nothing executed)
        """
        validation = validate_graph(flow.nodes, flow.edges)
        if not validation.valid:
            self.logger.error(f"❌ Flow '{flow.name}' failed validation:")
            for err in validation.errors:
                self.logger.error(f"   • {err}")
            raise WorkflowValidationError(validation.errors)

        flow_id = self._flow_id or (str(flow.id) if flow.id is not None else "")
        state = _RunState(uuid.uuid4().hex, on_progress, flow_id=flow_id)
        start = time.perf_counter()
        try:
            await self._run(
                state,
                flow.nodes,
                flow.edges,
                start_node_id=start_node_id,
                stop_after_node_id=stop_after_node_id,
                initial_results=initial_results,
            )
        except NodeExecutionError as e:
            return ExecutionResult(
                success=False,
                results=dict(state.results),
                error=str(e),
                failed_node_id=e.node_id,
                failed_node_name=e.node_name,
                path=list(state.path),
                execution_id=state.execution_id,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )

        return ExecutionResult(
            success=True,
            results=dict(state.results),
            path=list(state.path),
            execution_id=state.execution_id,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )

    async def _run(
        self,
        state: _RunState,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        on_complete: Callable[[dict[str, ResultPayload]], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        start_node_id: str | None = None,
        stop_after_node_id: str | None = None,
        initial_results: Mapping[str, Any] | None = None,
    ) -> dict[str, ResultPayload]:
        set_trace_context(execution_id=state.execution_id, flow_id=state.flow_id)
        try:
            nodes_by_id = {node.id: node for node in nodes}
            order = compute_order(nodes, edges)
            to_run = plan_range(order, start_node_id, stop_after_node_id)

            if start_node_id is not None:
                self._seed_results(state, nodes, order, start_node_id, initial_results)
            elif initial_results:
                self.logger.debug("Ignoring initial results for a full run")

            # Stale results from an earlier run must not leak into the replayed range
            for node_id in to_run:
                state.results.pop(nodes_by_id[node_id].name, None)

            self.logger.info(
                f"🚀 Starting execution: {len(to_run)} of {len(order)} node(s)"
                + (f" from '{start_node_id}'" if start_node_id else "")
            )
            if self._event_bus:
                await self._event_bus.emit_execution_started(
                    state.flow_id, state.execution_id, to_run
                )

            for index, node_id in enumerate(to_run):
                await self._execute_node(state, nodes_by_id[node_id])
                state.path.append(node_id)
                if self._node_delay and index < len(to_run) - 1:
                    await asyncio.sleep(self._node_delay)

        except (Exception, asyncio.CancelledError) as e:
            self.logger.error(f"✗ Execution failed: {e or type(e).__name__}")
            if self._event_bus:
                await self._event_bus.emit_execution_failed(
                    state.flow_id,
                    state.execution_id,
                    str(e) or type(e).__name__,
                    node_id=getattr(e, "node_id", None),
                )
            await notify(on_error, e)
            raise

        self.logger.info(f"✓ Execution complete: {len(state.path)} node(s) executed")
        if self._event_bus:
            await self._event_bus.emit_execution_completed(
                state.flow_id, state.execution_id, list(state.results)
            )
        await notify(on_complete, dict(state.results))
        return dict(state.results)

    def _seed_results(
        self,
        state: _RunState,
        nodes: Sequence[Node],
        order: Sequence[str],
        start_node_id: str,
        initial_results: Mapping[str, Any] | None,
    ) -> None:
        """Seed the result map for a partial run; the caller's seed is trusted."""
        names = {node.name for node in nodes}
        for name, value in (initial_results or {}).items():
            if name in names:
                state.results[name] = ResultPayload.normalize(value)

        names_by_id = {node.id: node.name for node in nodes}
        upstream = order[: order.index(start_node_id)]
        missing = [names_by_id[i] for i in upstream if names_by_id[i] not in state.results]
        if missing:
            self.logger.warning(
                f"⚠ Partial run from '{start_node_id}' has no seeded results for: {missing}"
            )

    async def _execute_node(self, state: _RunState, node: Node) -> None:
        set_trace_context(node_id=node.id, node_name=node.name)
        self.logger.info(f"▶ {node.name} ({node.type})")

        async def on_chunk(payload: ResultPayload) -> None:
            await self._report(
                state, NodeProgress(node.id, node.name, NodeStatus.STREAMING, result=payload)
            )

        try:
            await self._report(state, NodeProgress(node.id, node.name, NodeStatus.RUNNING))
            input_text = resolve_input(node, state.view)
            payload = await self.dispatcher.execute(node, input_text, state.view, on_chunk)
        except asyncio.CancelledError:
            self.logger.warning(f"⏹ {node.name} cancelled")
            await self._report(
                state,
                NodeProgress(node.id, node.name, NodeStatus.CANCELLED, error="Execution cancelled"),
            )
            raise
        except Exception as e:
            message = str(e) or "Unknown execution error"
            self.logger.error(f"   ✗ {node.name} failed: {message}")
            await self._report(
                state, NodeProgress(node.id, node.name, NodeStatus.ERROR, error=message)
            )
            raise NodeExecutionError(node.id, node.name, message) from e

        payload = ResultPayload.normalize(payload)
        state.results[node.name] = payload
        self.logger.info(f"   ✓ {node.name} completed ({len(payload.text)} chars)")
        await self._report(
            state, NodeProgress(node.id, node.name, NodeStatus.COMPLETED, result=payload)
        )

    async def _report(self, state: _RunState, progress: NodeProgress) -> None:
        await notify(state.on_progress, progress)
        if self._event_bus:
            await self._event_bus.emit_node_progress(
                state.flow_id, state.execution_id, progress
            )
