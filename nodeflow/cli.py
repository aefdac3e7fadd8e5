"""
Command-line interface for nodeflow.

Usage:
    nodeflow validate flows/summarize.json
    nodeflow order flows/summarize.json
    nodeflow run flows/summarize.json --mock
    nodeflow run flows/summarize.json --start 3 --seed seed.json --json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from nodeflow.capabilities.mock import MockCapabilityProvider
from nodeflow.capabilities.provider import CapabilityRegistry
from nodeflow.config import RuntimeConfig
from nodeflow.graph.attachments import sync_prompt_attachment_selections
from nodeflow.graph.dispatcher import CapabilityDispatcher
from nodeflow.graph.errors import GraphError, NodeflowError, WorkflowValidationError
from nodeflow.graph.executor import WorkflowExecutor
from nodeflow.graph.models import Flow
from nodeflow.graph.progress import NodeProgress, NodeStatus
from nodeflow.graph.sequencer import compute_order
from nodeflow.graph.validator import validate_graph
from nodeflow.observability import configure_logging

STATUS_MARKS = {
    NodeStatus.RUNNING: "▶",
    NodeStatus.COMPLETED: "✓",
    NodeStatus.ERROR: "✗",
    NodeStatus.CANCELLED: "⏹",
}


class FlowLoadError(Exception):
    """Flow file could not be read or parsed."""


def load_flow(path: str | Path) -> Flow:
    """Load a canonical or editor-shaped flow record from a JSON file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            record = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FlowLoadError(f"Cannot read flow file {path}: {e}") from e
    if not isinstance(record, dict):
        raise FlowLoadError(f"Flow file {path} must contain a JSON object")
    try:
        return Flow.from_editor(record)
    except (ValidationError, KeyError) as e:
        raise FlowLoadError(f"Invalid flow record in {path}: {e}") from e


def load_seed(path: str | Path | None) -> dict[str, Any]:
    """Load prior results for a partial run: ``{node name: text or payload}``."""
    if path is None:
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            seed = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FlowLoadError(f"Cannot read seed file {path}: {e}") from e
    if not isinstance(seed, dict):
        raise FlowLoadError(f"Seed file {path} must contain a JSON object")
    return seed


def build_registry(args: argparse.Namespace, config: RuntimeConfig) -> CapabilityRegistry:
    if args.mock:
        return CapabilityRegistry.for_all(MockCapabilityProvider())
    return CapabilityRegistry.from_litellm(config)


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the flow commands with the main CLI."""
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a flow",
        description="Check a flow for structural and content problems.",
    )
    validate_parser.add_argument("flow", type=str, help="Path to the flow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    order_parser = subparsers.add_parser(
        "order",
        help="Show the execution order",
        description="Print the order in which the flow's nodes would run.",
    )
    order_parser.add_argument("flow", type=str, help="Path to the flow JSON file")
    order_parser.set_defaults(func=cmd_order)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a flow",
        description="Validate and execute a flow, printing progress and results.",
    )
    run_parser.add_argument("flow", type=str, help="Path to the flow JSON file")
    run_parser.add_argument("--start", type=str, default=None, help="Node ID to start from")
    run_parser.add_argument(
        "--stop-after", type=str, default=None, help="Node ID to stop after (inclusive)"
    )
    run_parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="JSON file with prior results, keyed by node name (for --start)",
    )
    run_parser.add_argument(
        "--model", type=str, default=None, help="LiteLLM model (e.g. openai/gpt-4o-mini)"
    )
    run_parser.add_argument(
        "--mock", action="store_true", help="Use the offline mock backend instead of an LLM"
    )
    run_parser.add_argument(
        "--json", dest="as_json", action="store_true", help="Print results as JSON"
    )
    run_parser.set_defaults(func=cmd_run)


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        flow = load_flow(args.flow)
    except FlowLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = validate_graph(flow.nodes, flow.edges)
    if result.valid:
        print(f"✓ {flow.name} is valid ({len(flow.nodes)} nodes, {len(flow.edges)} edges)")
        return 0

    print(f"✗ {flow.name} has {len(result.errors)} problem(s):")
    for error in result.errors:
        print(f"  - {error}")
    return 1


def cmd_order(args: argparse.Namespace) -> int:
    try:
        flow = load_flow(args.flow)
        order = compute_order(flow.nodes, flow.edges)
    except (FlowLoadError, GraphError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for index, node_id in enumerate(order, start=1):
        node = flow.get_node(node_id)
        print(f"{index:>3}. {node_id}  {node.name}  ({node.type})")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        flow = load_flow(args.flow)
        seed = load_seed(args.seed)
    except FlowLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = RuntimeConfig()
    if args.model:
        config.model = args.model

    flow = flow.model_copy(
        update={"nodes": sync_prompt_attachment_selections(flow.nodes, flow.edges)}
    )
    executor = WorkflowExecutor(
        CapabilityDispatcher(build_registry(args, config)),
        node_delay_ms=config.node_delay_ms,
    )

    def on_progress(progress: NodeProgress) -> None:
        mark = STATUS_MARKS.get(progress.status)
        if mark is None or args.as_json:
            return
        line = f"{mark} {progress.node_name}"
        if progress.error:
            line = f"{line}: {progress.error}"
        print(line, file=sys.stderr)

    try:
        result = asyncio.run(
            executor.execute_flow(
                flow,
                on_progress,
                start_node_id=args.start,
                stop_after_node_id=args.stop_after,
                initial_results=seed,
            )
        )
    except WorkflowValidationError as e:
        print("Flow is invalid:", file=sys.stderr)
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    except NodeflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.as_json:
        output = {
            "success": result.success,
            "error": result.error,
            "failedNodeId": result.failed_node_id,
            "path": result.path,
            "results": {name: payload.to_dict() for name, payload in result.results.items()},
        }
        print(json.dumps(output, indent=2, default=str))
    else:
        for name, payload in result.results.items():
            print(f"\n=== {name} ===")
            print(payload.text)
            for attachment in payload.attachments:
                print(f"[{attachment.kind}: {attachment.name}]")
        if not result.success:
            print(f"\n✗ {result.error}", file=sys.stderr)

    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="nodeflow",
        description="nodeflow - Validate and run AI text-processing workflows",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: from ~/.nodeflow/configuration.json, else INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(args.log_level or RuntimeConfig().log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
