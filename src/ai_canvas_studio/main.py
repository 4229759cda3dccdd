"""
AI Canvas Studio - Main Entry Point

Runs the generation engine or the recovery poller against a canvas graph
stored as JSON.

Usage:
    python -m ai_canvas_studio generate canvas.json NODE_ID [--save]
    python -m ai_canvas_studio recover canvas.json [--once]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ai_canvas_studio.core.execution import GenerationEngine
from ai_canvas_studio.core.graph import NodeGraph, NodeId, NodeStatus
from ai_canvas_studio.core.media import DefaultMediaProbe
from ai_canvas_studio.core.recovery import RecoveryPoller
from ai_canvas_studio.providers import HTTPGenerationGateway, get_registry


def load_graph(path: Path) -> NodeGraph:
    with open(path, encoding="utf-8") as f:
        return NodeGraph.from_dict(json.load(f))


def save_graph(graph: NodeGraph, path: Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(graph.to_dict(), f, indent=2)


async def generate(args: argparse.Namespace) -> int:
    """Generate content for one node and print its resulting state."""
    registry = get_registry()
    registry.load_config(args.config)

    graph = load_graph(args.graph)
    node_id = NodeId(args.node_id)
    if node_id not in graph:
        print(f"Error: Node '{node_id}' not found in {args.graph}")
        return 1

    gateway = HTTPGenerationGateway(registry.gateway_config)
    probe = DefaultMediaProbe(registry.gateway_config.base_url)
    engine = GenerationEngine(graph, gateway, probe=probe, registry=registry)

    node = await engine.generate(node_id)
    print(json.dumps(node.to_dict(), indent=2))

    if args.save:
        save_graph(graph, args.graph)
        print(f"Saved to: {args.graph}")

    return 2 if node.status == NodeStatus.ERROR else 0


async def recover(args: argparse.Namespace) -> int:
    """Poll the backend for nodes left loading and apply their results."""
    registry = get_registry()
    registry.load_config(args.config)

    graph = load_graph(args.graph)
    gateway = HTTPGenerationGateway(registry.gateway_config)
    probe = DefaultMediaProbe(registry.gateway_config.base_url)

    def on_status_change(node_id, status):
        if status is not None:
            label = status.label or status.phase or status.status
            print(f"  {node_id}: {label}")

    poller = RecoveryPoller(
        graph,
        gateway,
        probe,
        interval=registry.engine_settings.recovery_poll_interval,
        on_status_change=on_status_change,
    )

    def on_update(node, updates):
        if "status" in updates:
            print(f"  {node.id}: {node.status.value}")
            save_graph(graph, args.graph)

    graph.add_listener(on_update)
    try:
        await poller.run(once=args.once)
    finally:
        graph.remove_listener(on_update)
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for AI Canvas Studio.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = argparse.ArgumentParser(
        prog="ai_canvas_studio",
        description="Generation engine for AI Canvas Studio graphs",
    )
    parser.add_argument("--config", type=Path, default=None, help="Provider config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    gen = subparsers.add_parser("generate", help="Generate content for a node")
    gen.add_argument("graph", type=Path, help="Canvas graph JSON file")
    gen.add_argument("node_id", help="ID of the node to generate")
    gen.add_argument("--save", action="store_true", help="Write the updated graph back")

    rec = subparsers.add_parser("recover", help="Recover interrupted generations")
    rec.add_argument("graph", type=Path, help="Canvas graph JSON file")
    rec.add_argument("--once", action="store_true", help="Poll once and exit")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command = generate if args.command == "generate" else recover
    try:
        return asyncio.run(command(args))
    except KeyboardInterrupt:
        return 130
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
