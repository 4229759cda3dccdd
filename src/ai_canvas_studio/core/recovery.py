"""
Recovery Poller - Reconciles nodes left LOADING by an interrupted session.

The backend keeps tracking a generation after the client that started it
goes away. On start, and then on a fixed interval, the poller asks the
backend about every LOADING node and applies finished results or errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Callable

from ai_canvas_studio.core.graph import NodeGraph, NodeId, NodeKind, NodeStatus
from ai_canvas_studio.core.media import MediaProbe
from ai_canvas_studio.core.reconciler import DEFAULT_ERROR_MESSAGE, StateReconciler
from ai_canvas_studio.providers.base import GenerationGateway, GenerationStatus

logger = logging.getLogger(__name__)

# Called with the backend status while pending, None once a result landed
StatusCallback = Callable[[NodeId, GenerationStatus | None], None]


def parse_timestamp_ms(value: str | None) -> float | None:
    """Parse an ISO-8601 timestamp into epoch milliseconds."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable createdAt timestamp: %s", value)
        return None
    return parsed.timestamp() * 1000


class RecoveryPoller:
    """
    Polls the backend for nodes stuck in LOADING.

    Usage:
        async with RecoveryPoller(graph, gateway, probe):
            ...  # nodes are reconciled in the background

    The watch set is recomputed from the graph on every cycle, so nodes
    that finish or start loading are picked up without re-registering.
    """

    def __init__(
        self,
        graph: NodeGraph,
        gateway: GenerationGateway,
        probe: MediaProbe,
        interval: float = 10.0,
        on_status_change: StatusCallback | None = None,
    ):
        self.graph = graph
        self.gateway = gateway
        self.probe = probe
        self.reconciler = StateReconciler(graph, probe)
        self.interval = interval
        self.on_status_change = on_status_change
        self._task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling in the background. The first poll runs immediately."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> RecoveryPoller:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def run(self, once: bool = False) -> None:
        """Poll until cancelled, or a single cycle when `once` is set."""
        while True:
            await self.poll_once()
            if once:
                return
            await asyncio.sleep(self.interval)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def poll_once(self) -> None:
        """Check every node currently LOADING."""
        node_ids = [n.id for n in self.graph.nodes_with_status(NodeStatus.LOADING)]
        if not node_ids:
            return
        logger.debug("Checking %d loading node(s)", len(node_ids))
        await asyncio.gather(*(self.check_status(node_id) for node_id in node_ids))

    async def check_status(self, node_id: NodeId) -> None:
        """Fetch and apply the backend status for one node. Failures are logged."""
        try:
            status = await self.gateway.fetch_generation_status(node_id)
            await self._apply(node_id, status)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Error checking status for node %s: %s", node_id, e)

    async def _apply(self, node_id: NodeId, status: GenerationStatus) -> None:
        # The node may have been cancelled or finished while the poll was in flight
        if not self._still_loading(node_id):
            logger.debug("Node %s left LOADING during poll, ignoring response", node_id)
            return

        if status.status == "success" and status.result_url:
            if self._is_stale(node_id, status):
                logger.debug("Ignoring stale result for node %s", node_id)
                return

            logger.info("Found new result for node %s", node_id)
            self._notify(node_id, None)

            guard = partial(self._still_loading, node_id)
            if self._is_video_result(node_id, status):
                await self.reconciler.video_success(node_id, status.result_url, guard=guard)
            else:
                await self.reconciler.image_success(node_id, [status.result_url], guard=guard)
            return

        if status.status == "error":
            self._notify(node_id, status)
            self.graph.update_node(
                node_id,
                status=NodeStatus.ERROR,
                error_message=status.error_message or status.detail or DEFAULT_ERROR_MESSAGE,
                generation_start_time=None,
            )
            return

        self._notify(node_id, status if status.is_pending else None)

    def _still_loading(self, node_id: NodeId) -> bool:
        node = self.graph.get_node(node_id)
        return node is not None and node.is_loading

    def _is_video_result(self, node_id: NodeId, status: GenerationStatus) -> bool:
        if status.result_type:
            return status.result_type == "video"
        node = self.graph.get_node(node_id)
        return node is not None and node.kind == NodeKind.VIDEO

    def _is_stale(self, node_id: NodeId, status: GenerationStatus) -> bool:
        node = self.graph.get_node(node_id)
        if node is None or not node.generation_start_time:
            return False
        created_at = parse_timestamp_ms(status.created_at)
        return created_at is not None and created_at < node.generation_start_time

    def _notify(self, node_id: NodeId, status: GenerationStatus | None) -> None:
        if self.on_status_change is not None:
            self.on_status_change(node_id, status)
