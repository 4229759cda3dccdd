"""
Generation Engine - Async generation for single nodes.

This module provides the engine behind the canvas' "generate" and
"cancel" actions:
- generate(): resolve inputs, snapshot the node, dispatch one or more
  provider calls, and reconcile the outcome into node state
- cancel(): roll the node back to its pre-generation snapshot

Cancellation is cooperative. An in-flight provider call is never aborted;
the engine forgets the run so that its eventual result is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable
from uuid import UUID, uuid4

from ai_canvas_studio.core.graph import Node, NodeGraph, NodeId, NodeStatus
from ai_canvas_studio.core.media import DefaultMediaProbe, MediaProbe
from ai_canvas_studio.core.reconciler import (
    ALL_VARIATIONS_FAILED_MESSAGE,
    PARTIAL_FAILURE_MESSAGE,
    StateReconciler,
)
from ai_canvas_studio.core.resolver import (
    ImagePlan,
    InputResolver,
    LocalImagePlan,
    VideoPlan,
)
from ai_canvas_studio.core.settings import EngineSettings
from ai_canvas_studio.core.snapshots import BLANK_STATE, NodeSnapshot, PreviousStateStore
from ai_canvas_studio.core.variations import VariationOrchestrator
from ai_canvas_studio.providers.base import GenerationError, GenerationGateway
from ai_canvas_studio.providers.registry import ProviderRegistry, get_registry

logger = logging.getLogger(__name__)

NO_LOCAL_MODEL_MESSAGE = "No local model selected. Please select a model first."


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


class GenerationEngine:
    """
    Orchestrates AI generation for nodes of a graph.

    Features:
    - Prompt and input resolution from parent nodes
    - Parallel variation fan-out with partial-failure tolerance
    - Carousel stacking of results across regenerations
    - Cancel with rollback to the pre-generation state

    Each generate() call gets a run token. Only the node's current run
    may write its outcome; cancelling or starting a newer run on the same
    node orphans the older one.
    """

    def __init__(
        self,
        graph: NodeGraph,
        gateway: GenerationGateway,
        probe: MediaProbe | None = None,
        registry: ProviderRegistry | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.graph = graph
        self.gateway = gateway
        self.registry = registry or get_registry()
        self.settings = settings or self.registry.engine_settings
        self.probe = probe or DefaultMediaProbe(self.registry.gateway_config.base_url)
        self._clock = clock

        self.resolver = InputResolver(graph, self.registry, self.settings)
        self.reconciler = StateReconciler(graph, self.probe)
        self.variations = VariationOrchestrator(graph, gateway)
        self.previous_states = PreviousStateStore()
        self._runs: dict[NodeId, UUID] = {}

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def is_generating(self, node_id: NodeId) -> bool:
        """Whether a run this engine started for the node is still live."""
        return node_id in self._runs

    async def generate(self, node_id: NodeId) -> Node | None:
        """
        Generate content for a node.

        Never raises for provider or validation failures: the outcome is
        written to the node (SUCCESS/ERROR) or, when there is nothing to
        generate, the node is left untouched.

        Returns:
            The node after the run, or None if it does not exist
        """
        plan = self.resolver.resolve(node_id)
        node = self.graph.get_node(node_id)
        if plan is None or node is None:
            logger.debug("Nothing to generate for node %s", node_id)
            return node

        had_results = node.has_results
        self.previous_states.save(node_id, NodeSnapshot.of(node))
        token = uuid4()
        self._runs[node_id] = token
        self.graph.update_node(
            node_id,
            status=NodeStatus.LOADING,
            generation_start_time=self._clock(),
        )
        logger.info("Generating %s for node %s", type(plan).__name__, node_id)

        def is_current() -> bool:
            return self._runs.get(node_id) == token

        try:
            if isinstance(plan, ImagePlan):
                await self._generate_image(node_id, plan, had_results, is_current)
            elif isinstance(plan, LocalImagePlan):
                await self._generate_local_image(node_id, plan, is_current)
            elif isinstance(plan, VideoPlan):
                await self._generate_video(node_id, plan, is_current)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_current():
                logger.error("Generation failed for node %s: %s", node_id, e)
                self.reconciler.error(node_id, e)
            else:
                logger.info("Dropping failure of abandoned run for node %s: %s", node_id, e)
        finally:
            if is_current():
                del self._runs[node_id]

        return self.graph.get_node(node_id)

    def cancel(self, node_id: NodeId) -> Node | None:
        """
        Cancel an in-progress generation and roll the node back.

        Restores the snapshot taken before the last generation started and
        discards it. Without a snapshot the node is reset to IDLE with its
        results and error cleared.
        """
        self._runs.pop(node_id, None)
        snapshot = self.previous_states.restore(node_id)
        state = snapshot or BLANK_STATE
        updates = state.as_updates()
        if state.status != NodeStatus.LOADING:
            updates["generation_start_time"] = None
        logger.info(
            "Cancelled generation for node %s (%s)",
            node_id, "restored" if snapshot else "reset",
        )
        return self.graph.update_node(node_id, **updates)

    # -------------------------------------------------------------------------
    # Generation paths
    # -------------------------------------------------------------------------

    async def _generate_image(
        self,
        node_id: NodeId,
        plan: ImagePlan,
        had_results: bool,
        is_current: Callable[[], bool],
    ) -> None:
        if not plan.parallel:
            self.graph.update_node(node_id, image_variations=None)
            result = await self.gateway.generate_image(plan.request)
            if is_current():
                await self.reconciler.image_success(node_id, result.all_urls, guard=is_current)
            return

        live = not had_results
        outcome = await self.variations.run(
            node_id, plan.request, plan.variation_count, live=live, is_current=is_current
        )
        if not is_current():
            return

        if outcome.all_failed:
            self.reconciler.error(
                node_id,
                ALL_VARIATIONS_FAILED_MESSAGE,
                image_variations=outcome.slots,
                keep_variations=live,
            )
            return

        await self.reconciler.image_success(
            node_id,
            outcome.successful_urls,
            advisory=PARTIAL_FAILURE_MESSAGE if outcome.partial else None,
            guard=is_current,
        )

    async def _generate_local_image(
        self,
        node_id: NodeId,
        plan: LocalImagePlan,
        is_current: Callable[[], bool],
    ) -> None:
        if not plan.has_model:
            self.reconciler.error(node_id, NO_LOCAL_MODEL_MESSAGE)
            return

        result = await self.gateway.generate_local_image(plan.request)
        if not is_current():
            return
        if not (result.success and result.result_url):
            raise GenerationError(result.error or "Local generation failed")
        await self.reconciler.image_success(node_id, [result.result_url], guard=is_current)

    async def _generate_video(
        self,
        node_id: NodeId,
        plan: VideoPlan,
        is_current: Callable[[], bool],
    ) -> None:
        logger.debug("Video node %s resolved in %s mode", node_id, plan.mode.value)
        url = await self.gateway.generate_video(plan.request)
        if is_current():
            await self.reconciler.video_success(node_id, url, guard=is_current)
