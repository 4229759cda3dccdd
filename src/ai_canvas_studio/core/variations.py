"""
Variation Orchestrator - Parallel single-image calls for multi-variation requests.

Models that cannot return several variations from one call get one call
per variation. All calls run concurrently and each outcome is recorded in
its own slot; one failure never cancels its siblings. The caller
consolidates the slots once every call has settled.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable

from ai_canvas_studio.core.graph import NodeGraph, NodeId, SlotStatus, VariationSlot
from ai_canvas_studio.providers.base import GenerationGateway, ImageGenerationRequest

logger = logging.getLogger(__name__)


@dataclass
class VariationOutcome:
    """Settled slots of one fan-out run."""
    slots: list[VariationSlot]

    @property
    def requested(self) -> int:
        return len(self.slots)

    @property
    def successful_urls(self) -> list[str]:
        """URLs of successful slots, in slot order."""
        return [slot.url for slot in self.slots if slot.succeeded]

    @property
    def all_failed(self) -> bool:
        return not self.successful_urls

    @property
    def partial(self) -> bool:
        return 0 < len(self.successful_urls) < self.requested


class VariationOrchestrator:
    """
    Runs K independent generation attempts for one node.

    When `live` is set (the node had no results before this run) the slots
    are published to the node as they settle so the carousel shows
    progress. Otherwise the existing carousel stays visible and slots are
    tracked privately until consolidation.
    """

    def __init__(self, graph: NodeGraph, gateway: GenerationGateway):
        self.graph = graph
        self.gateway = gateway

    async def run(
        self,
        node_id: NodeId,
        request: ImageGenerationRequest,
        count: int,
        live: bool = True,
        is_current: Callable[[], bool] = lambda: True,
    ) -> VariationOutcome:
        slots = [VariationSlot() for _ in range(count)]
        single = dataclasses.replace(request, variations=1)

        if live and is_current():
            self.graph.update_node(
                node_id,
                image_variations=copy.deepcopy(slots),
                carousel_index=0,
                error_message=None,
            )

        async def run_slot(index: int) -> None:
            try:
                result = await self.gateway.generate_image(single)
                slots[index] = VariationSlot(status=SlotStatus.SUCCESS, url=result.result_url)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Variation %d/%d failed for node %s: %s", index + 1, count, node_id, e)
                slots[index] = VariationSlot(status=SlotStatus.FAILED)

            if live and is_current():
                self._publish(node_id, slots)

        await asyncio.gather(*(run_slot(i) for i in range(count)), return_exceptions=True)

        outcome = VariationOutcome(slots=slots)
        logger.info(
            "Variations settled for node %s: %d/%d succeeded",
            node_id, len(outcome.successful_urls), count,
        )
        return outcome

    def _publish(self, node_id: NodeId, slots: list[VariationSlot]) -> None:
        first_success = next((i for i, s in enumerate(slots) if s.succeeded), 0)
        self.graph.update_node(
            node_id,
            image_variations=copy.deepcopy(slots),
            carousel_index=first_success,
        )
