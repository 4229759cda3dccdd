"""
State Reconciler - Applies generation outcomes to node state.

Success paths stack new results onto the node's carousel, record the
result's aspect ratio and, for videos, extract the last frame used to
chain into descendant nodes. Error paths store a user-facing message.

Derived artifacts (dimensions, last frame) are best-effort: a probe
failure is logged and leaves the field unset, never turning a success
into an error.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ai_canvas_studio.core.graph import Node, NodeGraph, NodeId, NodeStatus, VariationSlot
from ai_canvas_studio.core.media import MediaProbe, MediaProbeError

logger = logging.getLogger(__name__)

# Returns False once the outcome being applied no longer belongs to the node
Guard = Callable[[], bool]


STANDARD_ASPECT_RATIOS: list[tuple[str, float]] = [
    ("1:1", 1.0),
    ("16:9", 16 / 9),
    ("9:16", 9 / 16),
    ("4:3", 4 / 3),
    ("3:4", 3 / 4),
    ("3:2", 3 / 2),
    ("2:3", 2 / 3),
    ("5:4", 5 / 4),
    ("4:5", 4 / 5),
    ("21:9", 21 / 9),
]

DEFAULT_ERROR_MESSAGE = "Generation failed"
PERMISSION_ERROR_MESSAGE = "Permission denied. Check API Key configuration."
INPUT_IMAGE_ERROR_MESSAGE = (
    "Input image incompatible. Veo requires: JPEG format, 16:9 or 9:16 aspect ratio. "
    "Try a different image or generate without input."
)
PARTIAL_FAILURE_MESSAGE = "Some variations failed"
ALL_VARIATIONS_FAILED_MESSAGE = "All variation generations failed"

PERMISSION_PATTERNS = ("permission_denied", "403")
INPUT_IMAGE_PATTERNS = ("unable to process input image", "invalid input image", "invalid_argument")


def nearest_standard_ratio(ratio: float) -> str:
    """Label of the standard aspect ratio closest to `ratio`; ties keep the earlier entry."""
    closest_label, closest_value = STANDARD_ASPECT_RATIOS[0]
    min_diff = abs(ratio - closest_value)
    for label, value in STANDARD_ASPECT_RATIOS:
        diff = abs(ratio - value)
        if diff < min_diff:
            min_diff = diff
            closest_label = label
    return closest_label


def closest_aspect_ratio(width: int, height: int) -> str:
    """Convert pixel dimensions to the closest standard aspect ratio."""
    return nearest_standard_ratio(width / height)


def describe_error(error: BaseException | str | None) -> str:
    """
    Map a raw provider failure to the message shown on the node.

    Permission/403 failures become a credential hint, rejected input
    images become an image-compatibility hint, anything else keeps its own
    message or falls back to "Generation failed".
    """
    raw = str(error) if error is not None else ""
    text = raw.lower()
    if any(p in text for p in PERMISSION_PATTERNS):
        return PERMISSION_ERROR_MESSAGE
    if any(p in text for p in INPUT_IMAGE_PATTERNS):
        return INPUT_IMAGE_ERROR_MESSAGE
    return raw or DEFAULT_ERROR_MESSAGE


def settings_snapshot(node: Node) -> dict[str, Any]:
    """Generation settings echoed alongside each carousel entry."""
    snapshot = {
        "prompt": node.prompt,
        "aspect_ratio": node.aspect_ratio,
        "resolution": node.resolution,
        "image_model": node.image_model,
        "video_model": node.video_model,
        "local_model_id": node.local_model_id,
        "variation_count": node.variation_count,
    }
    return {k: v for k, v in snapshot.items() if v is not None}


class StateReconciler:
    """
    Translates provider responses into node field updates.

    All writes go through NodeGraph.update_node() so each outcome lands
    as one atomic update.
    """

    def __init__(self, graph: NodeGraph, probe: MediaProbe):
        self.graph = graph
        self.probe = probe

    async def image_success(
        self,
        node_id: NodeId,
        new_urls: list[str],
        advisory: str | None = None,
        guard: Guard | None = None,
    ) -> Node | None:
        """
        Append new image results to the carousel and mark the node SUCCESS.

        The carousel index moves to the first new entry. The user's
        selected aspect_ratio is left alone; the measured ratio and its
        nearest standard label go to result_aspect_ratio and
        detected_aspect_ratio. Nothing is written if `guard` turns false
        while the result is being measured.
        """
        node = self.graph.get_node(node_id)
        if node is None or not new_urls:
            return None

        ratio_fields = await self._measure_image(new_urls[0])

        # Re-read after the probe suspended us
        node = self.graph.get_node(node_id)
        if node is None or (guard is not None and not guard()):
            return None

        previous = node.carousel
        combined = previous + list(new_urls)

        settings = list(node.carousel_settings or [])[:len(previous)]
        settings += [{}] * (len(previous) - len(settings))
        snapshot = settings_snapshot(node)
        settings += [dict(snapshot) for _ in new_urls]

        return self.graph.update_node(
            node_id,
            status=NodeStatus.SUCCESS,
            image_variations=None,
            result_url=new_urls[0],
            result_urls=combined if len(combined) > 1 else None,
            carousel_index=len(previous) if len(combined) > 1 else 0,
            carousel_settings=settings,
            error_message=advisory,
            generation_start_time=None,
            **ratio_fields,
        )

    async def video_success(
        self,
        node_id: NodeId,
        url: str,
        guard: Guard | None = None,
    ) -> Node | None:
        """Store a video result with its last frame and played-back aspect ratio."""
        if self.graph.get_node(node_id) is None:
            return None

        last_frame = await self._extract_last_frame(url)
        updates: dict[str, Any] = {"result_aspect_ratio": None, "detected_aspect_ratio": None}
        try:
            width, height = await self.probe.video_dimensions(url)
            label = closest_aspect_ratio(width, height)
            updates["result_aspect_ratio"] = f"{width}/{height}"
            updates["detected_aspect_ratio"] = label
            updates["aspect_ratio"] = label
        except (MediaProbeError, ZeroDivisionError) as e:
            logger.warning("Could not detect video aspect ratio for node %s: %s", node_id, e)

        if guard is not None and not guard():
            return None

        return self.graph.update_node(
            node_id,
            status=NodeStatus.SUCCESS,
            result_url=url,
            last_frame=last_frame,
            error_message=None,
            generation_start_time=None,
            **updates,
        )

    def error(
        self,
        node_id: NodeId,
        error: BaseException | str | None,
        image_variations: list[VariationSlot] | None = None,
        keep_variations: bool = False,
    ) -> Node | None:
        """Mark a node ERROR with a user-facing message."""
        updates: dict[str, Any] = {
            "status": NodeStatus.ERROR,
            "error_message": describe_error(error),
            "generation_start_time": None,
        }
        if keep_variations:
            updates["image_variations"] = image_variations
        return self.graph.update_node(node_id, **updates)

    # -------------------------------------------------------------------------
    # Derived artifacts
    # -------------------------------------------------------------------------

    async def _measure_image(self, url: str) -> dict[str, str | None]:
        try:
            width, height = await self.probe.image_dimensions(url)
            label = closest_aspect_ratio(width, height)
        except (MediaProbeError, ZeroDivisionError) as e:
            logger.warning("Could not detect image aspect ratio for %s: %s", url[:80], e)
            return {"result_aspect_ratio": None, "detected_aspect_ratio": None}
        return {"result_aspect_ratio": f"{width}/{height}", "detected_aspect_ratio": label}

    async def _extract_last_frame(self, url: str) -> str | None:
        try:
            return await self.probe.extract_last_frame(url)
        except MediaProbeError as e:
            logger.warning("Failed to extract last frame from %s: %s", url[:80], e)
            return None
