"""
Core module - Node graph, engine settings, and media helpers.

This module provides the fundamental building blocks for AI Canvas Studio:
- Graph: Content nodes and the update entry point
- Settings: Engine limits and defaults
- Media: Image/video probing for derived artifacts
- Snapshots: Pre-generation state for cancel

The generation engine lives in ai_canvas_studio.core.execution and the
recovery poller in ai_canvas_studio.core.recovery.
"""

from ai_canvas_studio.core.graph import (
    FrameInput,
    Node,
    NodeGraph,
    NodeId,
    NodeKind,
    NodeStatus,
    PromptChip,
    SlotStatus,
    VariationSlot,
    VideoMode,
    new_node_id,
)

from ai_canvas_studio.core.settings import EngineSettings

from ai_canvas_studio.core.media import (
    DefaultMediaProbe,
    MediaProbe,
    MediaProbeError,
)

from ai_canvas_studio.core.snapshots import (
    BLANK_STATE,
    NodeSnapshot,
    PreviousStateStore,
)


__all__ = [
    # graph.py
    "FrameInput",
    "Node",
    "NodeGraph",
    "NodeId",
    "NodeKind",
    "NodeStatus",
    "PromptChip",
    "SlotStatus",
    "VariationSlot",
    "VideoMode",
    "new_node_id",
    # settings.py
    "EngineSettings",
    # media.py
    "DefaultMediaProbe",
    "MediaProbe",
    "MediaProbeError",
    # snapshots.py
    "BLANK_STATE",
    "NodeSnapshot",
    "PreviousStateStore",
]
