"""
Node Graph Model - Content nodes and the read/update view over them.

This module defines the fundamental building blocks:
- Node: A content node with generation configuration and results
- NodeGraph: The id -> node index every generation component reads from

The canvas layer owns node creation and deletion. The generation engine
and the recovery poller only mutate generation-related fields, always
through NodeGraph.update_node().
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Iterator, NewType
from uuid import uuid4


# Type aliases for clarity
NodeId = NewType("NodeId", str)


def new_node_id() -> NodeId:
    """Generate a new unique node ID."""
    return NodeId(str(uuid4()))


class NodeKind(Enum):
    """Kind of content a node holds. Selects the resolver/reconciler path."""
    TEXT = "Text"
    STYLE = "Style"
    IMAGE = "Image"
    IMAGE_EDITOR = "Image Editor"
    LOCAL_IMAGE_MODEL = "Local Image Model"
    VIDEO = "Video"
    VIDEO_EDITOR = "Video Editor"
    CAMERA_ANGLE = "Camera Angle"

    @property
    def is_image_generator(self) -> bool:
        return self in IMAGE_GENERATOR_KINDS


IMAGE_GENERATOR_KINDS = frozenset({
    NodeKind.IMAGE,
    NodeKind.IMAGE_EDITOR,
    NodeKind.CAMERA_ANGLE,
})


class NodeStatus(Enum):
    """Generation status of a node."""
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class VideoMode(Enum):
    """Explicit video input mode chosen by the user."""
    STANDARD = "standard"
    FRAME_TO_FRAME = "frame-to-frame"
    REFERENCE = "reference"


class SlotStatus(Enum):
    """Status of one parallel variation slot."""
    GENERATING = "generating"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class VariationSlot:
    """One in-flight variation of a parallel image generation."""
    status: SlotStatus = SlotStatus.GENERATING
    url: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SlotStatus.SUCCESS and bool(self.url)


@dataclass
class PromptChip:
    """A reusable prompt fragment attached to a node."""
    label: str
    prompt: str


@dataclass
class FrameInput:
    """Explicit start/end assignment of a parent in frame-to-frame mode."""
    node_id: NodeId
    order: str  # "start" | "end"


@dataclass
class Node:
    """
    A single content node in the user's graph.

    Configuration fields (models, aspect ratio, mode flags) are owned by the
    user. Result fields (status, result_url(s), carousel, variations,
    last_frame, error_message, generation_start_time) are owned by the
    generation engine.
    """
    id: NodeId
    kind: NodeKind
    parent_ids: list[NodeId] = field(default_factory=list)
    status: NodeStatus = NodeStatus.IDLE

    # Prompt contributions
    prompt: str = ""
    prompt_chips: list[PromptChip] = field(default_factory=list)

    # Results
    result_url: str | None = None
    result_urls: list[str] | None = None
    carousel_index: int = 0
    carousel_settings: list[dict[str, Any]] | None = None
    image_variations: list[VariationSlot] | None = None
    last_frame: str | None = None
    result_aspect_ratio: str | None = None  # Exact "W/H" of the last result
    detected_aspect_ratio: str | None = None  # Nearest standard label, e.g. "16:9"
    generation_start_time: float | None = None  # Epoch milliseconds
    error_message: str | None = None

    # Generation configuration
    aspect_ratio: str | None = None
    resolution: str | None = None
    image_model: str | None = None
    video_model: str | None = None
    video_mode: VideoMode | None = None
    video_duration: int | None = None
    generate_audio: bool | None = None
    frame_inputs: list[FrameInput] | None = None
    variation_count: int | None = None
    character_reference_urls: list[str] = field(default_factory=list)
    local_model_id: str | None = None
    local_model_path: str | None = None
    kling_reference_mode: str | None = None
    kling_face_intensity: int | None = None
    kling_subject_intensity: int | None = None

    @classmethod
    def create(cls, kind: NodeKind, **kwargs: Any) -> Node:
        """Factory method to create a new node."""
        return cls(id=new_node_id(), kind=kind, **kwargs)

    @property
    def is_loading(self) -> bool:
        return self.status == NodeStatus.LOADING

    @property
    def carousel(self) -> list[str]:
        """All committed results, oldest first."""
        if self.result_urls:
            return list(self.result_urls)
        if self.result_url:
            return [self.result_url]
        return []

    @property
    def has_results(self) -> bool:
        return bool(self.result_url or self.result_urls)

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict using the canvas' camelCase keys."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[_to_camel(f.name)] = _encode(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        """Create a node from a canvas dict (camelCase or snake_case keys)."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _to_snake(key)
            if name in known:
                kwargs[name] = value

        kwargs["kind"] = NodeKind(kwargs["kind"])
        if "status" in kwargs:
            kwargs["status"] = NodeStatus(kwargs["status"])
        if kwargs.get("video_mode"):
            kwargs["video_mode"] = VideoMode(kwargs["video_mode"])
        if kwargs.get("prompt_chips"):
            kwargs["prompt_chips"] = [PromptChip(**c) for c in kwargs["prompt_chips"]]
        if kwargs.get("frame_inputs"):
            kwargs["frame_inputs"] = [
                FrameInput(node_id=f.get("nodeId", f.get("node_id")), order=f["order"])
                for f in kwargs["frame_inputs"]
            ]
        if kwargs.get("image_variations"):
            kwargs["image_variations"] = [
                VariationSlot(status=SlotStatus(v["status"]), url=v.get("url"))
                for v in kwargs["image_variations"]
            ]
        kwargs["parent_ids"] = list(kwargs.get("parent_ids") or [])
        kwargs["carousel_index"] = kwargs.get("carousel_index") or 0
        return cls(**kwargs)


NodeListener = Callable[[Node, dict[str, Any]], None]


class NodeGraph:
    """
    The set of content nodes for a canvas.

    Provides O(1) lookup by id, parent-chain walking, and the single
    mutation entry point used by the generation engine. Every update is
    applied atomically and then broadcast to listeners.
    """

    def __init__(self, nodes: list[Node] | None = None):
        self._nodes: dict[NodeId, Node] = {}
        self._listeners: list[NodeListener] = []
        for node in nodes or []:
            self.add_node(node)

    # --- Node operations ---

    @property
    def nodes(self) -> dict[NodeId, Node]:
        """Get all nodes (read-only view)."""
        return self._nodes.copy()

    def add_node(self, node: Node) -> None:
        """Add a node to the graph."""
        self._nodes[node.id] = node

    def remove_node(self, node_id: NodeId) -> Node | None:
        """Remove a node. Returns the removed node, or None if not found."""
        return self._nodes.pop(node_id, None)

    def get_node(self, node_id: NodeId | None) -> Node | None:
        """Get a node by ID."""
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def update_node(self, node_id: NodeId, **updates: Any) -> Node | None:
        """
        Apply field updates to a node as a single step.

        Unknown field names raise AttributeError before anything is
        applied. The carousel index is clamped back into range afterwards.

        Returns:
            The updated node, or None if it no longer exists.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return None

        for name in updates:
            if name in ("id", "kind") or not hasattr(node, name):
                raise AttributeError(f"Cannot update field {name!r} on node")

        for name, value in updates.items():
            setattr(node, name, value)
        _clamp_carousel_index(node)

        for listener in list(self._listeners):
            listener(node, updates)
        return node

    # --- Listeners ---

    def add_listener(self, listener: NodeListener) -> None:
        """Register a callback invoked after every node update."""
        self._listeners.append(listener)

    def remove_listener(self, listener: NodeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- Graph analysis ---

    def parents_of(self, node: Node) -> list[Node]:
        """Resolvable parents of a node, in parent order."""
        parents = []
        for pid in node.parent_ids:
            parent = self._nodes.get(pid)
            if parent is not None:
                parents.append(parent)
        return parents

    def parents_of_kind(self, node: Node, *kinds: NodeKind) -> list[Node]:
        """Parents of the given kinds, in parent order."""
        return [p for p in self.parents_of(node) if p.kind in kinds]

    def non_text_parent_ids(self, node: Node) -> list[NodeId]:
        """Parent ids whose node exists and is not a TEXT node."""
        result = []
        for pid in node.parent_ids:
            parent = self._nodes.get(pid)
            if parent is not None and parent.kind != NodeKind.TEXT:
                result.append(pid)
        return result

    def walk_chain(self, start_id: NodeId) -> Iterator[Node]:
        """
        Walk upward from a node through first parents.

        Yields the start node, then its first parent, and so on. Stops at a
        missing node or when a node repeats.
        """
        seen: set[NodeId] = set()
        current: NodeId | None = start_id
        while current is not None and current not in seen:
            node = self._nodes.get(current)
            if node is None:
                return
            seen.add(current)
            yield node
            current = node.parent_ids[0] if node.parent_ids else None

    def nodes_with_status(self, status: NodeStatus) -> list[Node]:
        """All nodes currently in a status."""
        return [n for n in self._nodes.values() if n.status == status]

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {"nodes": [node.to_dict() for node in self._nodes.values()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeGraph:
        return cls([Node.from_dict(n) for n in data.get("nodes", [])])

    # --- Utility ---

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def __contains__(self, node_id: NodeId) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes


def _clamp_carousel_index(node: Node) -> None:
    if node.image_variations:
        size = len(node.image_variations)
    elif node.result_urls:
        size = len(node.result_urls)
    else:
        size = 0
    if not 0 <= node.carousel_index < max(size, 1):
        node.carousel_index = 0


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (PromptChip, FrameInput, VariationSlot)):
        return {
            _to_camel(f.name): _encode(getattr(value, f.name))
            for f in fields(value)
            if getattr(value, f.name) is not None
        }
    return value
