"""
Previous-state snapshots for cancelling a generation.

A snapshot is taken right before a generation is dispatched and restored
if the user cancels. The store holds at most one snapshot per node.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from ai_canvas_studio.core.graph import Node, NodeId, NodeStatus, VariationSlot


@dataclass(frozen=True)
class NodeSnapshot:
    """Generation-related fields of a node at one instant."""
    status: NodeStatus
    result_url: str | None = None
    result_urls: list[str] | None = None
    image_variations: list[VariationSlot] | None = None
    error_message: str | None = None

    @classmethod
    def of(cls, node: Node) -> NodeSnapshot:
        return cls(
            status=node.status,
            result_url=node.result_url,
            result_urls=list(node.result_urls) if node.result_urls is not None else None,
            image_variations=copy.deepcopy(node.image_variations),
            error_message=node.error_message,
        )

    def as_updates(self) -> dict:
        """Field updates that put a node back into this state."""
        return {
            "status": self.status,
            "result_url": self.result_url,
            "result_urls": list(self.result_urls) if self.result_urls is not None else None,
            "image_variations": copy.deepcopy(self.image_variations),
            "error_message": self.error_message,
        }


# Updates applied on cancel when there is nothing to restore
BLANK_STATE = NodeSnapshot(status=NodeStatus.IDLE)


class PreviousStateStore:
    """Owned table of pre-generation snapshots, one slot per node id."""

    def __init__(self):
        self._snapshots: dict[NodeId, NodeSnapshot] = {}

    def save(self, node_id: NodeId, snapshot: NodeSnapshot) -> None:
        """Store a snapshot, replacing any earlier snapshot for the node."""
        self._snapshots[node_id] = snapshot

    def restore(self, node_id: NodeId) -> NodeSnapshot | None:
        """Remove and return the snapshot for a node, if any."""
        return self._snapshots.pop(node_id, None)

    def peek(self, node_id: NodeId) -> NodeSnapshot | None:
        return self._snapshots.get(node_id)

    def clear(self, node_id: NodeId) -> None:
        self._snapshots.pop(node_id, None)

    def __contains__(self, node_id: NodeId) -> bool:
        return node_id in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)
