"""
Tests for the graph module.
"""

import pytest

from ai_canvas_studio.core.graph import (
    FrameInput,
    Node,
    NodeGraph,
    NodeKind,
    NodeStatus,
    PromptChip,
    SlotStatus,
    VariationSlot,
    VideoMode,
    new_node_id,
)


class TestNode:
    """Tests for Node dataclass."""

    def test_create_node(self):
        node = Node.create(NodeKind.IMAGE, prompt="a cat")
        assert node.kind == NodeKind.IMAGE
        assert node.prompt == "a cat"
        assert node.status == NodeStatus.IDLE
        assert node.carousel_index == 0
        assert node.parent_ids == []

    def test_unique_ids(self):
        assert new_node_id() != new_node_id()

    def test_carousel_prefers_result_urls(self):
        node = Node.create(NodeKind.IMAGE, result_url="a", result_urls=["a", "b"])
        assert node.carousel == ["a", "b"]

    def test_carousel_falls_back_to_result_url(self):
        node = Node.create(NodeKind.IMAGE, result_url="a")
        assert node.carousel == ["a"]
        assert node.has_results

    def test_empty_carousel(self):
        node = Node.create(NodeKind.IMAGE)
        assert node.carousel == []
        assert not node.has_results

    def test_image_generator_kinds(self):
        assert NodeKind.IMAGE.is_image_generator
        assert NodeKind.IMAGE_EDITOR.is_image_generator
        assert NodeKind.CAMERA_ANGLE.is_image_generator
        assert not NodeKind.VIDEO.is_image_generator
        assert not NodeKind.LOCAL_IMAGE_MODEL.is_image_generator

    def test_variation_slot_success_needs_url(self):
        assert VariationSlot(status=SlotStatus.SUCCESS, url="u").succeeded
        assert not VariationSlot(status=SlotStatus.SUCCESS).succeeded
        assert not VariationSlot(status=SlotStatus.FAILED, url="u").succeeded


class TestNodeSerialization:
    """Tests for the camelCase dict format."""

    def test_to_dict_uses_camel_case(self):
        node = Node.create(
            NodeKind.VIDEO,
            result_url="v.mp4",
            video_mode=VideoMode.FRAME_TO_FRAME,
            generation_start_time=1000.0,
        )
        data = node.to_dict()
        assert data["kind"] == "Video"
        assert data["resultUrl"] == "v.mp4"
        assert data["videoMode"] == "frame-to-frame"
        assert data["generationStartTime"] == 1000.0
        assert "errorMessage" not in data

    def test_round_trip(self):
        parent = new_node_id()
        node = Node.create(
            NodeKind.VIDEO,
            parent_ids=[parent],
            status=NodeStatus.LOADING,
            prompt_chips=[PromptChip(label="Moody", prompt="moody lighting")],
            frame_inputs=[FrameInput(node_id=parent, order="start")],
            image_variations=[VariationSlot(status=SlotStatus.SUCCESS, url="x")],
            video_mode=VideoMode.REFERENCE,
        )
        restored = Node.from_dict(node.to_dict())
        assert restored == node

    def test_from_dict_accepts_canvas_payload(self):
        node = Node.from_dict({
            "id": "n1",
            "type": "ignored",
            "kind": "Image",
            "status": "success",
            "resultUrl": "/library/images/a.png",
            "parentIds": ["p1"],
            "frameInputs": [{"nodeId": "p1", "order": "end"}],
        })
        assert node.id == "n1"
        assert node.status == NodeStatus.SUCCESS
        assert node.result_url == "/library/images/a.png"
        assert node.frame_inputs == [FrameInput(node_id="p1", order="end")]


class TestNodeGraph:
    """Tests for NodeGraph."""

    def test_add_and_get(self):
        graph = NodeGraph()
        node = Node.create(NodeKind.TEXT)
        graph.add_node(node)

        assert graph.get_node(node.id) is node
        assert node.id in graph
        assert len(graph) == 1

    def test_get_missing_and_none(self):
        graph = NodeGraph()
        assert graph.get_node(new_node_id()) is None
        assert graph.get_node(None) is None

    def test_remove_node(self):
        node = Node.create(NodeKind.TEXT)
        graph = NodeGraph([node])
        assert graph.remove_node(node.id) is node
        assert graph.remove_node(node.id) is None
        assert len(graph) == 0

    def test_update_node(self):
        node = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([node])

        updated = graph.update_node(node.id, status=NodeStatus.LOADING, generation_start_time=5.0)

        assert updated is node
        assert node.status == NodeStatus.LOADING
        assert node.generation_start_time == 5.0

    def test_update_missing_node(self):
        graph = NodeGraph()
        assert graph.update_node(new_node_id(), status=NodeStatus.ERROR) is None

    def test_update_unknown_field_rejected(self):
        node = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([node])

        with pytest.raises(AttributeError):
            graph.update_node(node.id, status=NodeStatus.ERROR, bogus=1)

        # Nothing applied
        assert node.status == NodeStatus.IDLE

    def test_update_identity_rejected(self):
        node = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([node])
        with pytest.raises(AttributeError):
            graph.update_node(node.id, kind=NodeKind.VIDEO)

    def test_carousel_index_clamped(self):
        node = Node.create(NodeKind.IMAGE, result_url="a", result_urls=["a", "b", "c"])
        graph = NodeGraph([node])

        graph.update_node(node.id, carousel_index=2)
        assert node.carousel_index == 2

        graph.update_node(node.id, result_urls=None)
        assert node.carousel_index == 0

    def test_carousel_index_follows_variations(self):
        node = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([node])
        slots = [VariationSlot() for _ in range(4)]

        graph.update_node(node.id, image_variations=slots, carousel_index=3)
        assert node.carousel_index == 3

        graph.update_node(node.id, carousel_index=4)
        assert node.carousel_index == 0

    def test_listeners_notified(self):
        node = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([node])
        seen = []

        def listener(n, updates):
            seen.append((n.id, updates))

        graph.add_listener(listener)
        graph.update_node(node.id, status=NodeStatus.SUCCESS)
        graph.remove_listener(listener)
        graph.update_node(node.id, status=NodeStatus.ERROR)

        assert seen == [(node.id, {"status": NodeStatus.SUCCESS})]

    def test_parents_in_order(self):
        a = Node.create(NodeKind.TEXT)
        b = Node.create(NodeKind.IMAGE)
        child = Node.create(NodeKind.VIDEO, parent_ids=[b.id, new_node_id(), a.id])
        graph = NodeGraph([a, b, child])

        assert graph.parents_of(child) == [b, a]
        assert graph.parents_of_kind(child, NodeKind.TEXT) == [a]
        assert graph.non_text_parent_ids(child) == [b.id]

    def test_walk_chain(self):
        root = Node.create(NodeKind.IMAGE)
        mid = Node.create(NodeKind.IMAGE_EDITOR, parent_ids=[root.id])
        leaf = Node.create(NodeKind.IMAGE, parent_ids=[mid.id])
        graph = NodeGraph([root, mid, leaf])

        assert [n.id for n in graph.walk_chain(leaf.id)] == [leaf.id, mid.id, root.id]

    def test_walk_chain_stops_on_cycle(self):
        a = Node.create(NodeKind.IMAGE)
        b = Node.create(NodeKind.IMAGE, parent_ids=[a.id])
        a.parent_ids = [b.id]
        graph = NodeGraph([a, b])

        assert [n.id for n in graph.walk_chain(a.id)] == [a.id, b.id]

    def test_nodes_with_status(self):
        loading = Node.create(NodeKind.IMAGE, status=NodeStatus.LOADING)
        idle = Node.create(NodeKind.IMAGE)
        graph = NodeGraph([loading, idle])

        assert graph.nodes_with_status(NodeStatus.LOADING) == [loading]

    def test_graph_round_trip(self):
        a = Node.create(NodeKind.TEXT, prompt="hello")
        b = Node.create(NodeKind.IMAGE, parent_ids=[a.id])
        graph = NodeGraph([a, b])

        restored = NodeGraph.from_dict(graph.to_dict())

        assert len(restored) == 2
        assert restored.get_node(b.id).parent_ids == [a.id]
        assert restored.get_node(a.id).prompt == "hello"
