"""
Input Resolver - Builds generation requests from a node and its parents.

Given a target node and the graph, the resolver works out:
- The combined prompt (text parents, style parents, chips, own prompt)
- Which images feed the request (face images, video last frames)
- How a video request is driven: motion control, reference images,
  a start/end frame pair, or a single start image
- Whether image variations must fan out into parallel calls

The resolver never raises. Missing images are left unset and the
provider decides whether to reject the request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ai_canvas_studio.core.graph import (
    Node,
    NodeGraph,
    NodeId,
    NodeKind,
    VideoMode,
)
from ai_canvas_studio.core.settings import EngineSettings
from ai_canvas_studio.providers.base import (
    ImageGenerationRequest,
    LocalImageRequest,
    VideoGenerationRequest,
)
from ai_canvas_studio.providers.registry import ProviderRegistry, get_registry


PROMPT_SEPARATOR = "\n\n"

# Kinds that never contribute an image
PROMPT_ONLY_KINDS = frozenset({NodeKind.TEXT, NodeKind.STYLE})


class VideoInputMode(Enum):
    """How a video request is driven."""
    MOTION_CONTROL = "motion-control"
    REFERENCE = "reference"
    FRAME_PAIR = "frame-pair"
    STANDARD = "standard"


@dataclass
class ImagePlan:
    """Resolved image request plus its fan-out decision."""
    request: ImageGenerationRequest
    variation_count: int = 1
    parallel: bool = False


@dataclass
class LocalImagePlan:
    """Resolved local model request."""
    request: LocalImageRequest

    @property
    def has_model(self) -> bool:
        return bool(self.request.model_id or self.request.model_path)


@dataclass
class VideoPlan:
    """Resolved video request and the mode that produced it."""
    request: VideoGenerationRequest
    mode: VideoInputMode = VideoInputMode.STANDARD


GenerationPlan = ImagePlan | LocalImagePlan | VideoPlan


@dataclass
class VideoInputs:
    """Images and references selected for a video request."""
    mode: VideoInputMode
    start_image: str | None = None
    end_image: str | None = None
    reference_images: list[str] = field(default_factory=list)
    motion_reference_url: str | None = None


# ============================================================================
# Face images
# ============================================================================

def get_face_image(node: Node | None) -> str | None:
    """
    The one image that represents a node right now.

    Priority: the selected successful variation slot, else the first
    successful slot; the carousel entry at carousel_index; result_url.
    """
    if node is None:
        return None

    if node.image_variations:
        index = node.carousel_index or 0
        if 0 <= index < len(node.image_variations):
            selected = node.image_variations[index]
            if selected.succeeded:
                return selected.url
        for slot in node.image_variations:
            if slot.succeeded:
                return slot.url

    if node.result_urls:
        index = node.carousel_index or 0
        if 0 <= index < len(node.result_urls):
            return node.result_urls[index]
        return node.result_urls[0]

    return node.result_url


def get_contributed_image(node: Node | None) -> str | None:
    """Image a node hands to a video request: a video's last frame, else its face image."""
    if node is None:
        return None
    if node.kind == NodeKind.VIDEO and node.last_frame:
        return node.last_frame
    return get_face_image(node)


# ============================================================================
# Prompts
# ============================================================================

def compose_prompt(node: Node, graph: NodeGraph) -> str:
    """
    Combine prompt contributions in fixed order.

    TEXT parent prompts, STYLE parent prompts, the node's chip prompts,
    then the node's own prompt. Empty segments are skipped.
    """
    segments = [p.prompt for p in graph.parents_of_kind(node, NodeKind.TEXT)]
    segments += [p.prompt for p in graph.parents_of_kind(node, NodeKind.STYLE)]
    segments += [chip.prompt for chip in node.prompt_chips]
    segments.append(node.prompt)
    return PROMPT_SEPARATOR.join(s for s in segments if s)


def prompt_is_optional(node: Node, registry: ProviderRegistry | None = None) -> bool:
    """Frame-pair capable video models may interpolate two parents without a prompt."""
    registry = registry or get_registry()
    return (
        node.kind == NodeKind.VIDEO
        and registry.supports_frame_pair(node.video_model)
        and len(node.parent_ids) >= 2
    )


# ============================================================================
# Image inputs
# ============================================================================

def collect_input_images(node: Node, graph: NodeGraph, limit: int = 14) -> list[str]:
    """
    Gather the images an image request is conditioned on.

    For each parent, walk up its first-parent chain until a node with a
    face image is found. TEXT nodes end a chain. Character reference URLs
    are appended afterwards. At most `limit` images are returned.
    """
    images: list[str] = []

    for parent_id in node.parent_ids:
        if len(images) >= limit:
            break
        for ancestor in graph.walk_chain(parent_id):
            if ancestor.kind == NodeKind.TEXT:
                break
            face = get_face_image(ancestor)
            if face:
                images.append(face)
                break

    for url in node.character_reference_urls:
        if len(images) >= limit:
            break
        if url:
            images.append(url)

    return images


# ============================================================================
# Video inputs
# ============================================================================

def resolve_video_inputs(
    node: Node,
    graph: NodeGraph,
    registry: ProviderRegistry | None = None,
    max_reference_images: int = 3,
) -> VideoInputs:
    """Decide the video input mode and pick its images, highest priority first."""
    registry = registry or get_registry()
    parents = graph.parents_of(node)
    image_parents = [p for p in parents if p.kind not in PROMPT_ONLY_KINDS]

    # 1. Motion control: needs a parent video with a result
    if registry.is_motion_control(node.video_model):
        video_parent = next(
            (p for p in parents if p.kind == NodeKind.VIDEO and p.result_url), None
        )
        if video_parent is not None:
            character = next(
                (p for p in parents if p.kind == NodeKind.IMAGE and p.has_results), None
            )
            return VideoInputs(
                mode=VideoInputMode.MOTION_CONTROL,
                start_image=get_face_image(character),
                motion_reference_url=video_parent.result_url,
            )

    # 2. Reference / ingredients
    faces = [f for f in (get_face_image(p) for p in image_parents) if f]
    if node.video_mode == VideoMode.REFERENCE or len(faces) >= 3:
        return VideoInputs(
            mode=VideoInputMode.REFERENCE,
            reference_images=faces[:max_reference_images],
        )

    # 3. Frame pair
    explicit = node.frame_inputs or []
    if (
        node.video_mode == VideoMode.FRAME_TO_FRAME
        or len(image_parents) >= 2
        or len(explicit) >= 2
    ):
        start, end = _explicit_frames(node, graph)
        if start is None or end is None:
            start = get_contributed_image(_at(image_parents, 0))
            end = get_contributed_image(_at(image_parents, 1))
        return VideoInputs(mode=VideoInputMode.FRAME_PAIR, start_image=start, end_image=end)

    # 4. Standard single image
    return VideoInputs(
        mode=VideoInputMode.STANDARD,
        start_image=get_contributed_image(_at(image_parents, 0)),
    )


def _explicit_frames(node: Node, graph: NodeGraph) -> tuple[str | None, str | None]:
    start_id: NodeId | None = None
    end_id: NodeId | None = None
    for frame in node.frame_inputs or []:
        if frame.order == "start" and start_id is None:
            start_id = frame.node_id
        elif frame.order == "end" and end_id is None:
            end_id = frame.node_id
    return (
        get_contributed_image(graph.get_node(start_id)),
        get_contributed_image(graph.get_node(end_id)),
    )


def _at(nodes: list[Node], index: int) -> Node | None:
    return nodes[index] if index < len(nodes) else None


# ============================================================================
# Resolver
# ============================================================================

class InputResolver:
    """
    Turns a node into a generation plan.

    Returns None from resolve() when nothing should be dispatched: the node
    is missing, its kind has no generation path, or it has no prompt and
    no exemption.
    """

    def __init__(
        self,
        graph: NodeGraph,
        registry: ProviderRegistry | None = None,
        settings: EngineSettings | None = None,
    ):
        self.graph = graph
        self.registry = registry or get_registry()
        self.settings = settings or self.registry.engine_settings

    def resolve(self, node_id: NodeId) -> GenerationPlan | None:
        node = self.graph.get_node(node_id)
        if node is None:
            return None

        prompt = compose_prompt(node, self.graph)
        if not prompt and not prompt_is_optional(node, self.registry):
            return None

        if node.kind.is_image_generator:
            return self._image_plan(node, prompt)
        if node.kind == NodeKind.LOCAL_IMAGE_MODEL:
            return self._local_plan(node, prompt)
        if node.kind == NodeKind.VIDEO:
            return self._video_plan(node, prompt)
        return None

    def _image_plan(self, node: Node, prompt: str) -> ImagePlan:
        count = self.settings.clamp_variation_count(node.variation_count or 1)
        parallel = count > 1 and self.registry.uses_parallel_variations(node.image_model)
        request = ImageGenerationRequest(
            prompt=prompt,
            node_id=node.id,
            aspect_ratio=node.aspect_ratio,
            resolution=node.resolution,
            variations=1 if parallel else count,
            images=collect_input_images(node, self.graph, self.settings.max_input_images),
            image_model=node.image_model,
            kling_reference_mode=node.kling_reference_mode,
            kling_face_intensity=node.kling_face_intensity,
            kling_subject_intensity=node.kling_subject_intensity,
        )
        return ImagePlan(request=request, variation_count=count, parallel=parallel)

    def _local_plan(self, node: Node, prompt: str) -> LocalImagePlan:
        return LocalImagePlan(request=LocalImageRequest(
            prompt=prompt,
            model_id=node.local_model_id,
            model_path=node.local_model_path,
            aspect_ratio=node.aspect_ratio,
            resolution=node.resolution or self.settings.default_local_resolution,
        ))

    def _video_plan(self, node: Node, prompt: str) -> VideoPlan:
        inputs = resolve_video_inputs(
            node, self.graph, self.registry, self.settings.max_reference_images
        )
        request = VideoGenerationRequest(
            prompt=prompt,
            node_id=node.id,
            start_image=inputs.start_image,
            end_image=inputs.end_image,
            reference_images=inputs.reference_images or None,
            aspect_ratio=node.aspect_ratio,
            resolution=node.resolution,
            duration=node.video_duration,
            video_model=node.video_model,
            motion_reference_url=inputs.motion_reference_url,
            generate_audio=node.generate_audio,
        )
        return VideoPlan(request=request, mode=inputs.mode)
