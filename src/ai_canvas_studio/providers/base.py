"""
Provider Base - Request/response contracts for the generation backend.

This module provides the boundary between the orchestration engine and the
services that actually produce images and videos:
- Request/Result dataclasses for image, video and local-model generation
- GenerationStatus for the recovery status endpoint
- GenerationGateway: abstract base class for gateway implementations
- Typed provider errors
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ImageGenerationRequest:
    """Request for image generation."""
    prompt: str
    node_id: str
    aspect_ratio: str | None = None
    resolution: str | None = None
    variations: int = 1
    images: list[str] = field(default_factory=list)  # URLs or data URIs
    image_model: str | None = None

    # Kling reference settings
    kling_reference_mode: str | None = None  # "subject" | "face"
    kling_face_intensity: int | None = None  # 0-100
    kling_subject_intensity: int | None = None  # 0-100


@dataclass
class ImageGenerationResult:
    """Result from image generation."""
    result_url: str
    result_urls: list[str] = field(default_factory=list)

    @property
    def all_urls(self) -> list[str]:
        return list(self.result_urls) if self.result_urls else [self.result_url]


@dataclass
class VideoGenerationRequest:
    """
    Request for video generation.

    start_image/end_image and reference_images are mutually exclusive.
    """
    prompt: str
    node_id: str
    start_image: str | None = None
    end_image: str | None = None
    reference_images: list[str] | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    duration: int | None = None
    video_model: str | None = None
    motion_reference_url: str | None = None
    generate_audio: bool | None = None


@dataclass
class LocalImageRequest:
    """Request for generation with a locally installed model."""
    prompt: str
    model_id: str | None = None
    model_path: str | None = None
    aspect_ratio: str | None = None
    resolution: str = "512"


@dataclass
class LocalImageResult:
    """Result from local model generation."""
    success: bool
    result_url: str | None = None
    error: str | None = None


@dataclass
class GenerationStatus:
    """Status of a generation as tracked by the backend."""
    status: str  # "pending" | "success" | "error"
    result_url: str | None = None
    result_type: str | None = None  # "image" | "video"
    created_at: str | None = None  # ISO-8601
    error_message: str | None = None
    detail: str | None = None
    phase: str | None = None
    label: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationStatus:
        """Build from the backend's JSON payload."""
        return cls(
            status=data.get("status", "pending"),
            result_url=data.get("resultUrl"),
            result_type=data.get("type"),
            created_at=data.get("createdAt"),
            error_message=data.get("errorMessage"),
            detail=data.get("detail"),
            phase=data.get("phase"),
            label=data.get("label"),
        )


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class AuthenticationError(ProviderError):
    """API key invalid or missing."""
    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""
    retry_after: float | None = None


class GenerationError(ProviderError):
    """Error during generation."""
    pass


class GenerationGateway(ABC):
    """
    Abstract base class for generation gateways.

    A gateway makes one asynchronous call per method and either returns a
    normalized result or raises a ProviderError subclass.
    """

    @abstractmethod
    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResult:
        """
        Generate one or more images.

        Raises:
            AuthenticationError: Invalid API key
            RateLimitError: Rate limit exceeded
            GenerationError: Generation failed or returned no image
        """
        ...

    @abstractmethod
    async def generate_video(self, request: VideoGenerationRequest) -> str:
        """Generate a video and return its URL."""
        ...

    @abstractmethod
    async def generate_local_image(self, request: LocalImageRequest) -> LocalImageResult:
        """Generate an image with a local model."""
        ...

    @abstractmethod
    async def fetch_generation_status(self, node_id: str) -> GenerationStatus:
        """Look up the backend's record of the latest generation for a node."""
        ...
