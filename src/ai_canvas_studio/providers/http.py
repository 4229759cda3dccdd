"""
HTTP Gateway - Generation backend over its JSON API.

The backend fronts the actual providers (Gemini, Veo, Kling, Hailuo,
OpenAI, Kie.ai, local models) and stores results in its library.

Routes:
- POST /api/generate-image
- POST /api/generate-video
- POST /api/local-models/generate
- GET  /api/generation-status/{node_id}
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from ai_canvas_studio.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationGateway,
    GenerationStatus,
    ImageGenerationRequest,
    ImageGenerationResult,
    LocalImageRequest,
    LocalImageResult,
    RateLimitError,
    VideoGenerationRequest,
)
from ai_canvas_studio.providers.registry import GatewayConfig

logger = logging.getLogger(__name__)


class HTTPGenerationGateway(GenerationGateway):
    """
    Generation gateway backed by the canvas server's REST API.

    Each call opens its own session; the backend itself may take minutes
    to answer a video request.
    """

    def __init__(self, config: GatewayConfig):
        self.config = config
        self.base_url = config.base_url.rstrip("/")

    def get_headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def generate_image(self, request: ImageGenerationRequest) -> ImageGenerationResult:
        """Generate images via the backend."""
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "aspectRatio": request.aspect_ratio,
            "resolution": request.resolution,
            "variations": request.variations,
            "imageBase64": request.images or None,
            "imageModel": request.image_model,
            "nodeId": request.node_id,
            "klingReferenceMode": request.kling_reference_mode,
            "klingFaceIntensity": request.kling_face_intensity,
            "klingSubjectIntensity": request.kling_subject_intensity,
        }

        data = await self._post("/api/generate-image", body)

        result_url = data.get("resultUrl")
        if not result_url:
            raise GenerationError("No image data returned from server")
        return ImageGenerationResult(
            result_url=result_url,
            result_urls=list(data.get("resultUrls") or [result_url]),
        )

    async def generate_video(self, request: VideoGenerationRequest) -> str:
        """Generate a video via the backend and return its URL."""
        body: dict[str, Any] = {
            "prompt": request.prompt,
            "imageBase64": request.start_image,
            "lastFrameBase64": request.end_image,
            "referenceImages": request.reference_images,
            "aspectRatio": request.aspect_ratio,
            "resolution": request.resolution,
            "duration": request.duration,
            "videoModel": request.video_model,
            "motionReferenceUrl": request.motion_reference_url,
            "generateAudio": request.generate_audio,
            "nodeId": request.node_id,
        }

        data = await self._post("/api/generate-video", body)

        result_url = data.get("resultUrl")
        if not result_url:
            raise GenerationError("No video data returned from server")
        return result_url

    async def generate_local_image(self, request: LocalImageRequest) -> LocalImageResult:
        """Generate an image with a model installed on the backend host."""
        body: dict[str, Any] = {
            "modelId": request.model_id,
            "modelPath": request.model_path,
            "prompt": request.prompt,
            "aspectRatio": request.aspect_ratio,
            "resolution": request.resolution,
        }

        data = await self._post("/api/local-models/generate", body)
        return LocalImageResult(
            success=bool(data.get("success")),
            result_url=data.get("resultUrl"),
            error=data.get("error"),
        )

    async def fetch_generation_status(self, node_id: str) -> GenerationStatus:
        """Ask the backend whether a node's generation has finished."""
        url = f"{self.base_url}/api/generation-status/{node_id}"
        async with aiohttp.ClientSession() as session:
            async with session.get(url, headers=self.get_headers()) as resp:
                data = await _read_json(resp)
                self._check_error(resp.status, data)
                return GenerationStatus.from_dict(data)

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """Make POST request with JSON body, dropping unset fields."""
        url = f"{self.base_url}{path}"
        payload = {k: v for k, v in body.items() if v is not None}
        logger.debug("POST %s (node %s)", path, body.get("nodeId"))
        async with aiohttp.ClientSession() as session:
            async with session.post(url, json=payload, headers=self.get_headers()) as resp:
                data = await _read_json(resp)
                self._check_error(resp.status, data)
                return data

    def _check_error(self, status: int, data: dict[str, Any]) -> None:
        """Check for API errors."""
        message = data.get("error") or data.get("message") or "Unknown error"
        if isinstance(message, dict):
            message = message.get("message", "Unknown error")
        if status == 401:
            raise AuthenticationError(f"Invalid API key (HTTP 401): {message}")
        elif status == 403:
            raise AuthenticationError(f"PERMISSION_DENIED (HTTP 403): {message}")
        elif status == 429:
            error = RateLimitError(f"Rate limit exceeded: {message}")
            retry_after = data.get("retryAfter")
            if retry_after is not None:
                error.retry_after = float(retry_after)
            raise error
        elif status >= 400:
            raise GenerationError(f"{message} (HTTP {status})")


async def _read_json(resp: aiohttp.ClientResponse) -> dict[str, Any]:
    try:
        data = await resp.json(content_type=None)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
