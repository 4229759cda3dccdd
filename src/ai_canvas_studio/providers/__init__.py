"""
Generation Providers.

This package provides the boundary to the generation backend:
- base: Request/result contracts and the GenerationGateway ABC
- registry: Model capability cards and backend configuration
- http: Gateway implementation over the backend's HTTP routes

Usage:
    from ai_canvas_studio.providers import get_registry, HTTPGenerationGateway

    registry = get_registry()
    registry.load_config()

    gateway = HTTPGenerationGateway(registry.gateway_config)
"""

from ai_canvas_studio.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationGateway,
    GenerationStatus,
    ImageGenerationRequest,
    ImageGenerationResult,
    LocalImageRequest,
    LocalImageResult,
    ProviderError,
    RateLimitError,
    VideoGenerationRequest,
)

from ai_canvas_studio.providers.registry import (
    BUILTIN_MODEL_CARDS,
    GatewayConfig,
    ModelCard,
    ProviderRegistry,
    get_model,
    get_registry,
)

from ai_canvas_studio.providers.http import HTTPGenerationGateway


__all__ = [
    # Contracts
    "GenerationGateway",
    "GenerationStatus",
    "ImageGenerationRequest",
    "ImageGenerationResult",
    "LocalImageRequest",
    "LocalImageResult",
    "VideoGenerationRequest",
    # Exceptions
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "GenerationError",
    # Registry
    "ProviderRegistry",
    "ModelCard",
    "GatewayConfig",
    "get_registry",
    "get_model",
    "BUILTIN_MODEL_CARDS",
    # Gateways
    "HTTPGenerationGateway",
]
