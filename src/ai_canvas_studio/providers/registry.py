"""
Provider Registry - Model cards, model-family detection and configuration.

This module manages:
- Built-in model cards for the image and video models the backend serves
- Capability lookups the input resolver relies on (parallel variations,
  frame-pair support, motion control)
- Gateway and engine configuration loading/saving
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ai_canvas_studio.core.settings import EngineSettings

logger = logging.getLogger(__name__)


@dataclass
class ModelCard:
    """
    Capabilities of one generation model.

    Attributes:
        id: Model identifier sent to the backend (e.g., "gemini-pro")
        media: "image" or "video"
        name: Human-readable display name
        parallel_variations: Variations must be requested as separate calls
        frame_pair: Supports start/end frame interpolation without a prompt
        motion_control: Drives motion from a reference video
        max_images: Maximum variations returned natively by one call
    """
    id: str
    media: str
    name: str
    description: str = ""
    parallel_variations: bool = False
    frame_pair: bool = False
    motion_control: bool = False
    max_images: int = 1
    tags: list[str] = field(default_factory=list)


@dataclass
class GatewayConfig:
    """Configuration for the generation backend."""
    base_url: str = "http://localhost:3001"
    api_key: str = ""
    enabled: bool = True
    extra: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Built-in Model Cards
# ============================================================================

BUILTIN_MODEL_CARDS: dict[str, ModelCard] = {
    # -------------------------------------------------------------------------
    # Image models
    # -------------------------------------------------------------------------
    "gemini-pro": ModelCard(
        id="gemini-pro",
        media="image",
        name="Gemini 3 Pro Image",
        description="Google's multimodal image model, up to 14 input images",
        parallel_variations=True,
        tags=["multi-input"],
    ),
    "gemini-flash": ModelCard(
        id="gemini-flash",
        media="image",
        name="Gemini Flash Image",
        parallel_variations=True,
        tags=["fast"],
    ),
    "kling-v1-5": ModelCard(
        id="kling-v1-5",
        media="image",
        name="Kling V1.5",
        description="Subject/face reference image generation",
        max_images=9,
    ),
    "kling-v2": ModelCard(id="kling-v2", media="image", name="Kling V2", max_images=9),
    "gpt-image-1.5": ModelCard(
        id="gpt-image-1.5",
        media="image",
        name="GPT Image 1.5",
        max_images=4,
    ),
    "grok-imagine-text-to-image": ModelCard(
        id="grok-imagine-text-to-image",
        media="image",
        name="Grok Imagine",
        max_images=6,
    ),
    # -------------------------------------------------------------------------
    # Video models
    # -------------------------------------------------------------------------
    "veo-3.1": ModelCard(
        id="veo-3.1",
        media="video",
        name="Veo 3.1",
        description="Google video model with native audio",
        tags=["audio"],
    ),
    "kling-v2-1-master": ModelCard(
        id="kling-v2-1-master",
        media="video",
        name="Kling V2.1 Master",
        frame_pair=True,
    ),
    "kling-v2-5-turbo": ModelCard(
        id="kling-v2-5-turbo",
        media="video",
        name="Kling V2.5 Turbo",
        frame_pair=True,
        tags=["fast"],
    ),
    "kling-v2-6": ModelCard(
        id="kling-v2-6",
        media="video",
        name="Kling V2.6",
        description="Motion control from a reference video, native audio",
        frame_pair=True,
        motion_control=True,
        tags=["audio"],
    ),
    "kie-kling-2.6-motion-control": ModelCard(
        id="kie-kling-2.6-motion-control",
        media="video",
        name="Kling 2.6 Motion Control (Kie)",
        motion_control=True,
    ),
    "kie-veo3-extend": ModelCard(
        id="kie-veo3-extend",
        media="video",
        name="Veo 3 Extend (Kie)",
        description="Extends a parent video",
        motion_control=True,
    ),
    "kie-veo3-fast": ModelCard(id="kie-veo3-fast", media="video", name="Veo 3 Fast (Kie)"),
    "hailuo-2.3": ModelCard(id="hailuo-2.3", media="video", name="Hailuo 2.3"),
}

# Prefix rules for model ids without a card
PARALLEL_VARIATION_PREFIXES = ("gemini-",)
FRAME_PAIR_PREFIXES = ("kling-",)
MOTION_CONTROL_MODELS = frozenset({
    "kling-v2-6",
    "kie-kling-2.6-motion-control",
    "kie-veo3-extend",
})


class ProviderRegistry:
    """
    Central registry for model cards and backend configuration.

    Handles:
    - Model card lookup and custom model registration
    - Model-family capability checks
    - Configuration management
    """

    _instance: ProviderRegistry | None = None

    def __new__(cls) -> ProviderRegistry:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init()
        return cls._instance

    @classmethod
    def instance(cls) -> ProviderRegistry:
        return cls()

    def _init(self) -> None:
        """Initialize the registry."""
        self._model_cards: dict[str, ModelCard] = dict(BUILTIN_MODEL_CARDS)
        self._gateway_config = GatewayConfig()
        self._engine_settings = EngineSettings()
        self._config_path: Path | None = None

    def reset(self) -> None:
        """Drop custom models and configuration."""
        self._init()

    # -------------------------------------------------------------------------
    # Model Cards
    # -------------------------------------------------------------------------

    def register_model(self, card: ModelCard) -> None:
        """Register a model card."""
        self._model_cards[card.id] = card

    def get_model(self, model_id: str | None) -> ModelCard | None:
        """Get a model card by ID (case-insensitive)."""
        if not model_id:
            return None
        return self._model_cards.get(_normalize(model_id))

    def list_models(self, media: str | None = None) -> list[ModelCard]:
        """List all model cards, optionally filtered by media kind."""
        if media:
            return [m for m in self._model_cards.values() if m.media == media]
        return list(self._model_cards.values())

    # -------------------------------------------------------------------------
    # Model families
    # -------------------------------------------------------------------------

    def uses_parallel_variations(self, model_id: str | None) -> bool:
        """Whether variations must be generated as independent parallel calls."""
        card = self.get_model(model_id)
        if card is not None:
            return card.parallel_variations
        return _normalize(model_id).startswith(PARALLEL_VARIATION_PREFIXES)

    def supports_frame_pair(self, model_id: str | None) -> bool:
        """Whether the model interpolates between frames without a prompt."""
        if _normalize(model_id).startswith(FRAME_PAIR_PREFIXES):
            return True
        card = self.get_model(model_id)
        return card is not None and card.frame_pair

    def is_motion_control(self, model_id: str | None) -> bool:
        """Whether the model takes its motion from a reference video."""
        if _normalize(model_id) in MOTION_CONTROL_MODELS:
            return True
        card = self.get_model(model_id)
        return card is not None and card.motion_control

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def gateway_config(self) -> GatewayConfig:
        return self._gateway_config

    def set_gateway_config(self, config: GatewayConfig) -> None:
        self._gateway_config = config

    @property
    def engine_settings(self) -> EngineSettings:
        return self._engine_settings

    def set_engine_settings(self, settings: EngineSettings) -> None:
        self._engine_settings = settings

    def load_config(self, path: Path | None = None) -> None:
        """Load backend, engine and custom model configuration from file."""
        if path is None:
            path = default_config_path()

        self._config_path = path

        if not path.exists():
            return

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)

            gateway = data.get("gateway", {})
            self._gateway_config = GatewayConfig(
                base_url=gateway.get("base_url", GatewayConfig.base_url),
                api_key=gateway.get("api_key", ""),
                enabled=gateway.get("enabled", True),
                extra=gateway.get("extra", {}),
            )

            self._engine_settings = EngineSettings.from_dict(data.get("engine", {}))

            for card_data in data.get("custom_models", []):
                card = ModelCard(
                    id=_normalize(card_data["id"]),
                    media=card_data.get("media", "image"),
                    name=card_data.get("name", card_data["id"]),
                    description=card_data.get("description", ""),
                    parallel_variations=card_data.get("parallel_variations", False),
                    frame_pair=card_data.get("frame_pair", False),
                    motion_control=card_data.get("motion_control", False),
                    max_images=card_data.get("max_images", 1),
                )
                self._model_cards[card.id] = card

        except (OSError, ValueError, KeyError) as e:
            logger.warning("Failed to load provider config from %s: %s", path, e)

    def save_config(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = self._config_path or default_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "gateway": {
                "base_url": self._gateway_config.base_url,
                "api_key": self._gateway_config.api_key,
                "enabled": self._gateway_config.enabled,
                "extra": self._gateway_config.extra,
            },
            "engine": self._engine_settings.to_dict(),
            "custom_models": [
                {
                    "id": card.id,
                    "media": card.media,
                    "name": card.name,
                    "description": card.description,
                    "parallel_variations": card.parallel_variations,
                    "frame_pair": card.frame_pair,
                    "motion_control": card.motion_control,
                    "max_images": card.max_images,
                }
                for card in self._model_cards.values()
                if card.id not in BUILTIN_MODEL_CARDS  # Only save custom models
            ],
        }

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)


def _normalize(model_id: str | None) -> str:
    return str(model_id or "").strip().lower()


# ============================================================================
# Module-level convenience functions
# ============================================================================

def default_config_path() -> Path:
    return Path.home() / ".config" / "ai_canvas_studio" / "providers.json"


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return ProviderRegistry.instance()


def get_model(model_id: str) -> ModelCard | None:
    """Get a model card by ID."""
    return get_registry().get_model(model_id)
