"""
Engine Settings - Tunables for the generation orchestration engine.

These settings are saved with the provider configuration file and
affect every generation started by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class EngineSettings:
    """
    Engine-level settings.

    Attributes:
        max_input_images: Most images sent with one image request
            (Gemini 3 Pro accepts 14)
        max_reference_images: Images collected in reference/ingredients mode
        recovery_poll_interval: Seconds between recovery status polls
        allowed_variation_counts: Variation counts a node may request
        default_local_resolution: Resolution for local models when unset
    """
    max_input_images: int = 14
    max_reference_images: int = 3
    recovery_poll_interval: float = 10.0
    allowed_variation_counts: tuple[int, ...] = field(default=(1, 2, 4))
    default_local_resolution: str = "512"

    def clamp_variation_count(self, count: Any) -> int:
        """Requested count if permitted, else 1."""
        if (
            isinstance(count, int)
            and not isinstance(count, bool)
            and count in self.allowed_variation_counts
        ):
            return count
        return 1

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "max_input_images": self.max_input_images,
            "max_reference_images": self.max_reference_images,
            "recovery_poll_interval": self.recovery_poll_interval,
            "allowed_variation_counts": list(self.allowed_variation_counts),
            "default_local_resolution": self.default_local_resolution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineSettings:
        """Create settings from dictionary, keeping defaults for missing keys."""
        defaults = cls()
        return cls(
            max_input_images=int(data.get("max_input_images", defaults.max_input_images)),
            max_reference_images=int(data.get("max_reference_images", defaults.max_reference_images)),
            recovery_poll_interval=float(
                data.get("recovery_poll_interval", defaults.recovery_poll_interval)
            ),
            allowed_variation_counts=tuple(
                data.get("allowed_variation_counts", defaults.allowed_variation_counts)
            ),
            default_local_resolution=str(
                data.get("default_local_resolution", defaults.default_local_resolution)
            ),
        )
