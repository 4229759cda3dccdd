"""
Tests for the provider registry and the HTTP gateway.
"""

import json

import pytest

from ai_canvas_studio.core.settings import EngineSettings
from ai_canvas_studio.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationStatus,
    ImageGenerationRequest,
    RateLimitError,
    VideoGenerationRequest,
)
from ai_canvas_studio.providers.http import HTTPGenerationGateway
from ai_canvas_studio.providers.registry import (
    BUILTIN_MODEL_CARDS,
    GatewayConfig,
    ModelCard,
    ProviderRegistry,
)


class TestModelFamilies:
    """Tests for capability detection."""

    def test_singleton(self, registry):
        assert ProviderRegistry() is registry

    def test_builtin_cards_loaded(self, registry):
        assert registry.get_model("gemini-pro") is BUILTIN_MODEL_CARDS["gemini-pro"]
        assert registry.get_model("GEMINI-PRO") is not None
        assert registry.get_model(None) is None

    def test_list_models_by_media(self, registry):
        videos = registry.list_models("video")
        assert videos
        assert all(m.media == "video" for m in videos)

    def test_parallel_variations(self, registry):
        assert registry.uses_parallel_variations("gemini-pro")
        assert registry.uses_parallel_variations("gemini-3-experimental")
        assert not registry.uses_parallel_variations("kling-v2")
        assert not registry.uses_parallel_variations(None)

    def test_frame_pair(self, registry):
        assert registry.supports_frame_pair("kling-v2-5-turbo")
        assert registry.supports_frame_pair("kling-v9-unreleased")
        assert not registry.supports_frame_pair("veo-3.1")

    def test_motion_control(self, registry):
        assert registry.is_motion_control("kling-v2-6")
        assert registry.is_motion_control("kie-kling-2.6-motion-control")
        assert registry.is_motion_control("kie-veo3-extend")
        assert not registry.is_motion_control("kling-v2-5-turbo")

    def test_custom_card_flags(self, registry):
        registry.register_model(ModelCard(id="acme-interp", media="video", name="Acme",
                                          frame_pair=True))
        assert registry.supports_frame_pair("acme-interp")


class TestRegistryConfig:
    """Tests for loading and saving configuration."""

    def test_missing_file_keeps_defaults(self, registry, tmp_path):
        registry.load_config(tmp_path / "nope.json")
        assert registry.gateway_config.base_url == "http://localhost:3001"
        assert registry.engine_settings == EngineSettings()

    def test_round_trip(self, registry, tmp_path):
        path = tmp_path / "providers.json"
        registry.set_gateway_config(GatewayConfig(base_url="http://studio:9000", api_key="k"))
        registry.set_engine_settings(EngineSettings(recovery_poll_interval=2.5))
        registry.register_model(ModelCard(id="acme-img", media="image", name="Acme",
                                          parallel_variations=True))
        registry.save_config(path)

        saved = json.loads(path.read_text())
        assert [m["id"] for m in saved["custom_models"]] == ["acme-img"]

        registry.reset()
        registry.load_config(path)

        assert registry.gateway_config.base_url == "http://studio:9000"
        assert registry.gateway_config.api_key == "k"
        assert registry.engine_settings.recovery_poll_interval == 2.5
        assert registry.uses_parallel_variations("acme-img")

    def test_corrupt_file_ignored(self, registry, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text("{not json")

        registry.load_config(path)

        assert registry.gateway_config == GatewayConfig()


class TestEngineSettings:

    @pytest.mark.parametrize("count,expected", [(1, 1), (2, 2), (4, 4), (3, 1), (0, 1),
                                                (True, 1), ("2", 1), (None, 1)])
    def test_clamp_variation_count(self, count, expected):
        assert EngineSettings().clamp_variation_count(count) == expected

    def test_from_dict_partial(self):
        settings = EngineSettings.from_dict({"max_input_images": 8})
        assert settings.max_input_images == 8
        assert settings.max_reference_images == 3
        assert settings.allowed_variation_counts == (1, 2, 4)


class TestGenerationStatus:

    def test_from_dict(self):
        status = GenerationStatus.from_dict({
            "status": "success",
            "resultUrl": "/library/videos/v.mp4",
            "type": "video",
            "createdAt": "2024-01-01T00:00:00Z",
        })
        assert status.result_url == "/library/videos/v.mp4"
        assert status.result_type == "video"
        assert not status.is_pending

    def test_defaults_to_pending(self):
        assert GenerationStatus.from_dict({}).is_pending


class TestHTTPGateway:
    """Tests for request bodies and error mapping."""

    def test_headers(self):
        assert "Authorization" not in HTTPGenerationGateway(GatewayConfig()).get_headers()
        headers = HTTPGenerationGateway(GatewayConfig(api_key="secret")).get_headers()
        assert headers["Authorization"] == "Bearer secret"

    def test_check_error_auth(self):
        gateway = HTTPGenerationGateway(GatewayConfig())
        with pytest.raises(AuthenticationError):
            gateway._check_error(401, {"error": "bad key"})
        with pytest.raises(AuthenticationError, match="PERMISSION_DENIED"):
            gateway._check_error(403, {"error": "denied"})

    def test_check_error_rate_limit(self):
        gateway = HTTPGenerationGateway(GatewayConfig())
        with pytest.raises(RateLimitError) as exc_info:
            gateway._check_error(429, {"error": "slow down", "retryAfter": 30})
        assert exc_info.value.retry_after == 30.0

    def test_check_error_generic(self):
        gateway = HTTPGenerationGateway(GatewayConfig())
        with pytest.raises(GenerationError, match="HTTP 500"):
            gateway._check_error(500, {"message": "exploded"})
        gateway._check_error(200, {})

    @pytest.mark.asyncio
    async def test_image_body(self, monkeypatch):
        gateway = HTTPGenerationGateway(GatewayConfig())
        calls = []

        async def fake_post(path, body):
            calls.append((path, body))
            return {"resultUrl": "a.png", "resultUrls": ["a.png", "b.png"]}

        monkeypatch.setattr(gateway, "_post", fake_post)
        result = await gateway.generate_image(ImageGenerationRequest(
            prompt="cat", node_id="n1", images=["data:image/png;base64,AA=="], variations=2
        ))

        path, body = calls[0]
        assert path == "/api/generate-image"
        assert body["nodeId"] == "n1"
        assert body["imageBase64"] == ["data:image/png;base64,AA=="]
        assert body["variations"] == 2
        assert result.all_urls == ["a.png", "b.png"]

    @pytest.mark.asyncio
    async def test_missing_image_url(self, monkeypatch):
        gateway = HTTPGenerationGateway(GatewayConfig())

        async def fake_post(path, body):
            return {}

        monkeypatch.setattr(gateway, "_post", fake_post)
        with pytest.raises(GenerationError, match="No image data"):
            await gateway.generate_image(ImageGenerationRequest(prompt="cat", node_id="n1"))

    @pytest.mark.asyncio
    async def test_video_body(self, monkeypatch):
        gateway = HTTPGenerationGateway(GatewayConfig())
        calls = []

        async def fake_post(path, body):
            calls.append((path, body))
            return {"resultUrl": "/library/videos/v.mp4"}

        monkeypatch.setattr(gateway, "_post", fake_post)
        url = await gateway.generate_video(VideoGenerationRequest(
            prompt="", node_id="n2", start_image="A", end_image="B", video_model="kling-v2-5-turbo"
        ))

        path, body = calls[0]
        assert path == "/api/generate-video"
        assert body["imageBase64"] == "A"
        assert body["lastFrameBase64"] == "B"
        assert body["videoModel"] == "kling-v2-5-turbo"
        assert url == "/library/videos/v.mp4"
