"""
Tests for the default media probe. Video tests stub out ffprobe.
"""

import asyncio
import base64
from io import BytesIO

import aiohttp
import pytest
from PIL import Image

from ai_canvas_studio.core.graph import Node, NodeGraph, NodeKind, NodeStatus
from ai_canvas_studio.core.media import DefaultMediaProbe, MediaProbeError
from ai_canvas_studio.core.reconciler import StateReconciler


def png_bytes(width, height):
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


class TestImageDimensions:

    @pytest.mark.asyncio
    async def test_data_uri(self):
        uri = "data:image/png;base64," + base64.b64encode(png_bytes(64, 36)).decode()
        assert await DefaultMediaProbe().image_dimensions(uri) == (64, 36)

    @pytest.mark.asyncio
    async def test_local_file(self, tmp_path):
        path = tmp_path / "frame.png"
        path.write_bytes(png_bytes(30, 40))
        assert await DefaultMediaProbe().image_dimensions(str(path)) == (30, 40)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(MediaProbeError):
            await DefaultMediaProbe().image_dimensions(str(tmp_path / "missing.png"))

    @pytest.mark.asyncio
    async def test_not_an_image(self):
        uri = "data:image/png;base64," + base64.b64encode(b"definitely not a png").decode()
        with pytest.raises(MediaProbeError):
            await DefaultMediaProbe().image_dimensions(uri)


class TestUrlResolution:

    def test_library_path_uses_base_url(self):
        probe = DefaultMediaProbe("http://localhost:3001/")
        assert probe._absolute_url("/library/images/a.png") == "http://localhost:3001/library/images/a.png"

    def test_remote_url_untouched(self):
        probe = DefaultMediaProbe("http://localhost:3001")
        assert probe._absolute_url("https://cdn.test/a.png") == "https://cdn.test/a.png"

    def test_relative_path_without_base(self):
        assert DefaultMediaProbe()._absolute_url("/library/images/a.png") is None

    @pytest.mark.asyncio
    async def test_missing_ffprobe(self):
        probe = DefaultMediaProbe(ffprobe="ffprobe-does-not-exist-here")
        with pytest.raises(MediaProbeError):
            await probe.video_dimensions("/tmp/whatever.mp4")


class TestProbeFailuresWrapped:
    """Unexpected decoder and transport failures surface as MediaProbeError."""

    @pytest.mark.asyncio
    async def test_decompression_bomb(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        uri = "data:image/png;base64," + base64.b64encode(png_bytes(64, 36)).decode()

        with pytest.raises(MediaProbeError):
            await DefaultMediaProbe().image_dimensions(uri)

    @pytest.mark.asyncio
    async def test_download_timeout(self, monkeypatch):
        class TimingOutSession:
            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                return False

            def get(self, url):
                raise asyncio.TimeoutError()

        monkeypatch.setattr(aiohttp, "ClientSession", TimingOutSession)

        with pytest.raises(MediaProbeError):
            await DefaultMediaProbe().image_dimensions("https://cdn.test/slow.png")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("output", [b"[]", b'{"streams": "none"}', b'{"streams": [{"width": "wide"}]}'])
    async def test_unexpected_ffprobe_json(self, monkeypatch, output):
        probe = DefaultMediaProbe()

        async def fake_run(*cmd):
            return output

        monkeypatch.setattr(probe, "_run", fake_run)

        with pytest.raises(MediaProbeError):
            await probe.video_dimensions("/tmp/whatever.mp4")

    @pytest.mark.asyncio
    async def test_oversized_result_still_succeeds(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        uri = "data:image/png;base64," + base64.b64encode(png_bytes(64, 36)).decode()
        node = Node.create(NodeKind.IMAGE, status=NodeStatus.LOADING, generation_start_time=1.0)
        graph = NodeGraph([node])

        await StateReconciler(graph, DefaultMediaProbe()).image_success(node.id, [uri])

        assert node.status == NodeStatus.SUCCESS
        assert node.result_url == uri
        assert node.result_aspect_ratio is None
