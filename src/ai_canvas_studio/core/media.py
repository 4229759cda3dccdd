"""
Media Probe - Derived artifacts for generated results.

The reconciler uses a probe to measure result dimensions and to pull the
final still out of a video so descendants can chain from it. Probing is
best-effort: callers treat MediaProbeError as "artifact unavailable".

Media references may be data URIs, absolute http(s) URLs, backend-relative
library paths (e.g. /library/videos/abc.mp4) or local file paths.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path
from typing import AsyncIterator

import aiohttp
from PIL import Image

logger = logging.getLogger(__name__)

# Pillow raises DecompressionBombError (not an OSError) for oversized images
IMAGE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)


class MediaProbeError(Exception):
    """A media reference could not be read or measured."""
    pass


class MediaProbe(ABC):
    """Abstract probe for image/video dimensions and video last frames."""

    @abstractmethod
    async def image_dimensions(self, url: str) -> tuple[int, int]:
        """Return (width, height) of an image."""
        ...

    @abstractmethod
    async def video_dimensions(self, url: str) -> tuple[int, int]:
        """Return (width, height) of a video's first video stream."""
        ...

    @abstractmethod
    async def extract_last_frame(self, url: str) -> str:
        """Return the final frame of a video as a JPEG data URI."""
        ...


class DefaultMediaProbe(MediaProbe):
    """
    Probe using Pillow for images and ffprobe/ffmpeg for videos.

    Args:
        base_url: Backend origin used to resolve library-relative paths
        ffmpeg: ffmpeg executable
        ffprobe: ffprobe executable
    """

    def __init__(
        self,
        base_url: str | None = None,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    async def image_dimensions(self, url: str) -> tuple[int, int]:
        data = await self._read_bytes(url)
        try:
            with Image.open(BytesIO(data)) as img:
                return img.size
        except IMAGE_ERRORS as e:
            raise MediaProbeError(f"Unreadable image: {e}") from e

    async def video_dimensions(self, url: str) -> tuple[int, int]:
        async with self._ffmpeg_source(url) as source:
            stdout = await self._run(
                self.ffprobe, "-v", "quiet", "-print_format", "json",
                "-show_streams", "-select_streams", "v:0", source,
            )
        try:
            info = json.loads(stdout)
        except ValueError as e:
            raise MediaProbeError(f"Bad ffprobe output: {e}") from e
        streams = info.get("streams") if isinstance(info, dict) else None
        if not isinstance(streams, list) or not streams or not isinstance(streams[0], dict):
            raise MediaProbeError("No video stream found")
        try:
            width = int(streams[0].get("width", 0))
            height = int(streams[0].get("height", 0))
        except (TypeError, ValueError) as e:
            raise MediaProbeError(f"Bad stream dimensions: {e}") from e
        if width <= 0 or height <= 0:
            raise MediaProbeError("Video stream has no dimensions")
        return width, height

    async def extract_last_frame(self, url: str) -> str:
        async with self._ffmpeg_source(url) as source:
            png = await self._run(
                self.ffmpeg, "-v", "error", "-sseof", "-0.1", "-i", source,
                "-frames:v", "1", "-f", "image2pipe", "-vcodec", "png", "-",
            )
        if not png:
            raise MediaProbeError("ffmpeg produced no frame")
        try:
            with Image.open(BytesIO(png)) as frame:
                buf = BytesIO()
                frame.convert("RGB").save(buf, format="JPEG", quality=92)
        except IMAGE_ERRORS as e:
            raise MediaProbeError(f"Unreadable frame: {e}") from e
        return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _absolute_url(self, url: str) -> str | None:
        if url.startswith(("http://", "https://")):
            return url
        if url.startswith("/") and self.base_url and not Path(url).exists():
            return f"{self.base_url}{url}"
        return None

    async def _read_bytes(self, url: str) -> bytes:
        if url.startswith("data:"):
            return _decode_data_uri(url)

        remote = self._absolute_url(url)
        if remote:
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(remote) as resp:
                        if resp.status != 200:
                            raise MediaProbeError(f"Failed to download media: HTTP {resp.status}")
                        return await resp.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise MediaProbeError(f"Failed to download media: {e}") from e

        try:
            return Path(url.split("?", 1)[0]).read_bytes()
        except OSError as e:
            raise MediaProbeError(f"Cannot read {url}: {e}") from e

    @asynccontextmanager
    async def _ffmpeg_source(self, url: str) -> AsyncIterator[str]:
        """Yield something ffmpeg can open; data URIs go through a temp file."""
        if not url.startswith("data:"):
            yield self._absolute_url(url) or url.split("?", 1)[0]
            return

        fd, tmp_path = tempfile.mkstemp(suffix=".mp4")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(_decode_data_uri(url))
            yield tmp_path
        finally:
            os.unlink(tmp_path)

    async def _run(self, *cmd: str) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MediaProbeError(f"Cannot run {cmd[0]}: {e}") from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise MediaProbeError(
                f"{cmd[0]} exited with {proc.returncode}: {stderr.decode(errors='replace')[-300:]}"
            )
        return stdout


def _decode_data_uri(url: str) -> bytes:
    try:
        _, b64_data = url.split(",", 1)
        return base64.b64decode(b64_data)
    except ValueError as e:
        raise MediaProbeError(f"Malformed data URI: {e}") from e
