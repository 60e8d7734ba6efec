"""Unit tests for image re-encoding, the size-target search and image fetching."""

import io

import httpx
import pytest
from PIL import Image

from errors import (
    PayloadTooLargeError,
    TargetUnreachableError,
    UnsupportedFormatError,
    ValidationError,
)
from infrastructure.http_client import HttpClient
from services.image_service import (
    QUALITY_CEILING,
    SearchState,
    SizeTargetSearch,
    compression_ratio,
    has_alpha,
    optimise,
    optimise_for_size,
    scaled_dimensions,
)
from services.image_source import fetch_image
from tests.helpers import image_bytes


# ── Helpers ───────────────────────────────────────────────────────────────────


def quality_sized(image, quality):
    """Fake encoder: output size depends on quality only."""
    return b"x" * (quality * 1000)


def area_sized(image, quality):
    """Fake encoder: output size grows with pixel count and quality."""
    return b"x" * (image.width * image.height * quality // 100)


def never_fits(image, quality):
    return b"x" * 10_000


def _decode(buffer: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(buffer))
    image.load()
    return image


# ── Helpers on dimensions / ratio ─────────────────────────────────────────────


@pytest.mark.parametrize(
    "size, expected",
    [((2000, 1000), (1700, 850)), ((1, 1), (1, 1)), ((100, 3), (85, 3))],
)
def test_scaled_dimensions(size, expected):
    assert scaled_dimensions(*size) == expected


def test_compression_ratio():
    assert compression_ratio(1000, 250) == 4.0
    assert compression_ratio(1000, 0) == 0.0


@pytest.mark.parametrize(
    "mode, expected",
    [("RGB", False), ("RGBA", True), ("LA", True), ("L", False)],
)
def test_has_alpha(mode, expected):
    assert has_alpha(Image.new(mode, (4, 4))) is expected


def test_has_alpha_palette_with_transparency():
    image = Image.new("P", (4, 4))
    image.info["transparency"] = 0
    assert has_alpha(image) is True


# ── SizeTargetSearch ──────────────────────────────────────────────────────────


class TestSizeTargetSearch:
    def test_picks_highest_quality_that_fits(self):
        search = SizeTargetSearch(Image.new("RGB", (50, 50)), 57_500, encoder=quality_sized)
        assert search.run() is SearchState.SUCCESS
        assert search.best_quality == 57
        assert len(search.best_buffer) <= 57_500
        assert search.reduction_steps == 0

    def test_ceiling_when_everything_fits(self):
        search = SizeTargetSearch(Image.new("RGB", (50, 50)), 10**9, encoder=quality_sized)
        search.run()
        assert search.best_quality == QUALITY_CEILING

    def test_quality_phase_is_bounded(self):
        search = SizeTargetSearch(
            Image.new("RGB", (50, 50)),
            57_500,
            encoder=quality_sized,
            max_quality_iterations=2,
        )
        search.run()
        assert search.encode_calls == 2
        assert search.state is SearchState.SUCCESS

    def test_reduces_dimensions_when_quality_floor_is_too_big(self):
        search = SizeTargetSearch(
            Image.new("RGB", (2000, 1000)), 150_000, encoder=area_sized
        )
        states = []
        while not search.done:
            states.append(search.step())

        assert SearchState.REDUCING_DIMENSIONS in states
        assert search.state is SearchState.SUCCESS
        assert (search.width, search.height) == (1700, 850)
        assert search.reduction_steps == 1
        assert search.best_quality == 10

    def test_unreachable_stops_at_long_edge_floor(self):
        search = SizeTargetSearch(Image.new("RGB", (2000, 1500)), 100, encoder=never_fits)
        assert search.run() is SearchState.UNREACHABLE
        assert max(search.width, search.height) >= 1024
        assert max(scaled_dimensions(search.width, search.height)) < 1024
        assert search.best_buffer is None

    def test_already_below_floor_is_unreachable_without_resizing(self):
        search = SizeTargetSearch(Image.new("RGB", (800, 600)), 100, encoder=never_fits)
        assert search.step() is SearchState.SEARCHING_QUALITY
        search.run()
        assert search.state is SearchState.UNREACHABLE
        assert search.reduction_steps == 0
        assert (search.width, search.height) == (800, 600)

    def test_reduction_steps_are_capped(self):
        search = SizeTargetSearch(
            Image.new("RGB", (2000, 1500)),
            100,
            encoder=never_fits,
            min_long_edge=1,
            max_reduction_steps=3,
        )
        search.run()
        assert search.state is SearchState.UNREACHABLE
        assert search.reduction_steps == 3

    def test_alpha_kept_through_resize(self):
        search = SizeTargetSearch(
            Image.new("RGBA", (2000, 1000)), 150_000, encoder=area_sized
        )
        search.run()
        assert search.image.mode == "RGBA"


# ── optimise_for_size ─────────────────────────────────────────────────────────


class TestOptimiseForSize:
    def test_small_image_keeps_ceiling_quality(self):
        data = image_bytes((120, 80))
        result = optimise_for_size(data, 4 * 1024 * 1024)
        assert result.quality == QUALITY_CEILING
        assert result.lossless is False
        assert result.size <= 4 * 1024 * 1024
        assert result.source_format == "PNG"
        assert _decode(result.buffer).format == "WEBP"

    def test_alpha_preserved(self):
        result = optimise_for_size(image_bytes((64, 64), mode="RGBA"), 1024 * 1024)
        assert _decode(result.buffer).mode == "RGBA"

    def test_unreachable_raises(self):
        with pytest.raises(TargetUnreachableError) as exc:
            optimise_for_size(image_bytes((64, 64)), 1, encoder=never_fits)
        assert exc.value.status_code == 422

    def test_unsupported_bytes(self):
        with pytest.raises(UnsupportedFormatError):
            optimise_for_size(b"definitely not an image", 1024)


# ── optimise ──────────────────────────────────────────────────────────────────


class TestOptimise:
    def test_png_defaults_to_lossless(self):
        result = optimise(image_bytes(fmt="PNG"))
        assert result.lossless is True
        assert result.quality is None
        assert (result.width, result.height) == (64, 48)

    def test_jpeg_defaults_to_lossy(self):
        result = optimise(image_bytes(fmt="JPEG"))
        assert result.lossless is False
        assert result.quality == 80
        assert result.source_format == "JPEG"

    def test_explicit_quality_forces_lossy(self):
        result = optimise(image_bytes(fmt="PNG"), quality=40)
        assert result.lossless is False
        assert result.quality == 40

    def test_lossy_flag_uses_default_quality(self):
        result = optimise(image_bytes(fmt="PNG"), lossy=True, default_quality=70)
        assert result.quality == 70

    def test_lossy_false_on_jpeg(self):
        assert optimise(image_bytes(fmt="JPEG"), lossy=False).lossless is True

    def test_alpha_preserved(self):
        result = optimise(image_bytes(mode="RGBA"))
        assert _decode(result.buffer).mode == "RGBA"

    def test_compression_ratio_reported(self):
        data = image_bytes()
        result = optimise(data)
        assert result.compression_ratio == pytest.approx(len(data) / result.size)

    @pytest.mark.parametrize("data", [b"", b"\x00" * 32, b"\x89PNG\r\n\x1a\n"])
    def test_unsupported(self, data):
        with pytest.raises(UnsupportedFormatError) as exc:
            optimise(data)
        assert exc.value.status_code == 400


# ── fetch_image ───────────────────────────────────────────────────────────────


def _client(handler) -> HttpClient:
    client = HttpClient()
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestFetchImage:
    async def test_returns_body(self):
        png = image_bytes()
        client = _client(
            lambda request: httpx.Response(200, content=png, headers={"content-type": "image/png"})
        )
        assert await fetch_image(client, "https://example.com/a.png", 1024 * 1024) == png
        await client.aclose()

    async def test_too_large(self):
        client = _client(
            lambda request: httpx.Response(
                200, content=b"x" * 100, headers={"content-type": "image/png"}
            )
        )
        with pytest.raises(PayloadTooLargeError):
            await fetch_image(client, "https://example.com/a.png", 10)
        await client.aclose()

    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(404))
        with pytest.raises(ValidationError, match="HTTP 404"):
            await fetch_image(client, "https://example.com/a.png", 1024)
        await client.aclose()

    async def test_not_an_image(self):
        client = _client(
            lambda request: httpx.Response(200, text="<html>", headers={"content-type": "text/html"})
        )
        with pytest.raises(ValidationError, match="does not point to an image"):
            await fetch_image(client, "https://example.com/", 1024)
        await client.aclose()

    async def test_connection_error(self):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(fail)
        with pytest.raises(ValidationError, match="Could not fetch"):
            await fetch_image(client, "https://example.com/a.png", 1024)
        await client.aclose()

    async def test_invalid_url(self):
        client = _client(lambda request: httpx.Response(200))
        with pytest.raises(ValidationError):
            await fetch_image(client, "ftp://example.com/a.png", 1024)
        await client.aclose()
