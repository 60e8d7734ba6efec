"""Test constants and builders shared by unit and integration tests."""

import io

from PIL import Image

TEST_SECRET = "test-secret-with-at-least-32-bytes-of-entropy"


def image_bytes(
    size: tuple[int, int] = (64, 48),
    mode: str = "RGB",
    fmt: str = "PNG",
    color=(200, 40, 40),
) -> bytes:
    """Encode a solid-colour test image."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeAltTextProvider:
    model = "@cf/test/fake-model"

    def __init__(self, text: str = "A red square") -> None:
        self.text = text
        self.calls: list[bytes] = []

    async def describe(self, image: bytes) -> str:
        self.calls.append(image)
        return self.text


def drain(client) -> None:
    """Wait for best-effort writes spawned by earlier requests on a TestClient."""
    client.portal.call(client.app.state.runner.drain)
