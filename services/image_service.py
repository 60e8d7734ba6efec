"""
Image re-encoding and size-targeted optimisation.

All output is WebP. Two entry points:

``optimise``          direct re-encode. An explicit quality (or ``lossy``) means
                      lossy at that quality; otherwise JPEG sources go lossy at
                      the default quality and everything else goes lossless at
                      maximum effort.
``optimise_for_size`` fit the image under a byte budget (the alt-text path).
                      Runs ``SizeTargetSearch``:

    SEARCHING_QUALITY ──fits──────────────▶ SUCCESS
          │  nothing in [10, 95] fits
          ▼
    REDUCING_DIMENSIONS ──long edge ≥ floor──▶ SEARCHING_QUALITY
          │  next step would go below floor, or step cap reached
          ▼
       UNREACHABLE

Both loops are bounded (``MAX_QUALITY_ITERATIONS`` / ``MAX_REDUCTION_STEPS``).
Transparency survives every re-encode: images with alpha stay RGBA.

These functions are CPU-bound and synchronous; async callers run them through
``run_in_threadpool``.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from PIL import Image, UnidentifiedImageError

from errors import TargetUnreachableError, UnsupportedFormatError, ValidationError
from shared.logging import get_logger

log = get_logger(__name__)

QUALITY_FLOOR = 10
QUALITY_CEILING = 95
MAX_QUALITY_ITERATIONS = 10
SCALE_STEP = 0.85
MAX_REDUCTION_STEPS = 25
MIN_LONG_EDGE = 1024
DEFAULT_LOSSY_QUALITY = 80
LOSSLESS_METHOD = 6
LOSSY_METHOD = 4

OUTPUT_FORMAT = "WEBP"
OUTPUT_CONTENT_TYPE = "image/webp"


@dataclass
class OptimisationResult:
    buffer: bytes
    compression_ratio: float
    width: int
    height: int
    quality: Optional[int]
    lossless: bool
    source_format: Optional[str] = None
    url: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.buffer)


class ImageEncoder(Protocol):
    def __call__(self, image: Image.Image, quality: int) -> bytes: ...


# ── Decoding / encoding ───────────────────────────────────────────────────────


def load_image(data: bytes) -> Image.Image:
    """Decode *data* fully, raising client errors for anything unusable."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except Image.DecompressionBombError as e:
        raise ValidationError("Image dimensions are too large") from e
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise UnsupportedFormatError("Unsupported or corrupt image") from e
    return image


def has_alpha(image: Image.Image) -> bool:
    if image.mode in ("RGBA", "LA", "PA"):
        return True
    return image.mode == "P" and "transparency" in image.info


def prepare_for_webp(image: Image.Image) -> Image.Image:
    """Convert to a WebP-friendly mode, keeping the alpha channel if present."""
    target = "RGBA" if has_alpha(image) else "RGB"
    if image.mode == target:
        return image
    return image.convert(target)


def encode_webp(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=OUTPUT_FORMAT, quality=quality, method=LOSSY_METHOD)
    return buffer.getvalue()


def encode_webp_lossless(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(
        buffer, format=OUTPUT_FORMAT, lossless=True, quality=100, method=LOSSLESS_METHOD
    )
    return buffer.getvalue()


def compression_ratio(original_size: int, output_size: int) -> float:
    return original_size / output_size if output_size else 0.0


def scaled_dimensions(width: int, height: int, factor: float = SCALE_STEP) -> tuple[int, int]:
    return max(1, round(width * factor)), max(1, round(height * factor))


# ── Direct re-encode ──────────────────────────────────────────────────────────


def optimise(
    data: bytes,
    quality: Optional[int] = None,
    lossy: Optional[bool] = None,
    default_quality: int = DEFAULT_LOSSY_QUALITY,
) -> OptimisationResult:
    image = load_image(data)
    source_format = image.format
    prepared = prepare_for_webp(image)

    if quality is None and lossy is None:
        lossy = source_format == "JPEG"
    elif quality is not None:
        lossy = True

    if lossy:
        effective_quality = quality if quality is not None else default_quality
        output = encode_webp(prepared, effective_quality)
    else:
        effective_quality = None
        output = encode_webp_lossless(prepared)

    log.info(
        "image_optimised",
        source_format=source_format,
        lossy=bool(lossy),
        quality=effective_quality,
        original_size=len(data),
        optimised_size=len(output),
    )
    return OptimisationResult(
        buffer=output,
        compression_ratio=compression_ratio(len(data), len(output)),
        width=prepared.width,
        height=prepared.height,
        quality=effective_quality,
        lossless=not lossy,
        source_format=source_format,
    )


# ── Size-targeted search ──────────────────────────────────────────────────────


class SearchState(str, Enum):
    SEARCHING_QUALITY = "searching_quality"
    REDUCING_DIMENSIONS = "reducing_dimensions"
    SUCCESS = "success"
    UNREACHABLE = "unreachable"


@dataclass
class SizeTargetSearch:
    """Explicit state machine for fitting an image under ``target_bytes``.

    Call ``step()`` until ``done``; each call performs at most one encode
    (quality phase) or one resize (dimension phase). ``run()`` does that loop.
    """

    image: Image.Image
    target_bytes: int
    encoder: ImageEncoder = encode_webp
    min_long_edge: int = MIN_LONG_EDGE
    quality_floor: int = QUALITY_FLOOR
    quality_ceiling: int = QUALITY_CEILING
    max_quality_iterations: int = MAX_QUALITY_ITERATIONS
    max_reduction_steps: int = MAX_REDUCTION_STEPS

    state: SearchState = field(default=SearchState.SEARCHING_QUALITY, init=False)
    low: int = field(init=False)
    high: int = field(init=False)
    quality_iterations: int = field(default=0, init=False)
    reduction_steps: int = field(default=0, init=False)
    encode_calls: int = field(default=0, init=False)
    best_quality: Optional[int] = field(default=None, init=False)
    best_buffer: Optional[bytes] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.image = prepare_for_webp(self.image)
        self._reset_quality_window()

    @property
    def done(self) -> bool:
        return self.state in (SearchState.SUCCESS, SearchState.UNREACHABLE)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def _reset_quality_window(self) -> None:
        self.low = self.quality_floor
        self.high = self.quality_ceiling
        self.quality_iterations = 0
        self.best_quality = None
        self.best_buffer = None

    def step(self) -> SearchState:
        if self.state is SearchState.SEARCHING_QUALITY:
            self._quality_step()
        elif self.state is SearchState.REDUCING_DIMENSIONS:
            self._reduction_step()
        return self.state

    def run(self) -> SearchState:
        while not self.done:
            self.step()
        return self.state

    def _quality_step(self) -> None:
        if self.low <= self.high and self.quality_iterations < self.max_quality_iterations:
            mid = (self.low + self.high) // 2
            output = self.encoder(self.image, mid)
            self.encode_calls += 1
            self.quality_iterations += 1
            if len(output) <= self.target_bytes:
                self.best_quality = mid
                self.best_buffer = output
                self.low = mid + 1
            else:
                self.high = mid - 1
            return

        if self.best_buffer is not None:
            self.state = SearchState.SUCCESS
        else:
            self.state = SearchState.REDUCING_DIMENSIONS

    def _reduction_step(self) -> None:
        if self.reduction_steps >= self.max_reduction_steps:
            self.state = SearchState.UNREACHABLE
            return

        new_width, new_height = scaled_dimensions(self.width, self.height)
        if max(new_width, new_height) < self.min_long_edge:
            self.state = SearchState.UNREACHABLE
            return

        self.image = self.image.resize((new_width, new_height), Image.Resampling.LANCZOS)
        self.reduction_steps += 1
        self._reset_quality_window()
        self.state = SearchState.SEARCHING_QUALITY


def optimise_for_size(
    data: bytes,
    target_bytes: int,
    *,
    encoder: ImageEncoder = encode_webp,
    min_long_edge: int = MIN_LONG_EDGE,
) -> OptimisationResult:
    """Re-encode *data* as lossy WebP no larger than *target_bytes*.

    Raises:
        UnsupportedFormatError: the bytes are not a decodable image.
        TargetUnreachableError: even quality 10 at the floor size is too big.
    """
    image = load_image(data)
    source_format = image.format
    search = SizeTargetSearch(
        image=image,
        target_bytes=target_bytes,
        encoder=encoder,
        min_long_edge=min_long_edge,
    )
    state = search.run()

    if state is SearchState.UNREACHABLE or search.best_buffer is None:
        log.warning(
            "image_target_unreachable",
            original_size=len(data),
            target_bytes=target_bytes,
            width=search.width,
            height=search.height,
            reduction_steps=search.reduction_steps,
        )
        raise TargetUnreachableError(
            f"Image cannot be reduced below {target_bytes} bytes",
            details={
                "target_bytes": target_bytes,
                "min_long_edge": min_long_edge,
            },
        )

    output = search.best_buffer
    log.info(
        "image_size_targeted",
        original_size=len(data),
        optimised_size=len(output),
        quality=search.best_quality,
        width=search.width,
        height=search.height,
        reduction_steps=search.reduction_steps,
        encode_calls=search.encode_calls,
    )
    return OptimisationResult(
        buffer=output,
        compression_ratio=compression_ratio(len(data), len(output)),
        width=search.width,
        height=search.height,
        quality=search.best_quality,
        lossless=False,
        source_format=source_format,
    )
