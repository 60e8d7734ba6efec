"""
Response DTOs for the image endpoints.

OptimisedImageResponse — GET/POST /api/images/optimise
AltTextResponse        — GET/POST /api/ai/alt

Field names are camelCase on the wire to match the existing frontend.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OptimisedImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str  # base64 WebP
    content_type: str = Field(alias="contentType")
    width: int
    height: int
    quality: Optional[int] = None
    lossless: bool
    original_size_bytes: int = Field(alias="originalSizeBytes")
    optimised_size_bytes: int = Field(alias="optimisedSizeBytes")
    compression_ratio: float = Field(alias="compressionRatio")
    url: Optional[str] = None


class AltTextResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    alt_text: str = Field(alias="altText")
    image_source: str = Field(alias="imageSource")
    model: str
    processing_time_ms: int = Field(alias="processingTimeMs")
    original_image_size_bytes: int = Field(alias="originalImageSizeBytes")
    optimised_image_size_bytes: int = Field(alias="optimisedImageSizeBytes")
    compression_ratio: float = Field(alias="compressionRatio")
    optimised_image_url: Optional[str] = Field(default=None, alias="optimisedImageUrl")
