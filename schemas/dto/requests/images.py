"""
Request DTOs for the image endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class OptimiseImageRequest(BaseModel):
    """JSON body for POST /api/images/optimise.

    ``image`` is base64, optionally as a ``data:`` URL; ``data`` is accepted
    as an alias.
    """

    model_config = ConfigDict(populate_by_name=True)

    image: str = Field(validation_alias=AliasChoices("image", "data"), min_length=1)
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    lossy: Optional[bool] = None
