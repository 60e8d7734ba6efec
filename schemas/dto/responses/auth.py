"""
Response DTOs for token and admin endpoints.

IdentityResponse — GET /api/auth
RevocationResponse — POST /api/admin/tokens/{token_id}/revoke
ImportResponse — POST /api/admin/kv/import
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IdentityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str
    token_id: Optional[str] = Field(default=None, alias="tokenId")
    issued_at: int = Field(alias="issuedAt")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")


class RevocationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(alias="tokenId")
    revoked: bool = True
    key: str


class ImportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    imported: int
