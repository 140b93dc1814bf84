from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MergeMode = Literal["append", "replace"]


class ProductCandidate(BaseModel):
    """One product name recovered from a vision response."""

    name: str
    price: Optional[str] = None
    stock: int = 1
    added: datetime


class InventoryItem(BaseModel):
    id: int
    shop_id: str
    product_name: str
    price: Optional[str] = None
    stock: int = 1
    created_at: datetime


class AnalyzeResponse(BaseModel):
    """JSON envelope returned by POST /analyze."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    added: int
    products: List[ProductCandidate]
    mode: MergeMode = "append"
    provider: Optional[str] = None
    # camelCase on the wire for the existing frontend
    collage_base64: Optional[str] = Field(default=None, alias="collageBase64")
