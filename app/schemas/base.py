"""
Receipt schemas — AI extraction contract and receipt API envelopes.

The AI response is untrusted input: ``ExtractedReceipt`` is the schema it
must satisfy before anything is written to the database.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.normalize import parse_amount_strict


class CamelModel(BaseModel):
    """API envelope that speaks camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# AI extraction
# ---------------------------------------------------------------------------

class ExtractedReceipt(BaseModel):
    """The JSON object the vision model is instructed to return."""
    model_config = ConfigDict(extra="ignore")

    merchant_name: str = Field(..., min_length=1)
    amount: float
    date: Optional[str] = None
    category: Optional[str] = None
    items: list[str] = Field(default_factory=list, description="Optional line items")

    @field_validator("merchant_name", mode="before")
    @classmethod
    def _strip_merchant(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> Any:
        if isinstance(v, str):
            parsed = parse_amount_strict(v)
            if parsed is None:
                raise ValueError(f"amount is not a number: {v!r}")
            return parsed
        return v

    @field_validator("date", "category", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("items", mode="before")
    @classmethod
    def _flatten_items(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return [str(v)]
        flat: list[str] = []
        for item in v:
            if isinstance(item, dict):
                flat.append(str(item.get("name") or item.get("description") or ""))
            else:
                flat.append(str(item))
        return [i for i in flat if i]


class ReceiptFields(BaseModel):
    """Normalised extraction result (what the API reports back as ``data``)."""
    merchant_name: str
    amount: float
    date: str = Field(..., description="YYYY-MM-DD")
    category: str


# ---------------------------------------------------------------------------
# Receipt endpoints
# ---------------------------------------------------------------------------

class ProcessReceiptRequest(CamelModel):
    image_url: str = Field(..., alias="imageUrl")
    user_id: str = Field(..., alias="userId")


class ProcessReceiptResponse(BaseModel):
    success: bool = True
    data: ReceiptFields
    receipt: dict


class CategoryUpdate(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)


class CategoryResponse(BaseModel):
    id: str
    name: str
    emoji: str
    is_default: bool
