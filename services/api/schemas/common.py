"""
Shared pieces of the per-document-type schemas.
"""
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.naming import normalize_language


class LineItem(BaseModel):
    """One row of an items table."""
    model_config = ConfigDict(extra="forbid")

    description: str = Field(..., min_length=1, max_length=500)
    unit: Optional[str] = Field(None, max_length=30)
    quantity: float = Field(1, ge=0)
    unit_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=300)


class DocumentFields(BaseModel):
    """Fields every document type accepts."""
    model_config = ConfigDict(extra="forbid")

    date: Optional[str] = Field(None, description="Issue date (YYYY-MM-DD); defaults to today")
    language: Optional[str] = Field(None, description="ar / en; detected from the content when omitted")
    notes: Optional[str] = Field(None, max_length=2000)
    include_static_appendix: Optional[bool] = Field(
        None, description="Append the fixed terms-and-conditions document"
    )

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        normalized = normalize_language(v)
        if normalized is None:
            raise ValueError(f"language must be 'ar' or 'en', got {v!r}")
        return normalized


def round2(value: float) -> float:
    return round(float(value), 2)


def priced_items(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy of `items` with a line `total` (quantity x unit_price) on each row."""
    rows = []
    for item in items:
        row = dict(item)
        if row.get("unit_price") is not None:
            row["total"] = round2(float(row.get("quantity") or 0) * float(row["unit_price"]))
        else:
            row["total"] = None
        rows.append(row)
    return rows


def calculate_totals(
    items: Iterable[Dict[str, Any]],
    tax_rate: Optional[float] = 0,
    include_tax: bool = True,
) -> Dict[str, float]:
    subtotal = sum(float(i.get("total") or 0) for i in items)
    tax_amount = subtotal * float(tax_rate or 0) / 100 if include_tax else 0.0
    return {
        "subtotal": round2(subtotal),
        "tax_amount": round2(tax_amount),
        "total": round2(subtotal + tax_amount),
    }
