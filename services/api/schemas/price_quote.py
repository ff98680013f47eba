"""
Pydantic schemas for price quotes.
"""
from typing import List, Optional
from pydantic import Field

from .common import DocumentFields, LineItem


class PriceQuoteFields(DocumentFields):
    client_phone: Optional[str] = Field(None, max_length=50)
    client_address: Optional[str] = Field(None, max_length=300)
    client_city: Optional[str] = Field(None, max_length=100)
    project_name: Optional[str] = Field(None, max_length=200)
    rev_number: Optional[str] = Field(None, max_length=10, description="Revision shown in the header")
    valid_for_days: Optional[int] = Field(None, ge=1, le=365)
    include_tax: Optional[bool] = None
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    items: Optional[List[LineItem]] = Field(None, max_length=200)
    custom_notes: Optional[List[str]] = Field(None, max_length=50)


class PriceQuoteCreate(PriceQuoteFields):
    """Schema for creating a price quote."""
    client_name: str = Field(..., min_length=1, max_length=200)
    created_by: Optional[str] = Field(None, description="Creator email/ID")


class PriceQuoteUpdate(PriceQuoteFields):
    client_name: Optional[str] = Field(None, min_length=1, max_length=200)
