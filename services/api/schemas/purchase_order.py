"""
Pydantic schemas for purchase orders.
"""
from typing import List, Optional
from pydantic import Field

from .common import DocumentFields, LineItem


class PurchaseOrderFields(DocumentFields):
    supplier_address: Optional[str] = Field(None, max_length=300)
    supplier_phone: Optional[str] = Field(None, max_length=50)
    supplier_email: Optional[str] = Field(None, max_length=120)
    receiver_name: Optional[str] = Field(None, max_length=120)
    receiver_phone: Optional[str] = Field(None, max_length=50)
    delivery_date: Optional[str] = None
    delivery_location: Optional[str] = Field(None, max_length=300)
    payment_terms: Optional[str] = Field(None, max_length=300)
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    items: Optional[List[LineItem]] = Field(None, max_length=200)


class PurchaseOrderCreate(PurchaseOrderFields):
    """Schema for creating a purchase order."""
    supplier: str = Field(..., min_length=1, max_length=200)
    created_by: Optional[str] = Field(None, description="Creator email/ID")


class PurchaseOrderUpdate(PurchaseOrderFields):
    """Partial update: only fields that are sent are changed."""
    supplier: Optional[str] = Field(None, min_length=1, max_length=200)
