"""
Pydantic schemas for delivery receipts.
"""
from typing import List, Optional
from pydantic import Field

from .common import DocumentFields, LineItem


class ReceiptFields(DocumentFields):
    address: Optional[str] = Field(None, max_length=300)
    address_title: Optional[str] = Field(None, max_length=120)
    attention: Optional[str] = Field(None, max_length=120)
    project_code: Optional[str] = Field(None, max_length=60)
    work_location: Optional[str] = Field(None, max_length=200)
    company_number: Optional[str] = Field(None, max_length=60)
    additional_text: Optional[str] = Field(None, max_length=2000)
    items: Optional[List[LineItem]] = Field(None, max_length=200)


class ReceiptCreate(ReceiptFields):
    to: str = Field(..., min_length=1, max_length=200, description="Receiving party")
    created_by: Optional[str] = Field(None, description="Creator email/ID")


class ReceiptUpdate(ReceiptFields):
    to: Optional[str] = Field(None, min_length=1, max_length=200)
