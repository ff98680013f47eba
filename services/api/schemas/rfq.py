"""
Pydantic schemas for requests for quotation (RFQ).
"""
from typing import List, Optional
from pydantic import Field

from .common import DocumentFields, LineItem


class RfqFields(DocumentFields):
    supplier_contact: Optional[str] = Field(None, max_length=120)
    supplier_email: Optional[str] = Field(None, max_length=120)
    project_name: Optional[str] = Field(None, max_length=200)
    response_deadline: Optional[str] = None
    items: Optional[List[LineItem]] = Field(None, max_length=200)


class RfqCreate(RfqFields):
    supplier: str = Field(..., min_length=1, max_length=200)
    created_by: Optional[str] = Field(None, description="Creator email/ID")


class RfqUpdate(RfqFields):
    supplier: Optional[str] = Field(None, min_length=1, max_length=200)
