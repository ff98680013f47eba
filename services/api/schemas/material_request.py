"""
Pydantic schemas for internal material requests.
"""
from typing import List, Optional
from pydantic import Field

from .common import DocumentFields, LineItem


class MaterialRequestFields(DocumentFields):
    department: Optional[str] = Field(None, max_length=120)
    project_name: Optional[str] = Field(None, max_length=200)
    required_date: Optional[str] = None
    priority: Optional[str] = Field(None, pattern=r"^(low|normal|high|urgent)$")
    items: Optional[List[LineItem]] = Field(None, max_length=200)


class MaterialRequestCreate(MaterialRequestFields):
    requester: str = Field(..., min_length=1, max_length=120)
    created_by: Optional[str] = Field(None, description="Creator email/ID")


class MaterialRequestUpdate(MaterialRequestFields):
    requester: Optional[str] = Field(None, min_length=1, max_length=120)
