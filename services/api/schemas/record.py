"""
Response/request schemas shared by every document type router.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ArtifactOut(BaseModel):
    """Composition metadata for the generated PDF."""
    filename: str
    page_count: int = Field(..., ge=0)
    pages: Dict[str, int] = Field(default_factory=dict, description="generated / attachment / static / total")
    merged: bool = False
    merge_error: Optional[str] = None
    template: Optional[str] = None
    template_version: Optional[int] = None
    language: Optional[str] = None
    generated_at: Optional[str] = None


class RecordOut(BaseModel):
    """A stored record: system fields plus the document type's own fields."""
    model_config = ConfigDict(extra="allow")

    id: str
    document_number: str
    created_by: Optional[str] = None
    created_at: str
    updated_at: str
    language: str = "en"
    artifact: Optional[ArtifactOut] = None


class RecordResponse(BaseModel):
    """
    Result of create/update/regenerate.

    outcome: "ok"       - document fully generated
             "degraded" - record saved, document is the unmerged base (see artifact.merge_error)
    Failures never produce this body; they come back as error statuses.
    """
    record: RecordOut
    artifact: Optional[ArtifactOut] = None
    outcome: str = Field(..., pattern=r"^(ok|degraded)$")
    warning: Optional[str] = None
    warning_code: Optional[str] = Field(None, description="merge_degraded when outcome is degraded")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RecordList(BaseModel):
    records: List[RecordOut]
    pagination: Pagination


class NextNumberOut(BaseModel):
    sequence: str
    next_number: str


class SequenceResetIn(BaseModel):
    value: int = Field(0, ge=0, description="Counter value after reset (next number is value + 1)")
    clear_records: bool = Field(True, description="Also delete every record of this type")


class SequenceResetOut(BaseModel):
    sequence: str
    value: int
    deleted_records: int
    next_number: str


class DeleteOut(BaseModel):
    deleted: bool = True
    id: str
    document_number: str
    removed_files: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
