"""Request bodies of the analysis and editing routes."""

from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class AnalysisTriggerRequest(CamelModel):
    full_rescan: bool = False


class EditCreateRequest(CamelModel):
    element_id: str
    new_value: str


class EditUpdateRequest(CamelModel):
    new_value: str


class EditStatusRequest(CamelModel):
    status: str
    override: bool = False


class PublishEditItem(CamelModel):
    element_id: str
    new_value: str
    original_value: Optional[str] = None
    edit_id: Optional[str] = None


class PublishRequest(CamelModel):
    edits: List[PublishEditItem] = Field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
