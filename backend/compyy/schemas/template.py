"""
Compyy Backend — Template Marketplace Schemas
===============================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from compyy.schemas.common import AuthorSummary, CamelModel, Pagination


class TemplateCreate(CamelModel):
    title: str = Field(max_length=200)
    description: str = Field(max_length=5000)
    type: str = "JEOPARDY"
    data: Any
    preview_image: Optional[str] = Field(default=None, max_length=500)
    tags: List[str] = Field(default_factory=list, max_length=20)
    difficulty: Optional[str] = Field(default=None, max_length=20)
    grade_level: Optional[str] = Field(default=None, max_length=50)
    subject: Optional[str] = Field(default=None, max_length=100)


class TemplateFromGame(CamelModel):
    game_id: uuid.UUID
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)


class TemplateDownloadRequest(CamelModel):
    template_id: uuid.UUID


class ApplyTemplateRequest(CamelModel):
    """Apply to an existing owned game (`gameId`) or create a new game."""

    game_id: Optional[uuid.UUID] = None
    title: Optional[str] = Field(default=None, max_length=200)


class TemplateResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: str
    type: str
    preview_image: Optional[str] = None
    tags: List[str]
    difficulty: Optional[str] = None
    grade_level: Optional[str] = None
    subject: Optional[str] = None
    downloads: int
    is_featured: bool
    is_public: bool
    created_at: datetime
    updated_at: datetime
    author: Optional[AuthorSummary] = None
    data: Optional[Dict[str, Any]] = None


class TemplateListResponse(CamelModel):
    templates: List[TemplateResponse]
    total: int
    limit: int
    offset: int


class MyTemplateItem(TemplateResponse):
    is_owner: bool
    is_downloaded: bool


class MyTemplateListResponse(CamelModel):
    templates: List[MyTemplateItem]
    pagination: Pagination


class TemplateDownloadResponse(CamelModel):
    template: TemplateResponse
    already_downloaded: bool
    message: str
