"""
Compyy Backend — Shared Pydantic Schemas
==========================================

What:  Base model and envelope types shared by every API module.

Wire format:
    Resource payloads use camelCase keys (`firstName`, `isPublic`,
    `avgRating`) to match the web client; requests accept either camelCase
    or snake_case. Error bodies keep the snake_case envelope produced by
    the global exception handlers.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API resources: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str
    success: bool = True


class Pagination(CamelModel):
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    pages: int = Field(ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)


class AuthorSummary(CamelModel):
    """Public face of a user attached to games, templates and ratings."""

    id: uuid.UUID
    name: str = Field(description="First/last name, else username, else 'Anonymous'")
    username: Optional[str] = None
    profile_image: Optional[str] = None


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Password must be at least 6 characters long",
            "details": {"field": "password"},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    email: str = Field(description="Email provider: available, log_only, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
