"""Pydantic schemas for POST /api/generate (idea generation)."""

from pydantic import BaseModel, Field


class Idea(BaseModel):
    """A single generated idea."""

    title: str = Field(..., description="Short, creative title for the idea")
    description: str = Field(..., description="Brief (2-3 sentence) description of the idea")


class GenerateIdeasRequest(BaseModel):
    """Request body for POST /api/generate."""

    topic: str = Field("", description="Topic to brainstorm about")


class GenerateIdeasResponse(BaseModel):
    """Response for POST /api/generate."""

    ideas: list[Idea]
