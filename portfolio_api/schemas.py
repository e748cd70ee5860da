"""
Pydantic schemas for the portfolio API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, StrictInt, StringConstraints

# Required text: surrounding whitespace is dropped and nothing may remain empty.
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    token: str


class ProjectPayload(BaseModel):
    title: RequiredText
    description: RequiredText
    full_description: Optional[str] = None
    academic_track: Optional[str] = None
    students: Optional[str] = None
    mentor: Optional[str] = None
    youtube_url: Optional[str] = None
    image: Optional[str] = None
    live: Optional[str] = None
    github: Optional[str] = None
    # Skill ids to link, in display order.
    technologies: list[int] = Field(default_factory=list)

    def project_fields(self) -> dict:
        return self.model_dump(exclude={"technologies"})


class TechnologyRef(BaseModel):
    id: int
    name: str


class _ProjectBase(BaseModel):
    id: int
    title: str
    description: str
    full_description: Optional[str] = None
    academic_track: Optional[str] = None
    students: Optional[str] = None
    mentor: Optional[str] = None
    youtube_url: Optional[str] = None
    image: Optional[str] = None
    live: Optional[str] = None
    github: Optional[str] = None
    rating_count: int = 0
    average_rating: float = 0


class ProjectSummary(_ProjectBase):
    technologies: list[str] = Field(default_factory=list)


class ProjectDetail(_ProjectBase):
    technologies: list[TechnologyRef] = Field(default_factory=list)


class ProjectCreated(BaseModel):
    message: str
    id: int


class StatusMessage(BaseModel):
    message: str


class SkillCreate(BaseModel):
    name: RequiredText
    category: Optional[str] = None


class SkillSummary(BaseModel):
    name: str
    category: Optional[str] = None


class SkillResponse(BaseModel):
    id: int
    name: str
    category: Optional[str] = None


class AboutSkillResponse(BaseModel):
    id: int
    type: str
    skill_id: int
    name: str


class MessageCreate(BaseModel):
    sender_name: RequiredText
    sender_email: RequiredText
    message: RequiredText


class MessageCreated(BaseModel):
    message: str
    id: int


class MessageResponse(BaseModel):
    id: int
    sender_name: str
    sender_email: str
    message: str
    sent_at: datetime


class MessagesDeleted(BaseModel):
    message: str
    deleted: int


class RatingCreate(BaseModel):
    project_id: StrictInt
    rating: StrictInt = Field(..., ge=1, le=5)


class RatingCreated(BaseModel):
    message: str
    id: int


class RatingSummaryResponse(BaseModel):
    count: int
    average: float


class SecureDataResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
