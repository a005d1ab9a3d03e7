"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. JSON keys are camelCase (the frontend's
convention); Python code uses the snake_case field names.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterIn(CamelModel):
    """Payload for account registration."""
    email: str = Field(max_length=256, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=100)


class LoginIn(CamelModel):
    """Payload for the login endpoint."""
    email: str = Field(min_length=1, max_length=256)
    password: str = Field(min_length=1, max_length=128)


class RefreshTokenIn(CamelModel):
    refresh_token: str = Field(min_length=1, max_length=512)


class UserInfo(CamelModel):
    """Account summary embedded in an authentication response."""
    id: int
    name: str
    email: str
    avatar: Optional[str] = None
    rating: float = 0.0


class AuthResponse(CamelModel):
    """Session token, refresh token and the authenticated account."""
    token: str
    refresh_token: str
    expiration: datetime
    user: UserInfo


class UserSkillOut(CamelModel):
    skill_name: str
    proficiency_level: int


class Location(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str = Field(default="", max_length=200)


class UserOut(CamelModel):
    """Public representation of an account."""
    id: int
    email: str
    name: str
    avatar: Optional[str] = None
    rating: float = 0.0
    skills: List[UserSkillOut] = []
    location: Optional[Location] = None
    created_at: datetime


class UserProfileOut(UserOut):
    """Account representation with profile statistics."""
    project_count: int = 0
    profile_views: int = 0


class UpdateProfileIn(CamelModel):
    name: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=500)
    location: Optional[Location] = None


class AddSkillIn(CamelModel):
    skill_name: str = Field(min_length=1, max_length=100)
    proficiency_level: int = Field(default=1, ge=1, le=5)


class ProjectOut(CamelModel):
    """A project with its owner."""
    id: int
    title: str
    description: str
    category: str
    technology: str
    domain: str
    tech_stack: List[str] = []
    github_link: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserOut] = None


class ProjectCreateIn(CamelModel):
    """Request format for creating a project."""
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=1000)
    category: str = Field(min_length=1, max_length=50)
    technology: str = Field(min_length=1, max_length=50)
    domain: str = Field(min_length=1, max_length=50)
    tech_stack: List[str] = []
    github_link: Optional[str] = Field(default=None, max_length=500)


class ProjectUpdateIn(CamelModel):
    """Partial update; omitted or empty fields keep their value."""
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=50)
    technology: Optional[str] = Field(default=None, max_length=50)
    domain: Optional[str] = Field(default=None, max_length=50)
    tech_stack: Optional[List[str]] = None
    github_link: Optional[str] = Field(default=None, max_length=500)


class ParticipantOut(CamelModel):
    id: int
    name: str
    avatar: Optional[str] = None


class MessageOut(CamelModel):
    id: int
    conversation_id: int
    sender_id: int
    sender_name: Optional[str] = None
    content: str
    is_read: bool
    sent_at: datetime


class ConversationOut(CamelModel):
    id: int
    title: Optional[str] = None
    participants: List[ParticipantOut] = []
    last_message: Optional[MessageOut] = None
    created_at: datetime
    updated_at: datetime


class ConversationCreateIn(CamelModel):
    """Start a conversation with the listed users."""
    participant_ids: List[int] = Field(min_length=1)
    title: Optional[str] = Field(default=None, max_length=200)


class MessageIn(CamelModel):
    content: str = Field(min_length=1, max_length=2000)


class ReadReceiptOut(CamelModel):
    marked_read: int


class FeedbackIn(CamelModel):
    """Contact form submission."""
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=200, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, max_length=20)
    company: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = Field(default=None, max_length=100)
    github: Optional[str] = Field(default=None, max_length=500)
    subject: str = Field(min_length=1, max_length=200)
    urgency: Literal["Low", "Normal", "High", "Critical"] = "Normal"
    feedback_type: Literal["General", "Bug Report", "Feature Request", "Other"] = "General"
    message: str = Field(min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    message: str
