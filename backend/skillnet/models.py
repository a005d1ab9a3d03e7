"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where the services
need to load associations together (account skills, project owner).
Deletion rules live on the foreign keys so the store enforces them.
"""

from typing import List, Optional
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def skill_key(name: str) -> str:
    """Case-folded skill name used for lookups and uniqueness."""
    return (name or '').strip().casefold()


class User(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique, stored lower-cased so uniqueness is case-insensitive
    - `password_hash`: hashed password string (never store plaintext)
    - `rating`: informational aggregate, not computed by this service
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True, max_length=256)
    name: str = Field(max_length=100)
    password_hash: str
    avatar: Optional[str] = Field(default=None, max_length=500)
    rating: float = Field(default=0.0, index=True)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    skills: List['UserSkill'] = Relationship(back_populates='user', cascade_delete=True)
    projects: List['Project'] = Relationship(back_populates='user', cascade_delete=True)


class UserSkill(SQLModel, table=True):
    """A named skill with a 1-5 proficiency level attached to a `User`.

    `skill_key` is the case-folded name and carries the uniqueness rule, so
    "Go" and "go" (or "Ökonomie" and "ökonomie") are the same skill.
    """
    __table_args__ = (UniqueConstraint('user_id', 'skill_key'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', ondelete='CASCADE', index=True)
    skill_name: str = Field(max_length=100)
    skill_key: str = Field(index=True, max_length=200)
    proficiency_level: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    user: Optional[User] = Relationship(back_populates='skills')


class Project(SQLModel, table=True):
    """A project showcased by its owning `User`.

    `tech_stack` holds a JSON array of free-text tags.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=200)
    description: str = Field(max_length=1000)
    category: str = Field(index=True, max_length=50)
    technology: str = Field(index=True, max_length=50)
    domain: str = Field(index=True, max_length=50)
    tech_stack: str = Field(default='[]', max_length=500)
    github_link: Optional[str] = Field(default=None, max_length=500)
    user_id: int = Field(foreign_key='user.id', ondelete='CASCADE', index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    user: Optional[User] = Relationship(back_populates='projects')


class RefreshToken(SQLModel, table=True):
    """A persisted refresh token.

    Only an HMAC of the token value is stored; `revoked_at` is set when the
    token is rotated or explicitly revoked.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    token_hash: str = Field(index=True, unique=True, max_length=64)
    user_id: int = Field(foreign_key='user.id', ondelete='CASCADE', index=True)
    issued_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    revoked_at: Optional[datetime] = None


class Conversation(SQLModel, table=True):
    """A message thread between two or more users."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    participants: List['ConversationParticipant'] = Relationship(back_populates='conversation', cascade_delete=True)
    messages: List['Message'] = Relationship(back_populates='conversation', cascade_delete=True)


class ConversationParticipant(SQLModel, table=True):
    __table_args__ = (UniqueConstraint('conversation_id', 'user_id'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key='conversation.id', ondelete='CASCADE', index=True)
    user_id: int = Field(foreign_key='user.id', ondelete='CASCADE', index=True)
    joined_at: datetime = Field(default_factory=utcnow)
    conversation: Optional[Conversation] = Relationship(back_populates='participants')
    user: Optional[User] = Relationship()


class Message(SQLModel, table=True):
    """A single message posted to a `Conversation`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key='conversation.id', ondelete='CASCADE', index=True)
    sender_id: int = Field(foreign_key='user.id', ondelete='CASCADE')
    content: str = Field(max_length=2000)
    is_read: bool = False
    sent_at: datetime = Field(default_factory=utcnow, index=True)
    conversation: Optional[Conversation] = Relationship(back_populates='messages')
    sender: Optional[User] = Relationship()


class Feedback(SQLModel, table=True):
    """Feedback submitted through the public contact form."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    company: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = Field(default=None, max_length=100)
    github: Optional[str] = Field(default=None, max_length=500)
    subject: str = Field(max_length=200)
    urgency: str = Field(default='Normal', index=True, max_length=20)
    feedback_type: str = Field(default='General', index=True, max_length=50)
    message: str = Field(max_length=2000)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class ProfileView(SQLModel, table=True):
    """A recorded visit to a profile.

    `viewer_id` is None for anonymous visits and is nulled when the viewer's
    account is deleted; the row goes away with the viewed profile.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    viewer_id: Optional[int] = Field(default=None, foreign_key='user.id', ondelete='SET NULL')
    profile_id: int = Field(foreign_key='user.id', ondelete='CASCADE', index=True)
    viewed_at: datetime = Field(default_factory=utcnow, index=True)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=500)
