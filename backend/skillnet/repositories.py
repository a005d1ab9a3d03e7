"""Repository classes encapsulating database operations.

Each aggregate (accounts, projects, refresh tokens, conversations,
feedback) gets a narrow interface declared as a `Protocol` and a
SQLModel-backed repository implementing it. Services depend on the
interface only, so tests can hand them an in-memory fake. Repositories
return SQLModel objects and perform commits/refreshes where appropriate.
"""

from typing import List, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select, col

from . import models
from .errors import DuplicateAccount
from .filters import FilterCriteria, PROJECT_FIELDS, USER_FIELDS, apply_criteria


class AccountStore(Protocol):
    def get(self, user_id: int) -> Optional[models.User]: ...
    def get_by_email(self, email: str) -> Optional[models.User]: ...
    def create(self, user: models.User) -> models.User: ...
    def save(self, user: models.User) -> models.User: ...
    def delete(self, user: models.User) -> None: ...
    def search(self, criteria: FilterCriteria) -> List[models.User]: ...
    def list_by_skill(self, skill_name: str) -> List[models.User]: ...
    def get_skill(self, user_id: int, skill_name: str) -> Optional[models.UserSkill]: ...
    def save_skill(self, skill: models.UserSkill) -> models.UserSkill: ...
    def delete_skill(self, skill: models.UserSkill) -> None: ...
    def record_view(self, view: models.ProfileView) -> None: ...
    def count_views(self, profile_id: int) -> int: ...


class ProjectStore(Protocol):
    def get(self, project_id: int) -> Optional[models.Project]: ...
    def list(self, criteria: FilterCriteria) -> List[models.Project]: ...
    def list_by_user(self, user_id: int) -> List[models.Project]: ...
    def count_by_user(self, user_id: int) -> int: ...
    def create(self, project: models.Project) -> models.Project: ...
    def save(self, project: models.Project) -> models.Project: ...
    def delete(self, project: models.Project) -> None: ...


class RefreshTokenStore(Protocol):
    def add(self, token: models.RefreshToken) -> models.RefreshToken: ...
    def get_by_hash(self, token_hash: str) -> Optional[models.RefreshToken]: ...
    def save(self, token: models.RefreshToken) -> models.RefreshToken: ...


class ConversationStore(Protocol):
    def create(self, conversation: models.Conversation, user_ids: List[int]) -> models.Conversation: ...
    def get(self, conversation_id: int) -> Optional[models.Conversation]: ...
    def is_participant(self, conversation_id: int, user_id: int) -> bool: ...
    def list_for_user(self, user_id: int) -> List[models.Conversation]: ...
    def list_messages(self, conversation_id: int) -> List[models.Message]: ...
    def last_message(self, conversation_id: int) -> Optional[models.Message]: ...
    def add_message(self, conversation: models.Conversation, message: models.Message) -> models.Message: ...
    def mark_read(self, conversation_id: int, reader_id: int) -> int: ...


class FeedbackStore(Protocol):
    def add(self, feedback: models.Feedback) -> models.Feedback: ...


def _project_query():
    return select(models.Project).options(
        selectinload(models.Project.user).selectinload(models.User.skills)
    )


class UserRepository:
    """Account, skill and profile-view persistence (implements `AccountStore`)."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by normalized email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance.

        A unique-email violation (e.g. a concurrent registration) is
        reported as `DuplicateAccount`.
        """
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateAccount()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user: models.User) -> None:
        self.session.delete(user)
        self.session.commit()

    def search(self, criteria: FilterCriteria) -> List[models.User]:
        """Users matching `criteria`, newest first, with skills loaded."""
        stmt = select(models.User).options(selectinload(models.User.skills))
        return self.session.exec(apply_criteria(stmt, criteria, USER_FIELDS)).all()

    def list_by_skill(self, skill_name: str) -> List[models.User]:
        """Users having a skill named `skill_name` (case-insensitive)."""
        stmt = (
            select(models.User)
            .options(selectinload(models.User.skills))
            .where(models.User.skills.any(models.UserSkill.skill_key == models.skill_key(skill_name)))
            .order_by(col(models.User.created_at).desc(), col(models.User.id).desc())
        )
        return self.session.exec(stmt).all()

    def get_skill(self, user_id: int, skill_name: str) -> Optional[models.UserSkill]:
        stmt = select(models.UserSkill).where(
            models.UserSkill.user_id == user_id,
            models.UserSkill.skill_key == models.skill_key(skill_name)
        )
        return self.session.exec(stmt).first()

    def save_skill(self, skill: models.UserSkill) -> models.UserSkill:
        skill.skill_key = models.skill_key(skill.skill_name)
        self.session.add(skill)
        self.session.commit()
        self.session.refresh(skill)
        return skill

    def delete_skill(self, skill: models.UserSkill) -> None:
        self.session.delete(skill)
        self.session.commit()

    def record_view(self, view: models.ProfileView) -> None:
        self.session.add(view)
        self.session.commit()

    def count_views(self, profile_id: int) -> int:
        stmt = select(func.count(models.ProfileView.id)).where(models.ProfileView.profile_id == profile_id)
        return self.session.exec(stmt).one()


class ProjectRepository:
    """Project persistence (implements `ProjectStore`).

    Every read loads the owner and the owner's skills so the project DTO
    can be built without further queries.
    """
    def __init__(self, session: Session):
        self.session = session

    def get(self, project_id: int) -> Optional[models.Project]:
        stmt = _project_query().where(models.Project.id == project_id)
        return self.session.exec(stmt).first()

    def list(self, criteria: FilterCriteria) -> List[models.Project]:
        return self.session.exec(apply_criteria(_project_query(), criteria, PROJECT_FIELDS)).all()

    def list_by_user(self, user_id: int) -> List[models.Project]:
        stmt = _project_query().where(models.Project.user_id == user_id).order_by(*PROJECT_FIELDS.order_by)
        return self.session.exec(stmt).all()

    def count_by_user(self, user_id: int) -> int:
        stmt = select(func.count(models.Project.id)).where(models.Project.user_id == user_id)
        return self.session.exec(stmt).one()

    def create(self, project: models.Project) -> models.Project:
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        return self.get(project.id)

    def save(self, project: models.Project) -> models.Project:
        self.session.add(project)
        self.session.commit()
        return self.get(project.id)

    def delete(self, project: models.Project) -> None:
        self.session.delete(project)
        self.session.commit()


class RefreshTokenRepository:
    """Persisted refresh tokens, looked up by token hash."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, token: models.RefreshToken) -> models.RefreshToken:
        self.session.add(token)
        self.session.commit()
        self.session.refresh(token)
        return token

    def get_by_hash(self, token_hash: str) -> Optional[models.RefreshToken]:
        stmt = select(models.RefreshToken).where(models.RefreshToken.token_hash == token_hash)
        return self.session.exec(stmt).first()

    def save(self, token: models.RefreshToken) -> models.RefreshToken:
        self.session.add(token)
        self.session.commit()
        self.session.refresh(token)
        return token


class ConversationRepository:
    """Conversations, their participants and messages."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, conversation: models.Conversation, user_ids: List[int]) -> models.Conversation:
        """Store a conversation and one participant row per user id."""
        self.session.add(conversation)
        self.session.commit()
        self.session.refresh(conversation)
        for uid in user_ids:
            self.session.add(models.ConversationParticipant(conversation_id=conversation.id, user_id=uid))
        self.session.commit()
        return self.get(conversation.id)

    def get(self, conversation_id: int) -> Optional[models.Conversation]:
        stmt = (
            select(models.Conversation)
            .options(selectinload(models.Conversation.participants).selectinload(models.ConversationParticipant.user))
            .where(models.Conversation.id == conversation_id)
        )
        return self.session.exec(stmt).first()

    def is_participant(self, conversation_id: int, user_id: int) -> bool:
        stmt = select(models.ConversationParticipant.id).where(
            models.ConversationParticipant.conversation_id == conversation_id,
            models.ConversationParticipant.user_id == user_id
        )
        return self.session.exec(stmt).first() is not None

    def list_for_user(self, user_id: int) -> List[models.Conversation]:
        """Conversations `user_id` takes part in, most recently active first."""
        stmt = (
            select(models.Conversation)
            .options(selectinload(models.Conversation.participants).selectinload(models.ConversationParticipant.user))
            .where(models.Conversation.participants.any(models.ConversationParticipant.user_id == user_id))
            .order_by(col(models.Conversation.updated_at).desc(), col(models.Conversation.id).desc())
        )
        return self.session.exec(stmt).all()

    def list_messages(self, conversation_id: int) -> List[models.Message]:
        stmt = (
            select(models.Message)
            .options(selectinload(models.Message.sender))
            .where(models.Message.conversation_id == conversation_id)
            .order_by(col(models.Message.sent_at), col(models.Message.id))
        )
        return self.session.exec(stmt).all()

    def last_message(self, conversation_id: int) -> Optional[models.Message]:
        stmt = (
            select(models.Message)
            .options(selectinload(models.Message.sender))
            .where(models.Message.conversation_id == conversation_id)
            .order_by(col(models.Message.sent_at).desc(), col(models.Message.id).desc())
            .limit(1)
        )
        return self.session.exec(stmt).first()

    def add_message(self, conversation: models.Conversation, message: models.Message) -> models.Message:
        """Store `message` and bump the conversation's `updated_at` to its send time."""
        conversation.updated_at = message.sent_at
        self.session.add(conversation)
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message

    def mark_read(self, conversation_id: int, reader_id: int) -> int:
        """Mark unread messages from other senders as read; return how many changed."""
        stmt = select(models.Message).where(
            models.Message.conversation_id == conversation_id,
            models.Message.sender_id != reader_id,
            col(models.Message.is_read).is_(False)
        )
        unread = self.session.exec(stmt).all()
        for m in unread:
            m.is_read = True
            self.session.add(m)
        self.session.commit()
        return len(unread)


class FeedbackRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, feedback: models.Feedback) -> models.Feedback:
        self.session.add(feedback)
        self.session.commit()
        self.session.refresh(feedback)
        return feedback
