"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and map ORM rows to response schemas. Services are intentionally thin:
they perform validation, execute domain logic and persist aggregates via
the repository interfaces in `skillnet.repositories`. Failures are raised
as `skillnet.errors` exceptions; the caller's identity arrives as an
explicit `Principal` argument.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import jwt
from passlib.context import CryptContext

from . import models, schemas
from .models import utcnow
from .config import Settings, settings as default_settings
from .errors import (
    DuplicateAccount,
    Forbidden,
    InvalidCredentials,
    NotFound,
    NotImplementedCapability,
    ValidationError,
)
from .filters import FilterCriteria
from .repositories import AccountStore, ConversationStore, FeedbackStore, ProjectStore, RefreshTokenStore

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
# Verified against when the email is unknown so both login failures cost the same.
_DUMMY_HASH = PWD_CTX.hash("skillnet_timing_dummy")
_TECH_STACK_MAX = 500

auth_logger = logging.getLogger("skillnet.auth")
logger = logging.getLogger("skillnet.services")

Clock = Callable[[], datetime]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, resolved once per request."""
    id: int
    name: str
    email: str


# ---------------------------------------------------------------------------
# Credentials and tokens
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def password_problems(password: str, config: Settings) -> List[str]:
    """Return every reason the password policy rejects `password`."""
    problems = []
    if len(password) < config.PASSWORD_MIN_LENGTH:
        problems.append(f"Passwords must be at least {config.PASSWORD_MIN_LENGTH} characters.")
    if config.PASSWORD_REQUIRE_NON_ALPHANUMERIC and all(c.isalnum() for c in password):
        problems.append("Passwords must have at least one non alphanumeric character.")
    if config.PASSWORD_REQUIRE_DIGIT and not any('0' <= c <= '9' for c in password):
        problems.append("Passwords must have at least one digit ('0'-'9').")
    if config.PASSWORD_REQUIRE_LOWERCASE and not any('a' <= c <= 'z' for c in password):
        problems.append("Passwords must have at least one lowercase ('a'-'z').")
    if config.PASSWORD_REQUIRE_UPPERCASE and not any('A' <= c <= 'Z' for c in password):
        problems.append("Passwords must have at least one uppercase ('A'-'Z').")
    return problems


def create_session_token(user: models.User, issued_at: datetime, expires_at: datetime, config: Settings) -> str:
    """Encode a signed session JWT for `user`.

    Claims: `sub` (account id), `name`, `email`, a fresh `jti`, issuer and
    audience from settings, `iat` and `exp`.
    """
    payload = {
        "sub": str(user.id),
        "name": user.name,
        "email": user.email,
        "jti": uuid.uuid4().hex,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_session_token(token: str, config: Settings = default_settings) -> dict:
    """Verify signature, expiry, issuer and audience; return the claims.

    Raises `jwt.PyJWTError` subclasses on any failure.
    """
    return jwt.decode(
        token,
        config.JWT_SECRET,
        algorithms=[config.JWT_ALGORITHM],
        audience=config.JWT_AUDIENCE,
        issuer=config.JWT_ISSUER,
        options={"require": ["exp", "sub", "iss", "aud"]},
    )


def generate_refresh_token() -> str:
    """32 cryptographically random bytes, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def hash_refresh_token(token: str, config: Settings) -> str:
    """HMAC-SHA256(JWT secret, token) as hex; only this form is stored."""
    return hmac.new(config.JWT_SECRET.encode(), token.encode(), hashlib.sha256).hexdigest()


class AuthService:
    """Authentication related operations (register, login, session issuance).

    Refresh tokens are persisted when a `refresh_tokens` store is given.
    Without one, refreshing is reported as not implemented and revoking is
    a no-op.
    """
    def __init__(
        self,
        users: AccountStore,
        refresh_tokens: Optional[RefreshTokenStore] = None,
        config: Settings = default_settings,
        clock: Clock = utcnow,
    ):
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.config = config
        self.clock = clock

    def _now(self) -> datetime:
        # whole seconds: JWT `exp` cannot carry microseconds
        return as_utc(self.clock()).replace(microsecond=0)

    def register(self, email: str, password: str, name: str) -> schemas.AuthResponse:
        """Create a new account with a hashed password and start a session."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required")
        if self.users.get_by_email(email) is not None:
            auth_logger.info("register_rejected reason=duplicate_email")
            raise DuplicateAccount()
        problems = password_problems(password or "", self.config)
        if problems:
            raise ValidationError(", ".join(problems))
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        now = self._now()
        user = models.User(
            email=email,
            name=name,
            password_hash=PWD_CTX.hash(password),
            created_at=now,
            updated_at=now,
        )
        user = self.users.create(user)
        auth_logger.info("account_registered user_id=%s", user.id)
        return self.issue_session(user)

    def login(self, email: str, password: str) -> schemas.AuthResponse:
        """Verify credentials and start a session.

        Unknown email and wrong password raise the same `InvalidCredentials`.
        """
        user = self.users.get_by_email(normalize_email(email))
        if user is None:
            PWD_CTX.verify(password, _DUMMY_HASH)
            auth_logger.warning("login_failed reason=credentials")
            raise InvalidCredentials()
        if not PWD_CTX.verify(password, user.password_hash):
            auth_logger.warning("login_failed reason=credentials")
            raise InvalidCredentials()
        auth_logger.info("login_succeeded user_id=%s", user.id)
        return self.issue_session(user)

    def issue_session(self, user: models.User) -> schemas.AuthResponse:
        """Sign a session token and mint a refresh token for `user`."""
        issued_at = self._now()
        expiration = issued_at + timedelta(minutes=self.config.JWT_EXPIRE_MINUTES)
        token = create_session_token(user, issued_at, expiration, self.config)
        refresh_token = generate_refresh_token()
        if self.refresh_tokens is not None:
            self.refresh_tokens.add(models.RefreshToken(
                token_hash=hash_refresh_token(refresh_token, self.config),
                user_id=user.id,
                issued_at=issued_at,
                expires_at=issued_at + timedelta(days=self.config.REFRESH_TOKEN_EXPIRE_DAYS),
            ))
        return schemas.AuthResponse(
            token=token,
            refresh_token=refresh_token,
            expiration=expiration,
            user=schemas.UserInfo(
                id=user.id,
                name=user.name,
                email=user.email,
                avatar=user.avatar,
                rating=user.rating,
            ),
        )

    def refresh_session(self, refresh_token: str) -> schemas.AuthResponse:
        """Exchange a valid refresh token for a new session.

        The presented token is revoked (rotation). Unknown, revoked and
        expired tokens all raise `InvalidCredentials`.
        """
        if self.refresh_tokens is None:
            raise NotImplementedCapability("Refresh token functionality not implemented")
        stored = self.refresh_tokens.get_by_hash(hash_refresh_token(refresh_token, self.config))
        now = self._now()
        if stored is None or stored.revoked_at is not None or as_utc(stored.expires_at) <= now:
            auth_logger.warning("refresh_rejected")
            raise InvalidCredentials("Invalid or expired refresh token")
        user = self.users.get(stored.user_id)
        if user is None:
            raise InvalidCredentials("Invalid or expired refresh token")
        stored.revoked_at = now
        self.refresh_tokens.save(stored)
        auth_logger.info("session_refreshed user_id=%s", user.id)
        return self.issue_session(user)

    def revoke_session(self, refresh_token: str) -> None:
        """Revoke a refresh token. Revoking twice is harmless."""
        if self.refresh_tokens is None:
            return
        stored = self.refresh_tokens.get_by_hash(hash_refresh_token(refresh_token, self.config))
        if stored is None:
            raise NotFound("Refresh token not found")
        if stored.revoked_at is None:
            stored.revoked_at = self._now()
            self.refresh_tokens.save(stored)
        auth_logger.info("refresh_token_revoked user_id=%s", stored.user_id)


# ---------------------------------------------------------------------------
# Row -> schema mapping
# ---------------------------------------------------------------------------


def _location(user: models.User) -> Optional[schemas.Location]:
    if user.latitude is None or user.longitude is None:
        return None
    return schemas.Location(lat=user.latitude, lng=user.longitude, address=user.address or "")


def user_dto(user: models.User) -> schemas.UserOut:
    return schemas.UserOut(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        rating=user.rating,
        skills=[
            schemas.UserSkillOut(skill_name=s.skill_name, proficiency_level=s.proficiency_level)
            for s in user.skills
        ],
        location=_location(user),
        created_at=as_utc(user.created_at),
    )


def _load_tech_stack(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def _dump_tech_stack(tags: List[str]) -> str:
    cleaned = [t.strip() for t in tags if t and t.strip()]
    raw = json.dumps(cleaned)
    if len(raw) > _TECH_STACK_MAX:
        raise ValidationError(f"Tech stack must serialize to at most {_TECH_STACK_MAX} characters")
    return raw


def project_dto(project: models.Project) -> schemas.ProjectOut:
    return schemas.ProjectOut(
        id=project.id,
        title=project.title,
        description=project.description,
        category=project.category,
        technology=project.technology,
        domain=project.domain,
        tech_stack=_load_tech_stack(project.tech_stack),
        github_link=project.github_link,
        created_at=as_utc(project.created_at),
        updated_at=as_utc(project.updated_at),
        user=user_dto(project.user) if project.user is not None else None,
    )


def message_dto(message: models.Message) -> schemas.MessageOut:
    return schemas.MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        sender_name=message.sender.name if message.sender is not None else None,
        content=message.content,
        is_read=message.is_read,
        sent_at=as_utc(message.sent_at),
    )


def conversation_dto(conversation: models.Conversation, last: Optional[models.Message]) -> schemas.ConversationOut:
    return schemas.ConversationOut(
        id=conversation.id,
        title=conversation.title,
        participants=[
            schemas.ParticipantOut(id=p.user.id, name=p.user.name, avatar=p.user.avatar)
            for p in conversation.participants
            if p.user is not None
        ],
        last_message=message_dto(last) if last is not None else None,
        created_at=as_utc(conversation.created_at),
        updated_at=as_utc(conversation.updated_at),
    )


# ---------------------------------------------------------------------------
# Accounts, skills and profiles
# ---------------------------------------------------------------------------


class UserService:
    """Profiles, skills, user search and profile-view tracking."""
    def __init__(self, users: AccountStore, projects: ProjectStore, clock: Clock = utcnow):
        self.users = users
        self.projects = projects
        self.clock = clock

    def _require_user(self, user_id: int) -> models.User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def get_profile(self, user_id: int) -> schemas.UserProfileOut:
        user = self._require_user(user_id)
        return schemas.UserProfileOut(
            **user_dto(user).model_dump(),
            project_count=self.projects.count_by_user(user.id),
            profile_views=self.users.count_views(user.id),
        )

    def view_profile(
        self,
        user_id: int,
        viewer: Optional[Principal],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> schemas.UserProfileOut:
        """Return a profile and record the visit (anonymous when `viewer` is None)."""
        profile = self.get_profile(user_id)
        self.users.record_view(models.ProfileView(
            profile_id=user_id,
            viewer_id=viewer.id if viewer is not None else None,
            viewed_at=self.clock(),
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:500] if user_agent else None,
        ))
        return profile

    def update_profile(
        self,
        principal: Principal,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        location: Optional[schemas.Location] = None,
    ) -> schemas.UserProfileOut:
        """Apply the given profile fields; empty names are ignored."""
        user = self._require_user(principal.id)
        if name and name.strip():
            user.name = name.strip()
        if avatar is not None:
            user.avatar = avatar or None
        if location is not None:
            user.latitude = location.lat
            user.longitude = location.lng
            user.address = location.address
        user.updated_at = self.clock()
        self.users.save(user)
        return self.get_profile(user.id)

    def search_users(self, criteria: FilterCriteria) -> List[schemas.UserOut]:
        """Users whose name, email or any skill name contains the search term."""
        if not criteria.search_term:
            raise ValidationError("Search term is required")
        return [user_dto(u) for u in self.users.search(criteria)]

    def users_by_skill(self, skill_name: str) -> List[schemas.UserOut]:
        skill_name = (skill_name or "").strip()
        if not skill_name:
            raise ValidationError("Skill name is required")
        return [user_dto(u) for u in self.users.list_by_skill(skill_name)]

    def add_skill(self, principal: Principal, skill_name: str, proficiency_level: int) -> schemas.UserSkillOut:
        """Add a skill, or update its level when the caller already has it.

        Skill names are compared case-insensitively; the latest spelling wins.
        """
        skill_name = (skill_name or "").strip()
        if not skill_name or len(skill_name) > 100:
            raise ValidationError("Skill name must be between 1 and 100 characters")
        if not 1 <= proficiency_level <= 5:
            raise ValidationError("Proficiency level must be between 1 and 5")
        skill = self.users.get_skill(principal.id, skill_name)
        if skill is not None:
            skill.skill_name = skill_name
            skill.proficiency_level = proficiency_level
        else:
            skill = models.UserSkill(
                user_id=principal.id,
                skill_name=skill_name,
                skill_key=models.skill_key(skill_name),
                proficiency_level=proficiency_level,
                created_at=self.clock(),
            )
        skill = self.users.save_skill(skill)
        return schemas.UserSkillOut(skill_name=skill.skill_name, proficiency_level=skill.proficiency_level)

    def remove_skill(self, principal: Principal, skill_name: str) -> None:
        """Remove a skill; removing one the caller never had does nothing."""
        skill = self.users.get_skill(principal.id, (skill_name or "").strip())
        if skill is not None:
            self.users.delete_skill(skill)

    def delete_account(self, principal: Principal) -> None:
        """Delete the caller's account and, through the store, everything it owns."""
        user = self._require_user(principal.id)
        self.users.delete(user)
        logger.info("account_deleted user_id=%s", principal.id)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


_PROJECT_TEXT_FIELDS = ("title", "description", "category", "technology", "domain")


class ProjectService:
    """Project CRUD with owner checks, plus filtered listings."""
    def __init__(self, projects: ProjectStore, clock: Clock = utcnow):
        self.projects = projects
        self.clock = clock

    def _require_owned(self, principal: Principal, project_id: int, action: str) -> models.Project:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFound("Project not found")
        if project.user_id != principal.id:
            raise Forbidden(f"You can only {action} your own projects")
        return project

    def get(self, project_id: int) -> schemas.ProjectOut:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project_dto(project)

    def list(self, criteria: FilterCriteria) -> List[schemas.ProjectOut]:
        return [project_dto(p) for p in self.projects.list(criteria)]

    def search(self, criteria: FilterCriteria) -> List[schemas.ProjectOut]:
        if not criteria.search_term:
            raise ValidationError("Search term is required")
        return self.list(criteria)

    def list_by_user(self, user_id: int) -> List[schemas.ProjectOut]:
        return [project_dto(p) for p in self.projects.list_by_user(user_id)]

    def create(self, principal: Principal, data: schemas.ProjectCreateIn) -> schemas.ProjectOut:
        values = {}
        for attr in _PROJECT_TEXT_FIELDS:
            value = (getattr(data, attr) or "").strip()
            if not value:
                raise ValidationError(f"{attr.capitalize()} is required")
            values[attr] = value
        now = self.clock()
        project = models.Project(
            **values,
            tech_stack=_dump_tech_stack(data.tech_stack),
            github_link=data.github_link or None,
            user_id=principal.id,
            created_at=now,
            updated_at=now,
        )
        project = self.projects.create(project)
        logger.info("project_created project_id=%s user_id=%s", project.id, principal.id)
        return project_dto(project)

    def update(self, principal: Principal, project_id: int, data: schemas.ProjectUpdateIn) -> schemas.ProjectOut:
        """Owner-only partial update; empty strings leave a field unchanged."""
        project = self._require_owned(principal, project_id, "update")
        for attr in _PROJECT_TEXT_FIELDS:
            value = getattr(data, attr)
            if value and value.strip():
                setattr(project, attr, value.strip())
        if data.tech_stack is not None:
            project.tech_stack = _dump_tech_stack(data.tech_stack)
        if data.github_link is not None:
            project.github_link = data.github_link or None
        project.updated_at = self.clock()
        return project_dto(self.projects.save(project))

    def delete(self, principal: Principal, project_id: int) -> None:
        project = self._require_owned(principal, project_id, "delete")
        self.projects.delete(project)
        logger.info("project_deleted project_id=%s user_id=%s", project_id, principal.id)


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class MessageService:
    """Conversations between users and the messages posted to them."""
    def __init__(self, conversations: ConversationStore, users: AccountStore, clock: Clock = utcnow):
        self.conversations = conversations
        self.users = users
        self.clock = clock

    def _require_participant(self, principal: Principal, conversation_id: int) -> models.Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        if not self.conversations.is_participant(conversation_id, principal.id):
            raise Forbidden("You are not a participant in this conversation")
        return conversation

    def start_conversation(
        self,
        principal: Principal,
        participant_ids: List[int],
        title: Optional[str] = None,
    ) -> schemas.ConversationOut:
        """Open a conversation between the caller and `participant_ids`."""
        others = [pid for pid in dict.fromkeys(participant_ids) if pid != principal.id]
        if not others:
            raise ValidationError("A conversation needs at least one other participant")
        for pid in others:
            if self.users.get(pid) is None:
                raise NotFound(f"User {pid} not found")
        now = self.clock()
        conversation = models.Conversation(title=(title or "").strip() or None, created_at=now, updated_at=now)
        conversation = self.conversations.create(conversation, [principal.id] + others)
        return conversation_dto(conversation, None)

    def list_conversations(self, principal: Principal) -> List[schemas.ConversationOut]:
        return [
            conversation_dto(c, self.conversations.last_message(c.id))
            for c in self.conversations.list_for_user(principal.id)
        ]

    def list_messages(self, principal: Principal, conversation_id: int) -> List[schemas.MessageOut]:
        self._require_participant(principal, conversation_id)
        return [message_dto(m) for m in self.conversations.list_messages(conversation_id)]

    def send_message(self, principal: Principal, conversation_id: int, content: str) -> schemas.MessageOut:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if len(content) > 2000:
            raise ValidationError("Message content must be at most 2000 characters")
        conversation = self._require_participant(principal, conversation_id)
        message = models.Message(
            conversation_id=conversation_id,
            sender_id=principal.id,
            content=content,
            sent_at=self.clock(),
        )
        return message_dto(self.conversations.add_message(conversation, message))

    def mark_read(self, principal: Principal, conversation_id: int) -> int:
        self._require_participant(principal, conversation_id)
        return self.conversations.mark_read(conversation_id, principal.id)


class FeedbackService:
    """Persist contact-form feedback."""
    def __init__(self, feedback: FeedbackStore, clock: Clock = utcnow):
        self.feedback = feedback
        self.clock = clock

    def submit(self, data: schemas.FeedbackIn) -> models.Feedback:
        values = {k: (v.strip() if isinstance(v, str) else v) for k, v in data.model_dump().items()}
        for required in ("name", "email", "subject", "message"):
            if not values.get(required):
                raise ValidationError(f"{required.capitalize()} is required")
        feedback = self.feedback.add(models.Feedback(**values, created_at=self.clock()))
        logger.info("feedback_received type=%s urgency=%s", feedback.feedback_type, feedback.urgency)
        return feedback
