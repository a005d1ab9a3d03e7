"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the SkillNet backend.
Controllers are intentionally thin: they accept requests, build the
filter criteria or payload, delegate to services and return JSON.

Endpoints implemented:
- POST /auth/register, /auth/login, /auth/refresh, /auth/revoke
- GET|PUT|DELETE /users/profile
- GET /users/search, /users/by-skill/{skill_name}, /users/{user_id}
- POST /users/skills, DELETE /users/skills/{skill_name}
- GET|POST /projects, GET /projects/search, /projects/my-projects,
  /projects/user/{user_id}
- GET|PUT|DELETE /projects/{project_id}
- GET|POST /conversations, GET|POST /conversations/{id}/messages,
  POST /conversations/{id}/read
- POST /feedback
- GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import repositories, schemas, services
from .auth import get_current_user, get_optional_user
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import SkillNetError
from .filters import DEFAULT_TAKE, FilterCriteria
from .services import Principal

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("skillnet.api")

app = FastAPI(title="SkillNet API")

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    # an exception escaping call_next is answered as a 500 by the outer handler
    status_code = 500
    try:
        response: Response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = req_id
        return response
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )


@app.exception_handler(SkillNetError)
async def skillnet_error_handler(request: Request, exc: SkillNetError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"message": "; ".join(parts) or "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None) or uuid.uuid4().hex
    logger.exception("unhandled_error request_id=%s path=%s", req_id, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "An unexpected error occurred."},
        headers={"X-Request-ID": req_id},
    )


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def get_auth_service(db: Session = Depends(get_session)) -> services.AuthService:
    refresh_tokens = repositories.RefreshTokenRepository(db) if settings.REFRESH_TOKENS_ENABLED else None
    return services.AuthService(repositories.UserRepository(db), refresh_tokens)


def get_user_service(db: Session = Depends(get_session)) -> services.UserService:
    return services.UserService(repositories.UserRepository(db), repositories.ProjectRepository(db))


def get_project_service(db: Session = Depends(get_session)) -> services.ProjectService:
    return services.ProjectService(repositories.ProjectRepository(db))


def get_message_service(db: Session = Depends(get_session)) -> services.MessageService:
    return services.MessageService(repositories.ConversationRepository(db), repositories.UserRepository(db))


def get_feedback_service(db: Session = Depends(get_session)) -> services.FeedbackService:
    return services.FeedbackService(repositories.FeedbackRepository(db))


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@app.post('/auth/register', response_model=schemas.AuthResponse)
def register(payload: schemas.RegisterIn, auth: services.AuthService = Depends(get_auth_service)):
    """Create an account and return a session for it."""
    return auth.register(payload.email, payload.password, payload.name)


@app.post('/auth/login', response_model=schemas.AuthResponse)
def login(payload: schemas.LoginIn, auth: services.AuthService = Depends(get_auth_service)):
    return auth.login(payload.email, payload.password)


@app.post('/auth/refresh', response_model=schemas.AuthResponse)
def refresh(payload: schemas.RefreshTokenIn, auth: services.AuthService = Depends(get_auth_service)):
    """Rotate a refresh token into a new session."""
    return auth.refresh_session(payload.refresh_token)


@app.post('/auth/revoke', response_model=schemas.MessageResponse)
def revoke(payload: schemas.RefreshTokenIn, auth: services.AuthService = Depends(get_auth_service)):
    auth.revoke_session(payload.refresh_token)
    return {"message": "Token revoked successfully"}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@app.get('/users/profile', response_model=schemas.UserProfileOut)
def get_my_profile(
    principal: Principal = Depends(get_current_user),
    users: services.UserService = Depends(get_user_service),
):
    return users.get_profile(principal.id)


@app.put('/users/profile', response_model=schemas.UserProfileOut)
def update_my_profile(
    payload: schemas.UpdateProfileIn,
    principal: Principal = Depends(get_current_user),
    users: services.UserService = Depends(get_user_service),
):
    return users.update_profile(principal, payload.name, payload.avatar, payload.location)


@app.delete('/users/profile', response_model=schemas.MessageResponse)
def delete_my_account(
    principal: Principal = Depends(get_current_user),
    users: services.UserService = Depends(get_user_service),
):
    users.delete_account(principal)
    return {"message": "Account deleted successfully"}


@app.get('/users/search', response_model=List[schemas.UserOut])
def search_users(
    search_term: Optional[str] = Query(default=None, alias="searchTerm"),
    skip: int = 0,
    take: int = DEFAULT_TAKE,
    users: services.UserService = Depends(get_user_service),
):
    return users.search_users(FilterCriteria(search_term=search_term, skip=skip, take=take))


@app.get('/users/by-skill/{skill_name}', response_model=List[schemas.UserOut])
def users_by_skill(skill_name: str, users: services.UserService = Depends(get_user_service)):
    return users.users_by_skill(skill_name)


@app.post('/users/skills', response_model=schemas.UserSkillOut)
def add_skill(
    payload: schemas.AddSkillIn,
    principal: Principal = Depends(get_current_user),
    users: services.UserService = Depends(get_user_service),
):
    """Add a skill or update its proficiency level."""
    return users.add_skill(principal, payload.skill_name, payload.proficiency_level)


@app.delete('/users/skills/{skill_name}', response_model=schemas.MessageResponse)
def remove_skill(
    skill_name: str,
    principal: Principal = Depends(get_current_user),
    users: services.UserService = Depends(get_user_service),
):
    users.remove_skill(principal, skill_name)
    return {"message": "Skill removed successfully"}


@app.get('/users/{user_id}', response_model=schemas.UserProfileOut)
def view_user(
    user_id: int,
    request: Request,
    viewer: Optional[Principal] = Depends(get_optional_user),
    users: services.UserService = Depends(get_user_service),
):
    """Public profile; the visit is recorded, anonymously when unauthenticated."""
    return users.view_profile(
        user_id,
        viewer,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@app.get('/projects', response_model=List[schemas.ProjectOut])
def list_projects(
    search_term: Optional[str] = Query(default=None, alias="searchTerm"),
    categories: Optional[List[str]] = Query(default=None),
    technologies: Optional[List[str]] = Query(default=None),
    domains: Optional[List[str]] = Query(default=None),
    skip: int = 0,
    take: int = DEFAULT_TAKE,
    projects: services.ProjectService = Depends(get_project_service),
):
    """Filtered, paginated project listing (newest first)."""
    criteria = FilterCriteria(
        search_term=search_term,
        categories=categories or (),
        technologies=technologies or (),
        domains=domains or (),
        skip=skip,
        take=take,
    )
    return projects.list(criteria)


@app.get('/projects/search', response_model=List[schemas.ProjectOut])
def search_projects(
    search_term: Optional[str] = Query(default=None, alias="searchTerm"),
    projects: services.ProjectService = Depends(get_project_service),
):
    return projects.search(FilterCriteria(search_term=search_term))


@app.get('/projects/my-projects', response_model=List[schemas.ProjectOut])
def my_projects(
    principal: Principal = Depends(get_current_user),
    projects: services.ProjectService = Depends(get_project_service),
):
    return projects.list_by_user(principal.id)


@app.get('/projects/user/{user_id}', response_model=List[schemas.ProjectOut])
def projects_by_user(user_id: int, projects: services.ProjectService = Depends(get_project_service)):
    return projects.list_by_user(user_id)


@app.get('/projects/{project_id}', response_model=schemas.ProjectOut)
def get_project(project_id: int, projects: services.ProjectService = Depends(get_project_service)):
    return projects.get(project_id)


@app.post('/projects', response_model=schemas.ProjectOut, status_code=201)
def create_project(
    payload: schemas.ProjectCreateIn,
    principal: Principal = Depends(get_current_user),
    projects: services.ProjectService = Depends(get_project_service),
):
    return projects.create(principal, payload)


@app.put('/projects/{project_id}', response_model=schemas.ProjectOut)
def update_project(
    project_id: int,
    payload: schemas.ProjectUpdateIn,
    principal: Principal = Depends(get_current_user),
    projects: services.ProjectService = Depends(get_project_service),
):
    return projects.update(principal, project_id, payload)


@app.delete('/projects/{project_id}', response_model=schemas.MessageResponse)
def delete_project(
    project_id: int,
    principal: Principal = Depends(get_current_user),
    projects: services.ProjectService = Depends(get_project_service),
):
    projects.delete(principal, project_id)
    return {"message": "Project deleted successfully"}


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


@app.get('/conversations', response_model=List[schemas.ConversationOut])
def list_conversations(
    principal: Principal = Depends(get_current_user),
    messages: services.MessageService = Depends(get_message_service),
):
    return messages.list_conversations(principal)


@app.post('/conversations', response_model=schemas.ConversationOut, status_code=201)
def start_conversation(
    payload: schemas.ConversationCreateIn,
    principal: Principal = Depends(get_current_user),
    messages: services.MessageService = Depends(get_message_service),
):
    return messages.start_conversation(principal, payload.participant_ids, payload.title)


@app.get('/conversations/{conversation_id}/messages', response_model=List[schemas.MessageOut])
def list_messages(
    conversation_id: int,
    principal: Principal = Depends(get_current_user),
    messages: services.MessageService = Depends(get_message_service),
):
    return messages.list_messages(principal, conversation_id)


@app.post('/conversations/{conversation_id}/messages', response_model=schemas.MessageOut, status_code=201)
def send_message(
    conversation_id: int,
    payload: schemas.MessageIn,
    principal: Principal = Depends(get_current_user),
    messages: services.MessageService = Depends(get_message_service),
):
    return messages.send_message(principal, conversation_id, payload.content)


@app.post('/conversations/{conversation_id}/read', response_model=schemas.ReadReceiptOut)
def mark_read(
    conversation_id: int,
    principal: Principal = Depends(get_current_user),
    messages: services.MessageService = Depends(get_message_service),
):
    return schemas.ReadReceiptOut(marked_read=messages.mark_read(principal, conversation_id))


# ---------------------------------------------------------------------------
# Feedback and health
# ---------------------------------------------------------------------------


@app.post('/feedback', response_model=schemas.MessageResponse)
def submit_feedback(payload: schemas.FeedbackIn, feedback: services.FeedbackService = Depends(get_feedback_service)):
    feedback.submit(payload)
    return {"message": "Feedback submitted successfully"}


@app.get("/health")
def health():
    return {"status": "ok"}
