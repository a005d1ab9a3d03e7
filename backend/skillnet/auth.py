"""Authentication helpers and FastAPI security dependencies.

`get_current_user` validates the bearer token and returns the caller as a
`Principal`; `get_optional_user` does the same but yields None for
anonymous requests. Failures raise `AuthenticationRequired`, which the
API renders as a 401.
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import repositories
from .database import get_session
from .errors import AuthenticationRequired
from .services import Principal, decode_session_token

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("skillnet.auth")


def principal_from_token(token: str, users: repositories.AccountStore) -> Principal:
    """Decode a session token and resolve the account it names."""
    try:
        payload = decode_session_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationRequired("Token expired")
    except jwt.PyJWTError:
        raise AuthenticationRequired("Invalid token")
    try:
        user_id = int(payload['sub'])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationRequired("Invalid token payload")
    user = users.get(user_id)
    if user is None:
        logger.info("token_for_missing_account user_id=%s", user_id)
        raise AuthenticationRequired("User not found")
    return Principal(id=user.id, name=user.name, email=user.email)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> Principal:
    """FastAPI dependency that returns the authenticated caller."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired()
    return principal_from_token(credentials.credentials, repositories.UserRepository(session))


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[Principal]:
    """Like `get_current_user`, but anonymous or invalid tokens yield None."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return principal_from_token(credentials.credentials, repositories.UserRepository(session))
    except AuthenticationRequired:
        return None
