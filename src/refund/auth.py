from datetime import timedelta
from typing import Generator, Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import Settings
from .errors import AppError
from .security import Identity, InvalidToken, issue_token, verify_token

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Generator[Session, None, None]:
    """Provide a session bound to the application's engine for one request."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def create_access_token(subject: str, role: str, settings: Settings) -> str:
    return issue_token(
        subject,
        role,
        settings.jwt_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
        algorithm=settings.jwt_algorithm,
    )


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Identity:
    if credentials is None:
        raise AppError("JWT token não encontrado", 401)
    try:
        return verify_token(
            credentials.credentials, settings.jwt_secret, settings.jwt_algorithm
        )
    except InvalidToken:
        raise AppError("JWT token inválido", 401)


def authorize(identity: Optional[Identity], allowed_roles: Iterable[str]) -> Identity:
    """Allow ``identity`` through only when its role is in ``allowed_roles``."""
    if identity is None or identity.role not in allowed_roles:
        raise AppError("Não autorizado", 401)
    return identity


def require_roles(*roles: str):
    """Dependency that authenticates the caller and checks their role."""
    allowed = frozenset(roles)

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        return authorize(identity, allowed)

    return dependency
