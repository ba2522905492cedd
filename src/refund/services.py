"""Service layer for users and refund requests."""

import logging
import math
from typing import List, Optional, Tuple

from prometheus_client import Counter
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .errors import AppError
from .models.refund import Refund
from .models.user import User
from .security import hash_password

logger = logging.getLogger(__name__)

REFUND_COUNTER = Counter("refunds_created_total", "Total refund requests created")
USER_COUNTER = Counter("users_created_total", "Total users registered", ["role"])


def _rollback(session: Session, exc: Exception) -> None:
    """Rollback the current transaction after a failed write."""
    session.rollback()
    if isinstance(exc, SQLAlchemyError):
        logger.exception("database error", exc_info=exc)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.scalar(select(User).where(User.email == email))


def create_user(
    session: Session, name: str, email: str, password: str, role: str = "employee"
) -> User:
    """Register a user, rejecting e-mails that are already taken."""
    if get_user_by_email(session, email) is not None:
        raise AppError("Já existe um usuário cadastrado com esse e-mail")

    user = User(name=name, email=email, password=hash_password(password), role=role)
    try:
        session.add(user)
        session.commit()
    except IntegrityError:
        # Another request registered the same e-mail after the lookup above.
        session.rollback()
        raise AppError("Já existe um usuário cadastrado com esse e-mail")
    except Exception as exc:
        _rollback(session, exc)
        raise
    session.refresh(user)
    USER_COUNTER.labels(role=role).inc()
    logger.info("created user id=%s role=%s", user.id, role)
    return user


def create_refund(
    session: Session, user_id: str, name: str, category: str, amount: float, filename: str
) -> Refund:
    refund = Refund(
        name=name,
        category=category,
        amount=amount,
        filename=filename,
        user_id=user_id,
    )
    try:
        session.add(refund)
        session.commit()
    except Exception as exc:
        _rollback(session, exc)
        raise
    session.refresh(refund)
    REFUND_COUNTER.inc()
    logger.info("created refund id=%s user=%s amount=%s", refund.id, user_id, amount)
    return refund


def total_pages(total_records: int, per_page: int) -> int:
    """Number of pages needed for ``total_records``; never less than one."""
    pages = math.ceil(total_records / per_page) if per_page > 0 else 0
    return max(pages, 1)


def list_refunds(
    session: Session, name: str = "", page: int = 1, per_page: int = 10
) -> Tuple[List[Refund], int]:
    """Return one page of refunds, newest first, with the total record count.

    ``name`` filters on a case-insensitive substring of the owner's name.
    """
    condition = User.name.icontains(name.strip(), autoescape=True)
    skip = (page - 1) * per_page

    records = session.scalars(
        select(Refund)
        .join(Refund.user)
        .where(condition)
        .options(joinedload(Refund.user))
        .order_by(Refund.created_at.desc())
        .offset(skip)
        .limit(per_page)
    ).all()
    total = session.scalar(
        select(func.count(Refund.id)).join(Refund.user).where(condition)
    )
    return list(records), total or 0


def get_refund(session: Session, refund_id: str) -> Optional[Refund]:
    return session.scalar(
        select(Refund).where(Refund.id == refund_id).options(joinedload(Refund.user))
    )
