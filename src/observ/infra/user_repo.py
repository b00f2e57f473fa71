# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from observ.infra.db import DEFAULT_GROUP_ID, GroupModel, RelationGroupUser, UserModel

logger = logging.getLogger(__name__)


class DuplicateIdentity(Exception):
    """A UNIQUE constraint on users rejected an insert/update."""


def find_by_id(session: Session, user_id: int) -> Optional[UserModel]:
    return session.get(UserModel, user_id)


def find_by_email(session: Session, email: str) -> Optional[UserModel]:
    return session.scalar(select(UserModel).where(UserModel.email == email))


def find_by_handle(session: Session, handle: str) -> Optional[UserModel]:
    return session.scalar(select(UserModel).where(UserModel.handle == handle))


def find_by_handle_ci(session: Session, handle: str) -> Optional[UserModel]:
    return session.scalar(
        select(UserModel).where(func.lower(UserModel.handle) == (handle or "").lower())
    )


def find_by_mmost(session: Session, mmost: str) -> Optional[UserModel]:
    return session.scalar(select(UserModel).where(UserModel.mmost == mmost))


def filter_users(session: Session, term: Optional[str] = None) -> List[UserModel]:
    stmt = select(UserModel).order_by(UserModel.id)
    t = (term or "").strip()
    if t:
        like = f"%{t}%"
        stmt = stmt.where(
            or_(
                UserModel.real_name.ilike(like),
                UserModel.email.ilike(like),
                UserModel.handle.ilike(like),
            )
        )
    return list(session.scalars(stmt))


def save_user(session: Session, model: UserModel) -> UserModel:
    """Insert or update a user and flush.

    On a UNIQUE violation the whole transaction is rolled back before
    ``DuplicateIdentity`` is raised, so the session stays usable for lookups.
    """
    session.add(model)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateIdentity(str(e.orig)) from e
    return model


def add_membership(session: Session, user_id: int, group_id: int = DEFAULT_GROUP_ID) -> None:
    session.add(RelationGroupUser(group_id=group_id, user_id=user_id))
    session.flush()


def groups_for_user(session: Session, user_id: int) -> List[GroupModel]:
    stmt = (
        select(GroupModel)
        .join(RelationGroupUser, RelationGroupUser.group_id == GroupModel.id)
        .where(RelationGroupUser.user_id == user_id)
        .order_by(GroupModel.id)
    )
    return list(session.scalars(stmt))


def delete_user(session: Session, user_id: int) -> bool:
    model = session.get(UserModel, user_id)
    if model is None:
        return False
    session.execute(delete(RelationGroupUser).where(RelationGroupUser.user_id == user_id))
    session.delete(model)
    session.flush()
    logger.info("Deleted user %s and their group memberships", user_id)
    return True
