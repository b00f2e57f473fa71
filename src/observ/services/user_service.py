# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from observ.auth.passwords import hash_new
from observ.auth.signup import existing_conflict
from observ.auth.users import UserRecord, to_record
from observ.core.forms import HANDLE_MAX_LEN, MMOST_MAX_LEN, FormError, FormRejected, is_reserved
from observ.infra import user_repo
from observ.permissions import Caller, Forbidden, can_edit, may_change_tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditUserForm:
    real_name: str
    handle: str
    email: str
    mmost: str
    bio: str = ""
    # Empty keeps the current password.
    password: str = ""
    tier: Optional[int] = None
    active: Optional[bool] = None


def find_by_handle(session: Session, handle: str) -> Optional[UserRecord]:
    m = user_repo.find_by_handle_ci(session, handle)
    return to_record(m) if m else None


def filter_users(session: Session, term: Optional[str] = None) -> List[UserRecord]:
    return [to_record(m) for m in user_repo.filter_users(session, term)]


def user_groups(session: Session, user_id: int) -> List[dict]:
    return [
        {"id": g.id, "name": g.name, "location": g.location}
        for g in user_repo.groups_for_user(session, user_id)
    ]


def edit_user(session: Session, caller: Caller, target_id: int, form: EditUserForm) -> UserRecord:
    """Apply an edit submitted by ``caller``.

    - Only the owner or an admin may edit (``Forbidden`` otherwise).
    - Tier and active flag change only when an admin submits them; the root
      account's tier never changes.
    - Raises ``LookupError`` for an unknown target, ``FormRejected`` for
      reserved handles or identity fields taken by another account.
    """
    if not can_edit(caller, target_id):
        raise Forbidden()

    m = user_repo.find_by_id(session, target_id)
    if m is None:
        raise LookupError(f"User {target_id} not found")

    handle = form.handle[:HANDLE_MAX_LEN]
    mmost = form.mmost[:MMOST_MAX_LEN]

    if is_reserved(handle):
        raise FormRejected(FormError.RESERVED_NAME)

    conflict = existing_conflict(
        session, email=form.email, handle=handle, mmost=mmost, exclude_id=target_id
    )
    if conflict is not None:
        raise FormRejected(conflict)

    m.real_name = form.real_name
    m.handle = handle
    m.email = form.email
    m.mmost = mmost
    m.bio = form.bio or ""

    if form.password:
        m.password_hash, m.salt = hash_new(form.password)

    if form.tier is not None and form.tier != m.tier:
        if may_change_tier(caller, target_id):
            logger.info("User %s changed tier of %s: %s -> %s", caller.user.id, target_id, m.tier, form.tier)
            m.tier = form.tier
        else:
            logger.info("Ignored tier change on %s requested by %s", target_id, caller.user.id)

    if form.active is not None and caller.is_admin:
        m.active = form.active

    try:
        user_repo.save_user(session, m)
    except user_repo.DuplicateIdentity:
        conflict = existing_conflict(
            session, email=form.email, handle=handle, mmost=mmost, exclude_id=target_id
        )
        if conflict is None:
            raise
        raise FormRejected(conflict)

    return to_record(m)


def delete_user(session: Session, target_id: int) -> None:
    if not user_repo.delete_user(session, target_id):
        raise LookupError(f"User {target_id} not found")
