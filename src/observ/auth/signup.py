# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Account registration.

Checks run in a fixed order and the first failure wins. Uniqueness is checked
up front for a precise error code, and again by the UNIQUE constraints at
insert time: a concurrent registration that slips between the two is mapped
back to the same codes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from sqlalchemy.orm import Session

from observ.auth.passwords import hash_new
from observ.auth.users import UserRecord, to_record
from observ.core.audit import audit_registration
from observ.core.forms import HANDLE_MAX_LEN, MMOST_MAX_LEN, FormError, FormRejected, is_reserved
from observ.infra import user_repo
from observ.infra.db import DEFAULT_GROUP_ID, UserModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignUpForm:
    email: str
    password: str
    password_repeat: str
    real_name: str
    handle: str
    mmost: str


def truncate_handles(form: SignUpForm) -> SignUpForm:
    handle = form.handle[:HANDLE_MAX_LEN]
    mmost = form.mmost[:MMOST_MAX_LEN]
    if handle != form.handle or mmost != form.mmost:
        logger.warning(
            "Truncated over-length signup handles (handle %d->%d chars, mmost %d->%d chars)",
            len(form.handle),
            len(handle),
            len(form.mmost),
            len(mmost),
        )
    return replace(form, handle=handle, mmost=mmost)


def existing_conflict(
    session: Session,
    *,
    email: str,
    handle: str,
    mmost: str,
    exclude_id: Optional[int] = None,
) -> Optional[FormError]:
    """Return the code of the first identity field already taken by another account."""
    checks = (
        (user_repo.find_by_email, email, FormError.EMAIL_EXISTS),
        (user_repo.find_by_handle, handle, FormError.GIT_EXISTS),
        (user_repo.find_by_mmost, mmost, FormError.MMOST_EXISTS),
    )
    for finder, value, code in checks:
        m = finder(session, value)
        if m is not None and m.id != exclude_id:
            return code
    return None


def register(session: Session, form: SignUpForm) -> UserRecord:
    """Create an account, its default group membership, and emit the audit record.

    Raises ``FormRejected`` for user-correctable problems. Storage errors
    propagate untouched.
    """
    form = truncate_handles(form)

    if form.password != form.password_repeat:
        raise FormRejected(FormError.PASSWORD_MISMATCH)

    if is_reserved(form.handle):
        raise FormRejected(FormError.RESERVED_NAME)

    conflict = existing_conflict(session, email=form.email, handle=form.handle, mmost=form.mmost)
    if conflict is not None:
        raise FormRejected(conflict)

    password_hash, salt = hash_new(form.password)
    model = UserModel(
        real_name=form.real_name,
        handle=form.handle,
        email=form.email,
        mmost=form.mmost,
        password_hash=password_hash,
        salt=salt,
        bio="",
        tier=0,
        active=True,
    )
    try:
        user_repo.save_user(session, model)
    except user_repo.DuplicateIdentity:
        # Lost a race with a concurrent signup; the winner is now visible.
        conflict = existing_conflict(session, email=form.email, handle=form.handle, mmost=form.mmost)
        if conflict is None:
            raise
        raise FormRejected(conflict)

    user_repo.add_membership(session, model.id, DEFAULT_GROUP_ID)
    # Audit only what is durable.
    session.commit()

    audit_registration(model.id, model.email)
    return to_record(model)
