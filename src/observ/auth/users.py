# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from observ.auth.passwords import verify_password
from observ.core.forms import FormError, FormRejected
from observ.infra import user_repo
from observ.infra.db import UserModel

ROOT_USER_ID = 0
ADMIN_TIER = 2


@dataclass(frozen=True)
class UserRecord:
    """Public view of an account. Password hash and salt never leave the store row."""

    id: int
    real_name: str
    handle: str
    email: str
    mmost: str
    bio: str
    active: bool
    tier: int
    joined_on: datetime

    @property
    def is_admin(self) -> bool:
        return self.tier > 1

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "real_name": self.real_name,
            "handle": self.handle,
            "email": self.email,
            "mmost": self.mmost,
            "bio": self.bio,
            "active": self.active,
            "tier": self.tier,
            "joined_on": self.joined_on.isoformat() if self.joined_on else None,
        }


def to_record(model: UserModel) -> UserRecord:
    return UserRecord(
        id=model.id,
        real_name=model.real_name,
        handle=model.handle,
        email=model.email,
        mmost=model.mmost,
        bio=model.bio or "",
        active=bool(model.active),
        tier=int(model.tier or 0),
        joined_on=model.joined_on,
    )


def get_user(session: Session, user_id: int) -> Optional[UserRecord]:
    m = user_repo.find_by_id(session, user_id)
    return to_record(m) if m else None


def authenticate(session: Session, email: str, password: str) -> UserRecord:
    """Check credentials; raises ``FormRejected`` with ``Email`` or ``Password``."""
    m = user_repo.find_by_email(session, email)
    if m is None:
        raise FormRejected(FormError.EMAIL)
    if not verify_password(password, m.password_hash, m.salt):
        raise FormRejected(FormError.PASSWORD)
    return to_record(m)
