# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Who is calling, and what they may do.

The caller is resolved once per request (see the middleware in ``observ.app``)
into a flat ``Caller``: an access level plus the optional identity behind it.
Routes declare the level they need through one of three dependencies.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from observ.auth.session import COOKIE_NAME, verify_session
from observ.auth.users import ROOT_USER_ID, UserRecord, get_user

logger = logging.getLogger(__name__)


class Access(str, Enum):
    GUEST = "guest"
    MEMBER = "member"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    access: Access
    user: Optional[UserRecord] = None

    @property
    def tier(self) -> int:
        return self.user.tier if self.user else 0

    @property
    def is_authenticated(self) -> bool:
        return self.access is not Access.GUEST

    @property
    def is_admin(self) -> bool:
        return self.access is Access.ADMIN


GUEST = Caller(access=Access.GUEST)


class NotAuthenticated(Exception):
    """No valid session; answered with a redirect to the login page."""

    def __init__(self, next_path: str = "/"):
        super().__init__(next_path)
        self.next_path = next_path


class Forbidden(Exception):
    """Authenticated, but not allowed; answered with the 403 page."""


def caller_for(user: Optional[UserRecord]) -> Caller:
    if user is None or not user.active:
        return GUEST
    return Caller(access=Access.ADMIN if user.is_admin else Access.MEMBER, user=user)


def load_caller(request: Request, session: Session) -> Caller:
    token = request.cookies.get(COOKIE_NAME, "")
    sess = verify_session(token)
    if not sess:
        return GUEST
    return caller_for(get_user(session, sess.user_id))


def maybe_logged_in(request: Request) -> Caller:
    c = getattr(request.state, "caller", None)
    return c if c is not None else GUEST


def require_user(request: Request) -> Caller:
    c = maybe_logged_in(request)
    if c.is_authenticated:
        return c
    raise NotAuthenticated(request.url.path)


def require_admin(request: Request) -> Caller:
    c = require_user(request)
    if not c.is_admin:
        logger.info("Forbidden: user %s (tier %s) on %s", c.user.id, c.tier, request.url.path)
        raise Forbidden()
    return c


def can_edit(caller: Caller, target_id: int) -> bool:
    if not caller.is_authenticated:
        return False
    return caller.is_admin or caller.user.id == target_id


def may_change_tier(caller: Caller, target_id: int) -> bool:
    return caller.is_admin and target_id != ROOT_USER_ID


def cookie_settings() -> dict:
    secure = os.getenv("OBSERV_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}
    return {"httponly": True, "samesite": "lax", "secure": secure}
