# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

COOKIE_NAME = "user_id"


def session_max_age() -> Optional[int]:
    # Unset means a browser-session cookie and no age check on the signature.
    raw = os.getenv("OBSERV_SESSION_MAX_AGE", "").strip()
    return int(raw) if raw else None


def _serializer() -> URLSafeTimedSerializer:
    secret = os.getenv("SECRET_KEY") or os.getenv("OBSERV_SECRET_KEY")
    if not secret:
        raise RuntimeError("Missing SECRET_KEY (or OBSERV_SECRET_KEY) in environment")
    salt = os.getenv("OBSERV_SESSION_SALT", "observ.session.v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)


@dataclass(frozen=True)
class SessionData:
    user_id: int


def sign_session(user_id: int) -> str:
    s = _serializer()
    return s.dumps({"uid": int(user_id)})


def verify_session(token: str, *, max_age: Optional[int] = None) -> Optional[SessionData]:
    if not token:
        return None
    s = _serializer()
    try:
        data = s.loads(token, max_age=max_age if max_age is not None else session_max_age())
    except (BadSignature, BadTimeSignature):
        return None
    uid = data.get("uid") if isinstance(data, dict) else None
    # bool is an int subclass
    if not isinstance(uid, int) or isinstance(uid, bool) or uid < 0:
        return None
    return SessionData(user_id=uid)
