# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Form error codes carried through redirects.

A failed form POST redirects back to its page with ``?e=<code>``; the page
decodes the code and renders the matching message. The wire strings are
stable: links and bookmarks may carry them.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class FormError(Enum):
    EMAIL = "email"
    PASSWORD = "password"
    CREDENTIALS = "credentials"
    PASSWORD_MISMATCH = "mismatch"
    EMAIL_EXISTS = "emailExists"
    GIT_EXISTS = "gitExists"
    MMOST_EXISTS = "mmostExists"
    INVALID_CODE = "code"
    INVALID_DATE = "date"
    RESERVED_NAME = "reserved"
    OTHER = "other"

    def encode(self) -> str:
        return self.value

    @classmethod
    def decode(cls, raw: Optional[str]) -> "FormError":
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER

    @property
    def message(self) -> str:
        return MESSAGES[self]

    def __str__(self) -> str:
        return self.value


MESSAGES = {
    FormError.EMAIL: "No account is registered with that email.",
    FormError.PASSWORD: "The password is incorrect.",
    FormError.CREDENTIALS: "The email or password is incorrect.",
    FormError.PASSWORD_MISMATCH: "The passwords do not match.",
    FormError.EMAIL_EXISTS: "That email is already in use.",
    FormError.GIT_EXISTS: "That GitHub handle is already in use.",
    FormError.MMOST_EXISTS: "That Mattermost handle is already in use.",
    FormError.INVALID_CODE: "That attendance code is not valid.",
    FormError.INVALID_DATE: "That date is not valid.",
    FormError.RESERVED_NAME: "That name is reserved, please pick another one.",
    FormError.OTHER: "Something went wrong, please try again.",
}


class FormRejected(Exception):
    """A user-correctable form problem, answered by redirecting back with ``code``."""

    def __init__(self, code: FormError):
        super().__init__(code.value)
        self.code = code


# Handles double as URL segments (/users/<handle>), so these would shadow routes.
RESERVED_WORDS = frozenset({"new", "start", "rcos", "edit"})

HANDLE_MAX_LEN = 39
MMOST_MAX_LEN = 22


_PLAIN_INT = re.compile(r"\+?[0-9]+")


def is_numeric_id(word: str) -> bool:
    """ASCII integer, the only form /users/<h> treats as an account id."""
    return _PLAIN_INT.fullmatch(word or "") is not None


def is_reserved(word: str) -> bool:
    w = word or ""
    # Numeric handles would be ambiguous with /users/<id>
    return w.lower() in RESERVED_WORDS or is_numeric_id(w)


def parse_error(raw: Optional[str]) -> Optional[FormError]:
    """Decode the ``e`` query parameter; no parameter means no error."""
    if raw is None:
        return None
    return FormError.decode(raw)
