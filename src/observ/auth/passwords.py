# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential engine.

Passwords are hashed with argon2id using an explicit per-account salt, so the
hash is a pure function of (password, salt) and the salt lives in its own
column next to the hash.
"""

from __future__ import annotations

import hmac
import os
import secrets
from typing import Tuple

from argon2 import PasswordHasher
from argon2.low_level import Type, hash_secret_raw

SALT_BYTES = 16

_PH = PasswordHasher()


def _cost() -> dict:
    return {
        "time_cost": int(os.getenv("OBSERV_ARGON2_TIME_COST", str(_PH.time_cost))),
        "memory_cost": int(os.getenv("OBSERV_ARGON2_MEMORY_COST", str(_PH.memory_cost))),
        "parallelism": int(os.getenv("OBSERV_ARGON2_PARALLELISM", str(_PH.parallelism))),
    }


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def hash_password(plain: str, salt: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    if not salt:
        raise ValueError("Empty salt")
    raw = hash_secret_raw(
        secret=plain.encode("utf-8"),
        salt=salt.encode("utf-8"),
        hash_len=_PH.hash_len,
        type=Type.ID,
        **_cost(),
    )
    return raw.hex()


def hash_new(plain: str) -> Tuple[str, str]:
    """Hash a password with a fresh salt. Returns ``(hash, salt)``."""
    salt = generate_salt()
    return hash_password(plain, salt), salt


def verify_password(candidate: str, hash_value: str, salt: str) -> bool:
    if not candidate or not hash_value or not salt:
        return False
    return hmac.compare_digest(hash_password(candidate, salt), hash_value)
