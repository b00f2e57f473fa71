# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Audit trail.

Only account registration is audited. Records go to the ``observ.audit``
logger and, when ``OBSERV_AUDIT_LOG`` is set, are appended to that file.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

AUDIT_LOGGER_NAME = "observ.audit"

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
# Registration records are emitted regardless of the root logging level
audit_logger.setLevel(logging.INFO)


def configure_audit_log(path: Optional[str] = None) -> None:
    path = path or os.getenv("OBSERV_AUDIT_LOG", "").strip()
    if not path:
        return
    target = os.path.abspath(path)
    for h in audit_logger.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == target:
            return
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    audit_logger.addHandler(handler)


def audit_registration(user_id: int, email: str) -> None:
    at = datetime.now(timezone.utc).isoformat()
    audit_logger.info(
        "User %s [%s] has registered for an account",
        user_id,
        email,
        extra={"actor_id": user_id, "email": email, "at": at},
    )
