# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Identity and authentication helpers.

This package provides:
- Password hashing/verification with per-account salts (argon2id)
- Account registration with uniqueness checks on email, handle and Mattermost handle
- Credential lookup against the users table
- Signed session cookies (itsdangerous)
"""
