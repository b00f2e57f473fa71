#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
from getpass import getpass

from observ.auth.passwords import hash_new
from observ.auth.signup import existing_conflict
from observ.auth.users import ADMIN_TIER, ROOT_USER_ID
from observ.core.forms import HANDLE_MAX_LEN, MMOST_MAX_LEN, is_reserved
from observ.infra import user_repo
from observ.infra.db import UserModel, configure, session_scope


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an observ account from the command line.")
    parser.add_argument("--root", action="store_true", help="create the root account (id 0, admin tier)")
    parser.add_argument("--database-url", default=None, help="defaults to OBSERV_DATABASE_URL")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    configure(args.database_url)

    real_name = input("Name: ").strip()
    email = input("Email: ").strip()
    handle = input("GitHub handle: ").strip()[:HANDLE_MAX_LEN]
    mmost = input("Mattermost handle: ").strip()[:MMOST_MAX_LEN]
    if is_reserved(handle):
        raise SystemExit(f"Handle '{handle}' is reserved")

    if args.root:
        tier = ADMIN_TIER
    else:
        tier_in = input("Tier [0]: ").strip()
        try:
            tier = int(tier_in) if tier_in else 0
        except ValueError:
            raise SystemExit(f"Tier must be an integer, got '{tier_in}'")

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")

    with session_scope() as session:
        if args.root and user_repo.find_by_id(session, ROOT_USER_ID) is not None:
            raise SystemExit("Root account already exists")
        conflict = existing_conflict(session, email=email, handle=handle, mmost=mmost)
        if conflict is not None:
            raise SystemExit(f"Cannot create account: {conflict.message}")

        password_hash, salt = hash_new(pw1)
        model = UserModel(
            real_name=real_name,
            email=email,
            handle=handle,
            mmost=mmost,
            password_hash=password_hash,
            salt=salt,
            bio="",
            tier=tier,
            active=True,
        )
        if args.root:
            model.id = ROOT_USER_ID
        user_repo.save_user(session, model)
        user_repo.add_membership(session, model.id)
        user_id = model.id

    print(f"OK -> user {user_id} ({email})")


if __name__ == "__main__":
    main()
