from conftest import add_user, login, signup_data
from observ.auth.session import COOKIE_NAME, sign_session
from observ.auth.users import get_user
from observ.infra import user_repo


def _set_cookie(r) -> str:
    return r.headers.get("set-cookie", "")


def test_signup_page_renders_error_code(client):
    r = client.get("/signup?e=emailExists")
    assert r.status_code == 200
    assert 'data-code="emailExists"' in r.text


def test_signup_page_unknown_code_renders_other(client):
    r = client.get("/signup?e=bogus")
    assert 'data-code="other"' in r.text


def test_signup_logs_in_and_redirects_to_profile(client, session):
    r = client.post("/signup", data=signup_data("alice"), follow_redirects=False)
    assert r.status_code == 303
    user = user_repo.find_by_email(session, "alice@example.org")
    assert r.headers["location"] == f"/users/{user.id}"
    assert f"{COOKIE_NAME}=" in _set_cookie(r)
    assert "httponly" in _set_cookie(r).lower()

    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 200
    assert "Everyone" in r.text


def test_signup_cookie_is_signed_not_the_raw_id(client, session):
    r = client.post("/signup", data=signup_data("alice"), follow_redirects=False)
    user = user_repo.find_by_email(session, "alice@example.org")
    assert client.cookies.get(COOKIE_NAME) != str(user.id)


def test_signup_password_mismatch(client):
    r = client.post("/signup", data=signup_data("alice", password_repeat="nope"), follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/signup?e=mismatch"
    assert COOKIE_NAME not in _set_cookie(r)


def test_signup_duplicate_email(client):
    client.post("/signup", data=signup_data("alice"), follow_redirects=False)
    client.cookies.clear()
    r = client.post("/signup", data=signup_data("bob", email="alice@example.org"), follow_redirects=False)
    assert r.headers["location"] == "/signup?e=emailExists"


def test_signup_reserved_handle(client):
    r = client.post("/signup", data=signup_data("NEW"), follow_redirects=False)
    assert r.headers["location"] == "/signup?e=reserved"


def test_signup_missing_field_is_rejected_by_the_framework(client):
    data = signup_data("alice")
    del data["mmost"]
    r = client.post("/signup", data=data, follow_redirects=False)
    assert r.status_code == 422


def test_login_success_defaults_to_root(client, session):
    add_user(session, handle="alice", password="pw")
    r = login(client, "alice@example.org", "pw")
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert f"{COOKIE_NAME}=" in _set_cookie(r)


def test_login_success_redirects_to_target_verbatim(client, session):
    add_user(session, handle="alice", password="pw")
    r = client.post(
        "/login?to=/users/1/edit",
        data={"email": "alice@example.org", "password": "pw"},
        follow_redirects=False,
    )
    assert r.headers["location"] == "/users/1/edit"


def test_login_wrong_password_keeps_target(client, session):
    add_user(session, handle="alice", password="pw")
    r = client.post(
        "/login?to=/dashboard",
        data={"email": "alice@example.org", "password": "wrong"},
        follow_redirects=False,
    )
    assert r.headers["location"] == "/login?to=/dashboard&e=password"
    assert COOKIE_NAME not in _set_cookie(r)


def test_login_unknown_email(client):
    r = login(client, "nobody@example.org", "pw")
    assert r.headers["location"] == "/login?to=/&e=email"


def test_login_page_renders(client):
    r = client.get("/login?to=/dashboard&e=password")
    assert r.status_code == 200
    assert 'action="/login?to=/dashboard"' in r.text
    assert 'data-code="password"' in r.text


def test_logout_clears_cookie(client, session):
    add_user(session, handle="alice")
    login(client, "alice@example.org")
    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert f"{COOKIE_NAME}=" in _set_cookie(r)
    assert "max-age=0" in _set_cookie(r).lower()

    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 303


def test_logout_without_cookie(client):
    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert "max-age=0" in _set_cookie(r).lower()


def test_guest_is_sent_to_login_with_requested_path(client):
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?to=/dashboard"


def test_forged_cookie_is_treated_as_guest(client, session):
    add_user(session, handle="alice")
    r = client.get("/dashboard", headers={"Cookie": f"{COOKIE_NAME}=1"}, follow_redirects=False)
    assert r.headers["location"] == "/login?to=/dashboard"


def test_cookie_for_inactive_user_is_treated_as_guest(client, session):
    m = add_user(session, handle="alice", active=False)
    r = client.get("/dashboard", headers={"Cookie": f"{COOKIE_NAME}={sign_session(m.id)}"}, follow_redirects=False)
    assert r.status_code == 303


def test_index_renders_for_guests_and_members(client, session):
    assert "Log in" in client.get("/").text
    add_user(session, handle="alice")
    login(client, "alice@example.org")
    assert "Welcome back" in client.get("/").text


def test_profile_by_id_and_by_handle(client, session):
    m = add_user(session, handle="Alice")
    r = client.get(f"/users/{m.id}")
    assert r.status_code == 200
    assert "Alice" in r.text

    r = client.get("/users/alice", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == f"/users/{m.id}"


def test_unknown_profile_is_404(client):
    assert client.get("/users/999").status_code == 404
    assert client.get("/users/nobody").status_code == 404


def test_superscript_digit_profile_is_404_not_an_error(client):
    assert client.get("/users/²").status_code == 404


def test_non_ascii_digit_handle_redirects_to_profile(client, session):
    m = add_user(session, handle="٤٢", email="arabic@example.org", mmost="arabic42")
    r = client.get("/users/٤٢", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == f"/users/{m.id}"


def test_users_json_hides_credentials(client, session):
    add_user(session, handle="alice")
    r = client.get("/users.json")
    assert r.status_code == 200
    rows = r.json()
    assert rows[0]["handle"] == "alice"
    assert "password_hash" not in rows[0]
    assert "salt" not in rows[0]


def test_users_json_search(client, session):
    add_user(session, handle="alice")
    add_user(session, handle="bob")
    assert [u["handle"] for u in client.get("/users.json?s=bo").json()] == ["bob"]


def test_member_edit_form_for_someone_else_is_forbidden(client, session):
    add_user(session, handle="alice")
    bob = add_user(session, handle="bob")
    login(client, "alice@example.org")
    r = client.get(f"/users/{bob.id}/edit")
    assert r.status_code == 403


def test_member_edit_ignores_tier_in_payload(client, session):
    alice = add_user(session, handle="alice")
    login(client, "alice@example.org")
    r = client.post(
        f"/users/{alice.id}",
        data={
            "real_name": "Alice",
            "handle": "alice",
            "email": "alice@example.org",
            "mmost": "alice",
            "bio": "hi",
            "tier": "9",
        },
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert r.headers["location"] == f"/users/{alice.id}"
    session.expunge_all()
    user = get_user(session, alice.id)
    assert user.tier == 0
    assert user.bio == "hi"


def test_edit_conflict_redirects_back_with_code(client, session):
    alice = add_user(session, handle="alice")
    add_user(session, handle="bob")
    login(client, "alice@example.org")
    r = client.post(
        f"/users/{alice.id}",
        data={"real_name": "Alice", "handle": "bob", "email": "alice@example.org", "mmost": "alice"},
        follow_redirects=False,
    )
    assert r.headers["location"] == f"/users/{alice.id}/edit?e=gitExists"


def test_admin_sets_tier_via_put(client, session):
    add_user(session, handle="admin", tier=2)
    bob = add_user(session, handle="bob")
    login(client, "admin@example.org")
    r = client.put(
        f"/users/{bob.id}",
        data={"real_name": "Bob", "handle": "bob", "email": "bob@example.org", "mmost": "bob", "tier": "2"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    session.expunge_all()
    assert get_user(session, bob.id).tier == 2


def test_member_cannot_delete(client, session):
    add_user(session, handle="alice")
    bob = add_user(session, handle="bob")
    login(client, "alice@example.org")
    r = client.post(f"/users/{bob.id}/delete", follow_redirects=False)
    assert r.status_code == 403
    assert get_user(session, bob.id) is not None


def test_guest_delete_goes_to_login(client, session):
    bob = add_user(session, handle="bob")
    r = client.delete(f"/users/{bob.id}", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == f"/login?to=/users/{bob.id}"


def test_admin_deletes_user(client, session):
    add_user(session, handle="admin", tier=2)
    bob = add_user(session, handle="bob")
    bob_id = bob.id
    login(client, "admin@example.org")
    r = client.delete(f"/users/{bob_id}", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/users"
    session.expunge_all()
    assert get_user(session, bob_id) is None


def test_store_failure_is_an_internal_error(client, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from observ.auth import signup

    def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(signup, "existing_conflict", broken)
    r = client.post("/signup", data=signup_data("alice"), follow_redirects=False)
    assert r.status_code == 500
