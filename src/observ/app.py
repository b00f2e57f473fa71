# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from observ.auth.session import COOKIE_NAME, session_max_age, sign_session
from observ.auth.signup import SignUpForm, register
from observ.auth.users import authenticate, get_user
from observ.core.audit import configure_audit_log
from observ.core.forms import FormRejected, is_numeric_id, parse_error
from observ.infra.db import get_session, session_scope
from observ.infra.user_repo import DuplicateIdentity
from observ.permissions import (
    Caller,
    Forbidden,
    NotAuthenticated,
    can_edit,
    cookie_settings,
    load_caller,
    maybe_logged_in,
    require_admin,
    require_user,
)
from observ.services import user_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # uvicorn workers import the app without running main()
    configure_audit_log()
    yield


app = FastAPI(title="observ", lifespan=lifespan)


def _resolve_caller(request: Request) -> Caller:
    with session_scope() as session:
        return load_caller(request, session)


@app.middleware("http")
async def _auth_middleware(request: Request, call_next):
    if request.url.path.startswith("/static/"):
        return await call_next(request)
    request.state.caller = await run_in_threadpool(_resolve_caller, request)
    return await call_next(request)


BASE_DIR = Path(__file__).resolve().parent

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


def _render(request: Request, template_name: str, ctx: Optional[dict] = None, status_code: int = 200):
    """TemplateResponse wrapper injecting the resolved caller."""
    caller = maybe_logged_in(request)
    base_ctx = {"caller": caller, "logged_in": caller.user}
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)


def _login_response(url: str, user_id: int) -> RedirectResponse:
    resp = RedirectResponse(url=url, status_code=303)
    resp.set_cookie(
        COOKIE_NAME,
        sign_session(user_id),
        max_age=session_max_age(),
        **cookie_settings(),
    )
    return resp


def _parse_tier(raw: Optional[str]) -> Optional[int]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def _parse_flag(raw: Optional[str]) -> Optional[bool]:
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


# ------------------ Error boundary ------------------


@app.exception_handler(NotAuthenticated)
async def _not_authenticated(request: Request, exc: NotAuthenticated):
    return RedirectResponse(url=f"/login?to={quote(exc.next_path, safe='/')}", status_code=303)


@app.exception_handler(Forbidden)
async def _forbidden(request: Request, exc: Forbidden):
    return _render(request, "403.html", status_code=403)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _render(request, "404.html", status_code=404)
    return await http_exception_handler(request, exc)


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(DuplicateIdentity)
async def _store_error(request: Request, exc: Exception):
    logger.exception("Identity store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return PlainTextResponse("Internal error", status_code=500)


# ------------------ Routes ------------------


@app.get("/", response_class=HTMLResponse)
def index(request: Request, caller: Caller = Depends(maybe_logged_in)):
    return _render(request, "index.html")


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    caller: Caller = Depends(require_user),
    session: Session = Depends(get_session),
):
    groups = user_service.user_groups(session, caller.user.id)
    return _render(request, "dashboard.html", {"groups": groups})


@app.get("/signup", response_class=HTMLResponse)
def signup_get(request: Request, e: Optional[str] = None):
    return _render(request, "signup.html", {"error": parse_error(e)})


@app.post("/signup")
def signup_post(
    email: str = Form(...),
    password: str = Form(...),
    password_repeat: str = Form(...),
    real_name: str = Form(...),
    handle: str = Form(...),
    mmost: str = Form(...),
    session: Session = Depends(get_session),
):
    form = SignUpForm(
        email=email,
        password=password,
        password_repeat=password_repeat,
        real_name=real_name,
        handle=handle,
        mmost=mmost,
    )
    try:
        user = register(session, form)
    except FormRejected as rej:
        return RedirectResponse(url=f"/signup?e={rej.code.encode()}", status_code=303)
    return _login_response(f"/users/{user.id}", user.id)


@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request, e: Optional[str] = None, to: str = "/"):
    return _render(request, "login.html", {"error": parse_error(e), "to": to or "/"})


@app.post("/login")
def login_post(
    email: str = Form(...),
    password: str = Form(...),
    to: str = "/",
    session: Session = Depends(get_session),
):
    to = to or "/"
    try:
        user = authenticate(session, email, password)
    except FormRejected as rej:
        return RedirectResponse(
            url=f"/login?to={quote(to, safe='/')}&e={rej.code.encode()}",
            status_code=303,
        )
    return _login_response(to, user.id)


@app.get("/logout")
def logout():
    resp = RedirectResponse(url="/", status_code=303)
    resp.delete_cookie(COOKIE_NAME, **cookie_settings())
    return resp


@app.get("/users", response_class=HTMLResponse)
def users_list(request: Request, s: Optional[str] = None, session: Session = Depends(get_session)):
    return _render(request, "users.html", {"users": user_service.filter_users(session, s), "s": s or ""})


@app.get("/users.json")
def users_json(s: Optional[str] = None, session: Session = Depends(get_session)):
    return JSONResponse([u.to_public() for u in user_service.filter_users(session, s)])


@app.get("/users/{h}", response_class=HTMLResponse)
def user_profile(request: Request, h: str, session: Session = Depends(get_session)):
    if is_numeric_id(h):
        user = get_user(session, int(h))
        if user is None:
            raise HTTPException(status_code=404)
        groups = user_service.user_groups(session, user.id)
        return _render(request, "user.html", {"user": user, "groups": groups})

    user = user_service.find_by_handle(session, h)
    if user is None:
        raise HTTPException(status_code=404)
    return RedirectResponse(url=f"/users/{user.id}", status_code=303)


@app.get("/users/{user_id}/edit", response_class=HTMLResponse)
def user_edit_get(
    request: Request,
    user_id: int,
    e: Optional[str] = None,
    caller: Caller = Depends(require_user),
    session: Session = Depends(get_session),
):
    if not can_edit(caller, user_id):
        raise Forbidden()
    user = get_user(session, user_id)
    if user is None:
        raise HTTPException(status_code=404)
    return _render(request, "edit_user.html", {"user": user, "error": parse_error(e)})


@app.post("/users/{user_id}")
@app.put("/users/{user_id}")
def user_edit_post(
    user_id: int,
    real_name: str = Form(...),
    handle: str = Form(...),
    email: str = Form(...),
    mmost: str = Form(...),
    bio: str = Form(""),
    password: str = Form(""),
    tier: Optional[str] = Form(None),
    active: Optional[str] = Form(None),
    caller: Caller = Depends(require_user),
    session: Session = Depends(get_session),
):
    form = user_service.EditUserForm(
        real_name=real_name,
        handle=handle,
        email=email,
        mmost=mmost,
        bio=bio,
        password=password,
        tier=_parse_tier(tier),
        active=_parse_flag(active),
    )
    try:
        user_service.edit_user(session, caller, user_id, form)
    except FormRejected as rej:
        return RedirectResponse(url=f"/users/{user_id}/edit?e={rej.code.encode()}", status_code=303)
    except LookupError:
        raise HTTPException(status_code=404)
    return RedirectResponse(url=f"/users/{user_id}", status_code=303)


@app.post("/users/{user_id}/delete")
@app.delete("/users/{user_id}")
def user_delete(
    user_id: int,
    caller: Caller = Depends(require_admin),
    session: Session = Depends(get_session),
):
    try:
        user_service.delete_user(session, user_id)
    except LookupError:
        raise HTTPException(status_code=404)
    return RedirectResponse(url="/users", status_code=303)
