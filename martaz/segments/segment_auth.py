from __future__ import annotations

from flask import Blueprint

from martaz.services import user_service
from martaz.utils.auth import require_user
from martaz.utils.jwt_utils import create_token
from martaz.utils.responses import json_body, ok

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register():
    user = user_service.register_user(json_body())
    return ok(
        {"token": create_token(int(user.id)), "user": user.to_dict()},
        message="Registration successful",
        status=201,
    )


@auth_bp.post("/login")
def login():
    payload = json_body()
    user = user_service.authenticate(payload.get("email"), payload.get("password"))
    return ok({"token": create_token(int(user.id)), "user": user.to_dict()})


@auth_bp.get("/me")
def me():
    return ok(require_user().to_dict())


@auth_bp.put("/me")
def update_me():
    user = user_service.update_profile(require_user(), json_body())
    return ok(user.to_dict(), message="Profile updated")


@auth_bp.post("/forgot-password")
def forgot_password():
    user_service.request_password_reset(json_body().get("email"))
    return ok(None, message="If your email is registered, you will receive a password reset link")


@auth_bp.post("/reset-password")
def reset_password():
    payload = json_body()
    user_service.reset_password(payload.get("token"), payload.get("password", payload.get("new_password")))
    return ok(None, message="Password has been reset")
