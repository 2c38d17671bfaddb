"""
routes/admin.py — Admin panel authentication routes.

Endpoints (url_prefix = ADMIN_URL_PREFIX, default /admin):
  POST   /login  → 200  {"success", "token", "admin"} + admin_token cookie
  GET    /me     → 200  {"success", "admin"}  (admin token or legacy header)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from mrgcar.app.extensions import db
from mrgcar.app.middleware.auth_middleware import require_admin
from mrgcar.app.middleware.cookies import set_admin_cookie
from mrgcar.app.schemas.auth_schema import AdminLoginSchema
from mrgcar.app.services import admin_service

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/login", methods=["POST"])
def login():
    """POST /admin/login — Authenticate an admin account."""
    payload = request.get_json(silent=True)
    data = AdminLoginSchema().load(payload if isinstance(payload, dict) else {})
    result = admin_service.login_admin(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    response = jsonify({"success": True, **result})
    set_admin_cookie(response, result["token"])
    return response, 200


@admin_bp.route("/me", methods=["GET"])
@require_admin
def me():
    """GET /admin/me — Echo the verified admin claims."""
    return jsonify({"success": True, "admin": g.admin}), 200
