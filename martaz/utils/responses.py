from __future__ import annotations

from flask import jsonify, request

from martaz.utils.text import as_bool


def ok(data=None, *, message: str | None = None, status: int = 200):
    payload = {"success": True, "ok": True, "data": data}
    if message:
        payload["message"] = message
    return jsonify(payload), status


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def arg_bool(name: str, default: bool = False) -> bool:
    return as_bool(request.args.get(name), default)
