from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime
from typing import Any

from flask import has_request_context, request

from propertipro.extensions import db
from propertipro.models import IdempotencyKey


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def idempotency_enforced() -> bool:
    return _env_bool("ENABLE_IDEMPOTENCY_ENFORCEMENT", False)


def _canonical_json(payload: Any) -> str:
    try:
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    except Exception:
        return str(payload)


def _hash_request(*, scope: str, payload: Any) -> str:
    raw = f"{scope.strip()}|{_canonical_json(payload)}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    if not has_request_context():
        return None
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128]


def lookup_response(user_id: int | None, scope: str, payload: Any, *, idempotency_key: str | None = None):
    """Resolve an Idempotency-Key for ``scope``.

    Returns None when no key was sent (and none is required), otherwise a
    ``(state, body_or_row, status)`` tuple where state is one of
    ``hit``, ``miss``, ``conflict`` or ``required``.
    """
    k = (idempotency_key or get_idempotency_key() or "").strip()[:128]
    if not k:
        if idempotency_enforced():
            return (
                "required",
                {
                    "ok": False,
                    "error": "IDEMPOTENCY_KEY_REQUIRED",
                    "message": f"Idempotency-Key header is required for {scope}.",
                },
                400,
            )
        return None

    req_hash = _hash_request(scope=scope, payload=payload)
    row = IdempotencyKey.query.filter_by(scope=scope, key=k).first()
    if row:
        if (row.request_hash or "").strip() and row.request_hash != req_hash:
            return (
                "conflict",
                {
                    "ok": False,
                    "error": "IDEMPOTENCY_KEY_REUSE",
                    "message": "This Idempotency-Key was already used with a different request payload.",
                },
                409,
            )
        if not row.response_json:
            return (
                "conflict",
                {
                    "ok": False,
                    "error": "IDEMPOTENCY_IN_PROGRESS",
                    "message": "A request with this Idempotency-Key is still being processed.",
                },
                409,
            )
        try:
            return ("hit", json.loads(row.response_json), int(row.status_code or 200))
        except ValueError:
            return ("hit", {"ok": True}, int(row.status_code or 200))

    row = IdempotencyKey(
        key=k,
        scope=scope,
        user_id=int(user_id) if user_id is not None else None,
        request_hash=req_hash,
        response_json=None,
        status_code=200,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    db.session.add(row)
    db.session.commit()
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int):
    try:
        row.response_json = json.dumps(response_json, separators=(",", ":"), default=str)
    except Exception:
        row.response_json = json.dumps({"ok": True})
    row.status_code = int(status_code or 200)
    row.updated_at = datetime.utcnow()
    db.session.add(row)
    db.session.commit()


def release_key(row: IdempotencyKey | None) -> None:
    """Drop a reserved key whose request failed so the client can retry it."""
    if row is None:
        return
    try:
        db.session.delete(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
