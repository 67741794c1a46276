# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import RequestContext
from .errors import LedgerError


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


def require_context(f):
    """
    Build the RequestContext from the identity gateway's headers.

    The gateway authenticates the caller and asserts scope:
    - X-Tenant-Id, X-Outlet-Id: required
    - X-Actor-Id: optional (system integrations may omit it)
    - X-Actor-Role: OWNER | BRAND_ADMIN | MANAGER | STAFF (default STAFF)

    Sets g.ctx. Returns 401 when scope headers are missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            tenant_id = _header_int("X-Tenant-Id")
            outlet_id = _header_int("X-Outlet-Id")
            actor_id = _header_int("X-Actor-Id")
            role = (request.headers.get("X-Actor-Role") or "STAFF").strip().upper()
            if tenant_id is None or outlet_id is None:
                return jsonify({"error": "Tenant and outlet scope required"}), 401
            g.ctx = RequestContext(tenant_id=tenant_id, outlet_id=outlet_id, actor_id=actor_id, role=role)
        except ValueError:
            return jsonify({"error": "Invalid scope headers"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_manager(f):
    """Requires require_context first. 403 unless the actor has a manager-level role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.ctx.is_manager:
            return jsonify({"error": "Manager role required", "code": "unauthorized"}), 403
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: LedgerError):
    return jsonify(exc.to_dict()), exc.status_code
