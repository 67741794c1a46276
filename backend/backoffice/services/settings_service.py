# Overview: Service-layer operations for per-outlet settings.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Outlet, OutletSetting
from backoffice.errors import NotFound


VARIANCE_THRESHOLD_KEY = "register.variance_threshold_cents"


def get_outlet_setting(outlet_id: int, key: str, default: str | None = None) -> str | None:
    row = db.session.query(OutletSetting).filter_by(outlet_id=outlet_id, key=key).one_or_none()
    if row is None or row.value is None:
        return default
    return row.value


def get_int_setting(outlet_id: int, key: str, default: int) -> int:
    raw = get_outlet_setting(outlet_id, key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        current_app.logger.warning("ignoring non-integer setting %s=%r for outlet %s", key, raw, outlet_id)
        return default


def set_outlet_setting(outlet_id: int, key: str, value) -> OutletSetting:
    if not key or not key.strip():
        raise ValueError("key is required")
    if db.session.get(Outlet, outlet_id) is None:
        raise NotFound("outlet not found", details={"outlet_id": outlet_id})

    row = db.session.query(OutletSetting).filter_by(outlet_id=outlet_id, key=key).one_or_none()
    stored = None if value is None else str(value)
    if row is None:
        row = OutletSetting(outlet_id=outlet_id, key=key, value=stored)
        db.session.add(row)
    else:
        row.value = stored
    db.session.commit()
    return row


def variance_threshold_cents(outlet_id: int) -> int:
    default = current_app.config.get("DEFAULT_VARIANCE_THRESHOLD_CENTS", 1000)
    return get_int_setting(outlet_id, VARIANCE_THRESHOLD_KEY, default)
