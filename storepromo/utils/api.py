# --- storepromo/utils/api.py ---
from datetime import datetime, timedelta, timezone
from flask import current_app, has_app_context, jsonify


def _api_time_human():
    offset = 8
    if has_app_context():
        offset = current_app.config.get("STORE_API_UTC_OFFSET_HOURS", offset)
    now = datetime.now(timezone.utc) + timedelta(hours=offset)
    return now.strftime("%Y-%m-%d %H:%M:%S")


def _payload(data):
    if data is None:
        return {}
    if isinstance(data, list):
        return {"items": data}
    return dict(data)


def api_ok(message, data=None):
    return {
        "status": True,
        "message": message,
        "data": {
            **_payload(data),
            "API_TIME_HUMAN": _api_time_human(),
        },
    }


def api_error(message, data=None):
    return {
        "status": False,
        "message": message,
        "data": {
            **_payload(data),
            "API_TIME_HUMAN": _api_time_human(),
        },
    }


# ---- standard API response format ------------------------------------------
def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r

def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r
