# orderbot/log.py
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict

SENSITIVE_KEYS = {
    "access_token",
    "authorization",
    "whatsapp_token",
    "password",
    "secret",
    "token",
}

MAX_STR = 500
MAX_LIST = 50


def _truncate_str(s: str) -> str:
    if len(s) <= MAX_STR:
        return s
    return s[:MAX_STR] + "...(truncated)"


def _sanitize(obj: Any, depth: int = 0) -> Any:
    """
    Make a payload JSON-serializable, mask secrets and cap its size.
    """
    if depth > 5:
        return "...(max_depth)"

    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return _truncate_str(obj)
    if isinstance(obj, (bytes, bytearray)):
        return f"<bytes:{len(obj)}>"

    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if str(k).lower() in SENSITIVE_KEYS:
                out[str(k)] = "***"
            else:
                out[str(k)] = _sanitize(v, depth + 1)
        return out

    if isinstance(obj, (list, tuple, set)):
        lst = list(obj)
        out_list = [_sanitize(x, depth + 1) for x in lst[:MAX_LIST]]
        if len(lst) > MAX_LIST:
            out_list.append("...(truncated)")
        return out_list

    if isinstance(obj, BaseException):
        return {"error_type": type(obj).__name__, "error_message": _truncate_str(str(obj))}

    return _truncate_str(str(obj))


logger = logging.getLogger("orderbot")
logger.setLevel(logging.INFO)
logger.propagate = False

if not logger.handlers:
    h = logging.StreamHandler()
    h.setLevel(logging.INFO)
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(h)


def new_trace_id() -> str:
    return uuid.uuid4().hex[:12]


def log_event(trace_id: str | None, stage: str, payload: Dict[str, Any], level: int = logging.INFO) -> None:
    """
    One JSON object per line, so log shippers can index trace_id/stage.
    """
    msg = {
        "trace_id": trace_id,
        "stage": stage,
        "payload": _sanitize(payload),
    }
    logger.log(level, json.dumps(msg, ensure_ascii=False))
