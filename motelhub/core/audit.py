# motelhub/core/audit.py
"""
Audit trail for money-moving actions.

Invoice generation, manual payments, online payment requests and gateway
callbacks each produce one JSON line in `<AUDIT_LOG_DIR>/audit.log`, kept
apart from the application log so it can be handed over for reconciliation.
"""
import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from fastapi import Request

from ..models.user import User
from .config import get_settings

AUDIT_LOGGER_NAME = "motelhub.audit"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10


def get_audit_logger() -> logging.Logger:
    """Configured on first use so AUDIT_LOG_DIR from the environment applies."""
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    if audit_logger.handlers:
        return audit_logger

    log_dir = get_settings().audit_log_dir
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, "audit.log"),
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False
    return audit_logger


def get_client_ip(request: Optional[Request]) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    if request is None:
        return "unknown"
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "unknown"


def log_action(
    action: str,
    resource_type: str,
    resource_id: str,
    user: Optional[User] = None,
    request: Optional[Request] = None,
    details: Optional[Dict[str, Any]] = None,
    status: str = "success",
) -> None:
    """
    Append one entry to the audit trail.

    `user` is None for gateway callbacks, which are recorded as the
    "gateway" actor.
    """
    entry: Dict[str, Any] = {
        "at": datetime.now(timezone.utc).isoformat(),
        "action": action.upper(),
        "resource": f"{resource_type}:{resource_id}",
        "actor_id": str(user.id) if user else None,
        "actor": user.email if user else "gateway",
        "role": user.role.value if user else None,
        "ip": get_client_ip(request),
        "status": status,
    }
    if details:
        entry["details"] = details

    get_audit_logger().info(json.dumps(entry, ensure_ascii=False, default=str))
