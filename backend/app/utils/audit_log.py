from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.created",
    "booking.updated",
    "booking.status_changed",
    "booking.cancelled",
]
AuditInitiator = Literal["user", "staff", "system"]


def _build_audit_logger() -> logging.Logger:
    """Dedicated JSON-lines logger, kept out of the application log stream."""
    audit = logging.getLogger("audit")
    audit.setLevel(logging.INFO)
    if not audit.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        audit.addHandler(handler)
    audit.propagate = False
    return audit


_audit_logger = _build_audit_logger()


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def build_audit_record(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking_id: int,
    fields: dict[str, Any],
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "booking_id": booking_id,
    }
    record.update(fields)
    record.update(extra or {})
    return {key: _jsonable(value) for key, value in record.items() if value is not None}


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking_id: int,
    package_id: Optional[int],
    user_id: Optional[int],
    actor_id: Optional[int],
    confirmation_code: Optional[str],
    status_from: Any = None,
    status_to: Any = None,
    version: Optional[int] = None,
    total_price: Optional[int] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one audit line for a booking change. Raises RuntimeError if the write fails."""
    record = build_audit_record(
        action=action,
        initiator=initiator,
        booking_id=booking_id,
        fields={
            "package_id": package_id,
            "user_id": user_id,
            "actor_id": actor_id,
            "confirmation_code": confirmation_code,
            "status_from": status_from,
            "status_to": status_to,
            "version": version,
            "total_price": total_price,
            "message": message,
        },
        extra=extra,
    )
    try:
        _audit_logger.info(json.dumps(record, ensure_ascii=False))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
