from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from innopark.context import get_correlation_id
from innopark.core.events import event_bus

published_events: list[dict[str, Any]] = []


def build_envelope(
    event_type: str,
    *,
    actor_user_id: int | None,
    company_id: int | None,
    payload: dict[str, Any],
    correlation_id: str | None = None,
) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_user_id": actor_user_id,
        "company_id": company_id,
        "correlation_id": correlation_id,
        "version": 1,
        "payload": payload,
    }


def publish(envelope: dict[str, Any]) -> None:
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
