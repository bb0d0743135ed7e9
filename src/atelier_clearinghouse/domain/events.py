"""Canonical event envelope and outbound notifications.

Every state transition yields one EventEnvelope. The envelope is persisted to
the lifecycle_events audit table inside the transaction and handed to the
realtime publisher after commit. Notifications travel alongside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from atelier_clearinghouse.domain.enums import EventDomain, NotificationType


@dataclass(frozen=True)
class EventEnvelope:
    """What happened, to which entity, by whom."""

    domain: EventDomain
    action: str
    entity_id: str
    actor_user_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain.value,
            "action": self.action,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "payload": self.payload,
        }


@dataclass(frozen=True)
class Notification:
    """A message for a single user, delivered through the Notifier."""

    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboundEvent:
    """An envelope plus the audience it should reach once the transaction commits."""

    envelope: EventEnvelope
    recipients: tuple[str, ...]
    notifications: tuple[Notification, ...] = ()
