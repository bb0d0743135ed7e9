"""Unit of Work - one database transaction plus an outbox.

Every public operation runs inside ``unit_of_work()``:

    async with unit_of_work(session_factory, collaborators) as uow:
        offer = await OfferService(uow).accept(offer_id, actor_id)

Services mutate rows, append audit events and queue outbound events on the
UnitOfWork. When the block exits cleanly the transaction commits and only then
are the queued notifications and realtime envelopes delivered. Delivery is
fire-and-forget: a failing notifier never rolls back a committed transition.

On a ClearinghouseError the transaction rolls back, unless the error is
flagged ``commit_state`` (e.g. an offer forced into EXPIRED by a late accept),
in which case the forced transition is committed before re-raising.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.orm.exc import StaleDataError

from atelier_clearinghouse.config import Settings, get_settings
from atelier_clearinghouse.domain.events import EventEnvelope, Notification, OutboundEvent
from atelier_clearinghouse.domain.exceptions import (
    ClearinghouseError,
    ConcurrentModificationError,
    ExternalDependencyError,
)
from atelier_clearinghouse.infrastructure.database.repositories import EventRepository
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from atelier_clearinghouse.domain.collaborators import Collaborators

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]
UowFactory = Callable[[], AbstractAsyncContextManager["UnitOfWork"]]


def utc_now() -> datetime:
    return datetime.now(UTC)


async def guarded_call(dependency: str, call: Awaitable[T]) -> T:
    """Await a collaborator call, wrapping any failure in ExternalDependencyError."""
    try:
        return await call
    except ClearinghouseError:
        raise
    except Exception as exc:
        logger.warning("collaborator.failed", dependency=dependency, error=str(exc))
        raise ExternalDependencyError(
            f"{dependency.capitalize()} lookup failed: {exc}",
            code=f"{dependency.upper()}_UNAVAILABLE",
        ) from exc


class UnitOfWork:
    """Request-scoped context handed to every service."""

    def __init__(
        self,
        session: AsyncSession,
        collaborators: Collaborators,
        settings: Settings,
        clock: Clock = utc_now,
    ) -> None:
        self.session = session
        self.collaborators = collaborators
        self.settings = settings
        self._clock = clock
        self._events = EventRepository(session)
        self._outbox: list[OutboundEvent] = []
        self._notifications: list[Notification] = []

    def now(self) -> datetime:
        return self._clock()

    @property
    def outbox(self) -> tuple[OutboundEvent, ...]:
        return tuple(self._outbox)

    async def flush(self, entity: str) -> None:
        """Flush pending changes; a stale version means someone else got there first."""
        try:
            await self.session.flush()
        except StaleDataError as exc:
            logger.warning("uow.stale_write", entity=entity)
            raise ConcurrentModificationError(entity) from exc

    def record_notification(self, notification: Notification) -> None:
        """Queue a notification that is not tied to a transition envelope."""
        self._notifications.append(notification)

    def record(self, event: OutboundEvent) -> None:
        """Queue an outbound event for delivery after commit."""
        self._outbox.append(event)

    async def emit(
        self,
        envelope: EventEnvelope,
        *,
        recipients: Iterable[str],
        notifications: Iterable[Notification] = (),
        old_status: str | None = None,
        new_status: str | None = None,
    ) -> None:
        """Append the audit row for a transition and queue its delivery."""
        await self._events.record(
            envelope, old_status=old_status, new_status=new_status, created_at=self.now()
        )
        self.record(
            OutboundEvent(
                envelope=envelope,
                recipients=tuple(dict.fromkeys(recipients)),
                notifications=tuple(notifications),
            )
        )

    async def deliver(self) -> None:
        """Hand queued events and notifications to the delivery collaborators."""
        outbox, self._outbox = self._outbox, []
        loose, self._notifications = self._notifications, []
        for event in outbox:
            for note in event.notifications:
                await self._send(note)
            if event.recipients:
                await self._publish(event)
        for note in loose:
            await self._send(note)

    async def _send(self, note: Notification) -> None:
        try:
            await self.collaborators.notifier.notify(
                note.user_id, note.type.value, note.title, note.message, note.data
            )
        except Exception as exc:
            logger.warning(
                "outbox.notify_failed",
                user_id=note.user_id,
                type=note.type.value,
                error=str(exc),
            )

    async def _publish(self, event: OutboundEvent) -> None:
        try:
            await self.collaborators.publisher.publish(list(event.recipients), event.envelope)
        except Exception as exc:
            logger.warning(
                "outbox.publish_failed",
                action=event.envelope.action,
                entity_id=event.envelope.entity_id,
                error=str(exc),
            )


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    collaborators: Collaborators,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> AsyncIterator[UnitOfWork]:
    """Open a session, yield a UnitOfWork, then commit and deliver or roll back."""
    async with session_factory() as session:
        uow = UnitOfWork(session, collaborators, settings or get_settings(), clock)
        try:
            yield uow
        except ClearinghouseError as exc:
            if exc.commit_state:
                await session.commit()
                logger.info("uow.committed_before_error", code=exc.code)
                await uow.deliver()
            else:
                await session.rollback()
            raise
        except StaleDataError as exc:
            await session.rollback()
            raise ConcurrentModificationError("record") from exc
        except Exception:
            await session.rollback()
            raise

        try:
            await session.commit()
        except StaleDataError as exc:
            await session.rollback()
            raise ConcurrentModificationError("record") from exc
        await uow.deliver()
