"""Reconciliation job bodies.

Each job takes an optional ``now`` so it can be driven directly by tests or
by hand, independent of any timer. A job selects candidate order ids in one
read, then processes every order in its own unit of work: one failing order
is logged and counted, and never blocks the rest of the batch.

Every job is idempotent. Re-running it, or running two copies at once, only
repeats the selection; the per-order work re-checks eligibility under a row
lock and settlement refuses to run twice.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from atelier_clearinghouse.config import Settings, get_settings
from atelier_clearinghouse.domain.enums import (
    PRE_SHIPMENT_STATUSES,
    NotificationType,
    OrderStatus,
)
from atelier_clearinghouse.domain.events import Notification
from atelier_clearinghouse.domain.exceptions import ClearinghouseError
from atelier_clearinghouse.infrastructure.database.repositories import OrderRepository
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.services.order_service import OrderService
from atelier_clearinghouse.services.unit_of_work import (
    Clock,
    UnitOfWork,
    guarded_call,
    unit_of_work,
    utc_now,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from atelier_clearinghouse.domain.collaborators import Collaborators

logger = get_logger(__name__)

# Handler result: True = acted, False = nothing to do for this order.
OrderHandler = Callable[[UnitOfWork, "uuid.UUID"], Awaitable[bool]]
OrderPrecheck = Callable[["uuid.UUID"], Awaitable[bool]]

# Days before the deadline (negative = after) at which the designer is reminded.
DESIGNER_REMINDER_DAYS = (5, 3, 0, -1)
CUSTOMER_REMINDER_DAYS = (0, -1)


@dataclass
class JobReport:
    """Counts for a single job run."""

    job: str
    examined: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int | str]:
        return asdict(self)


def _designer_reminder(days_left: int, order_number: str) -> tuple[NotificationType, str, str]:
    if days_left == 5:
        return (
            NotificationType.DEADLINE_REMINDER,
            "Deadline in 5 days",
            f"Order {order_number} is due in 5 days",
        )
    if days_left == 3:
        return (
            NotificationType.DEADLINE_REMINDER,
            "Ship today",
            f"Order {order_number} is due in 3 days; ship today to arrive on time",
        )
    if days_left == 0:
        return (
            NotificationType.DEADLINE_REMINDER,
            "Deadline today",
            f"Order {order_number} is due today",
        )
    return (
        NotificationType.DEADLINE_OVERDUE,
        "Order overdue",
        f"Order {order_number} missed its deadline",
    )


class ReconciliationJobs:
    """Time-driven jobs that advance orders without human action."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collaborators: Collaborators,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._collaborators = collaborators
        self._settings = settings or get_settings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def poll_shipments(self, now: datetime | None = None) -> JobReport:
        """Ask the carrier about every shipped, undelivered order.

        The carrier is called with no transaction open; only a confirmed
        delivery opens a unit of work, which re-checks the order under its lock.
        """
        now = now or self._clock()
        async with self._uow(now) as uow:
            shipments = await OrderRepository(uow.session).shipments_awaiting_delivery()
        tracking = {order_id: (carrier, number) for order_id, carrier, number in shipments}
        delivered: dict[uuid.UUID, datetime | None] = {}

        async def track(order_id: uuid.UUID) -> bool:
            carrier, number = tracking[order_id]
            status = await guarded_call(
                "carrier", self._collaborators.tracker.track(carrier or "", number)
            )
            if status.is_delivered:
                delivered[order_id] = status.delivered_at
            return status.is_delivered

        async def handle(uow: UnitOfWork, order_id: uuid.UUID) -> bool:
            order = await OrderRepository(uow.session).get_by_id(order_id)
            if order is None or order.status != OrderStatus.SHIPPED or order.delivered_at:
                return False
            await OrderService(uow).mark_delivered(order.id, delivered_at=delivered[order_id])
            return True

        return await self._for_each("poll_shipments", now, tracking, handle, precheck=track)

    async def auto_confirm(self, now: datetime | None = None) -> JobReport:
        """Settle delivered orders whose confirmation window has lapsed."""
        now = now or self._clock()
        async with self._uow(now) as uow:
            order_ids = await OrderRepository(uow.session).ids_due_for_auto_confirm(now)

        async def handle(uow: UnitOfWork, order_id: uuid.UUID) -> bool:
            return await OrderService(uow).auto_confirm(order_id) is not None

        return await self._for_each("auto_confirm", now, order_ids, handle)

    async def auto_confirm_warnings(self, now: datetime | None = None) -> JobReport:
        """Warn customers whose order auto-confirms within the warning window."""
        now = now or self._clock()
        window_start = now + timedelta(hours=self._settings.auto_confirm_warning_min_hours)
        window_end = now + timedelta(hours=self._settings.auto_confirm_warning_max_hours)
        async with self._uow(now) as uow:
            order_ids = await OrderRepository(uow.session).ids_due_for_auto_confirm_warning(
                window_start, window_end
            )

        async def handle(uow: UnitOfWork, order_id: uuid.UUID) -> bool:
            return await OrderService(uow).warn_auto_confirm(order_id) is not None

        return await self._for_each("auto_confirm_warnings", now, order_ids, handle)

    async def deadline_reminders(self, now: datetime | None = None) -> JobReport:
        """Remind designers (and customers) of approaching or missed deadlines.

        Days are counted between UTC calendar dates, so a run at any hour of
        the day sends the same reminders.
        """
        now = now or self._clock()
        async with self._uow(now) as uow:
            orders = await OrderRepository(uow.session).pre_shipment_with_deadline()
            order_ids = [o.id for o in orders]

        async def handle(uow: UnitOfWork, order_id: uuid.UUID) -> bool:
            order = await OrderRepository(uow.session).get_by_id(order_id)
            if (
                order is None
                or order.deadline is None
                or OrderStatus(order.status) not in PRE_SHIPMENT_STATUSES
            ):
                return False

            days_left = (order.deadline.date() - now.date()).days
            sent = False
            data = {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "days_left": days_left,
            }
            if days_left in DESIGNER_REMINDER_DAYS:
                note_type, title, message = _designer_reminder(days_left, order.order_number)
                uow.record_notification(
                    Notification(order.designer_id, note_type, title, message, data)
                )
                sent = True
            if days_left in CUSTOMER_REMINDER_DAYS:
                uow.record_notification(
                    Notification(
                        order.customer_id,
                        NotificationType.DEADLINE_REMINDER
                        if days_left == 0
                        else NotificationType.DEADLINE_OVERDUE,
                        "Your order is due today" if days_left == 0 else "Your order is late",
                        f"We've reminded the designer about order {order.order_number}",
                        data,
                    )
                )
                sent = True
            return sent

        return await self._for_each("deadline_reminders", now, order_ids, handle)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _uow(self, now: datetime):  # noqa: ANN202
        return unit_of_work(
            self._session_factory,
            self._collaborators,
            self._settings,
            clock=lambda: now,
        )

    async def _for_each(
        self,
        job: str,
        now: datetime,
        order_ids: Iterable[uuid.UUID],
        handler: OrderHandler,
        *,
        precheck: OrderPrecheck | None = None,
    ) -> JobReport:
        """Run ``handler`` per order in its own unit of work.

        ``precheck`` runs first, outside any transaction; when it returns False
        the order is skipped without opening one.
        """
        report = JobReport(job=job)
        for order_id in order_ids:
            report.examined += 1
            try:
                if precheck is not None and not await precheck(order_id):
                    acted = False
                else:
                    async with self._uow(now) as uow:
                        acted = await handler(uow, order_id)
            except ClearinghouseError as exc:
                report.failed += 1
                logger.warning(
                    "scheduler.order_failed",
                    job=job,
                    order_id=str(order_id),
                    code=exc.code,
                    error=exc.message,
                )
                continue
            except Exception:
                report.failed += 1
                logger.exception("scheduler.order_crashed", job=job, order_id=str(order_id))
                continue

            if acted:
                report.succeeded += 1
            else:
                report.skipped += 1

        logger.info("scheduler.job_finished", **report.to_dict())
        return report
