"""Period reminders.

A daily job looks at every user's current cycle and creates an in-app
reminder 5, 3 and 1 days before the next period starts. At most one
reminder per user and day is stored.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_wellness.cycle.phase import DEFAULT_CYCLE_LENGTH, cycle_day, days_until_next_period
from cycle_wellness.database.models import Notification, UserCycle

logger = logging.getLogger(__name__)

PERIOD_REMINDER = "period_reminder"


@dataclass(frozen=True)
class ReminderText:
    title: str
    message: str


REMINDERS: dict[int, ReminderText] = {
    5: ReminderText(
        "📅 Напоминание о менструации",
        "Через 5 дней начнется новый цикл. Самое время позаботиться о себе и подготовиться.",
    ),
    3: ReminderText(
        "🌸 Скоро начало цикла",
        "Через 3 дня начнется менструация. Проверьте, всё ли необходимое у вас под рукой.",
    ),
    1: ReminderText(
        "💫 Завтра начало цикла",
        "Завтра начнется менструация. Позаботьтесь о комфорте и не планируйте слишком много дел.",
    ),
}


def reminder_for(cycle: UserCycle, today: date) -> ReminderText | None:
    """Reminder due today for this cycle, if any."""
    length = cycle.cycle_length or DEFAULT_CYCLE_LENGTH
    days_left = days_until_next_period(cycle_day(cycle.start_date, length, today), length)
    return REMINDERS.get(days_left)


async def current_cycles(db: AsyncSession) -> list[UserCycle]:
    """Latest cycle of every user."""
    result = await db.execute(
        select(UserCycle).order_by(UserCycle.user_id, UserCycle.start_date.desc())
    )
    latest: dict[uuid.UUID, UserCycle] = {}
    for cycle in result.scalars().all():
        latest.setdefault(cycle.user_id, cycle)
    return list(latest.values())


async def check_period_notifications(db: AsyncSession, today: date | None = None) -> int:
    """Create today's reminders.

    Returns:
        Number of notifications created
    """
    today = today or datetime.now(timezone.utc).date()
    cycles = await current_cycles(db)
    logger.info(f"Checking period reminders for {len(cycles)} users")

    created = 0
    for cycle in cycles:
        reminder = reminder_for(cycle, today)
        if reminder is None:
            continue

        existing = await db.execute(
            select(Notification.id).where(
                Notification.user_id == cycle.user_id,
                Notification.notification_type == PERIOD_REMINDER,
                Notification.scheduled_for == today,
            )
        )
        if existing.first() is not None:
            logger.debug(f"Reminder already exists for {cycle.user_id} on {today}")
            continue

        db.add(
            Notification(
                user_id=cycle.user_id,
                notification_type=PERIOD_REMINDER,
                title=reminder.title,
                message=reminder.message,
                scheduled_for=today,
            )
        )
        created += 1

    await db.commit()
    logger.info(f"Created {created} period reminders")
    return created


async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(
        query.order_by(Notification.scheduled_for.desc(), Notification.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> bool:
    """Returns False when the notification does not belong to the user."""
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        return False
    notification.is_read = True
    await db.commit()
    return True
