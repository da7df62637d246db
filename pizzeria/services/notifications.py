"""
Pizzeria — Customer notification center
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.exceptions import PersistenceError
from pizzeria.models import Notification
from pizzeria.schemas.user import NotificationFeed, NotificationRead

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str | None,
        type: str,
        title: str,
        message: str,
        order_id: str | None = None,
    ) -> NotificationRead:
        row = Notification(
            user_id=user_id,
            order_id=order_id,
            type=type,
            title=title,
            message=message,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(row)
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not store notification: {exc}") from exc
        return NotificationRead.model_validate(row)

    async def list_for_user(self, user_id: str, limit: int = DEFAULT_LIMIT) -> NotificationFeed:
        """Newest first, capped at `limit`; unread_count covers every unread row."""
        try:
            rows = await self.db.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            unread = await self.db.scalar(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load notifications: {exc}") from exc
        return NotificationFeed(
            notifications=[NotificationRead.model_validate(n) for n in rows.scalars().all()],
            unread_count=unread or 0,
        )

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """Returns False when the notification does not exist or belongs to someone else."""
        row = await self.db.get(Notification, notification_id)
        if row is None or row.user_id != user_id:
            return False
        row.is_read = True
        await self._commit()
        return True

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await self._commit()
        logger.info("Marked %d notifications read for user %s", result.rowcount, user_id)
        return result.rowcount

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(f"Could not update notifications: {exc}") from exc
