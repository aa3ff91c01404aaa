from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from msgproc.errors import StorageError, ValidationError
from msgproc.models.message import Message, MessageStatus

logger = logging.getLogger(__name__)

LAST_DAY = timedelta(days=1)


@contextmanager
def _storage_errors(op: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.error("storage operation failed", extra={"op": op, "error": str(e)})
        raise StorageError(op, "storage operation failed", e) from e


class MessageStorage:
    """Persistence of messages and the read-only aggregates over them.

    ``save`` is the only multi-statement unit and runs in one transaction.
    Updates are single statements; writing the value a row already holds is
    a no-op, and an update that matches no row is logged and ignored.
    Nothing here retries: failures surface as ``StorageError``.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def save(self, content: str) -> int:
        op = "storage.save"
        with _storage_errors(op):
            async with self._session_factory() as session:
                # rolls back on any exception, cancellation included
                async with session.begin():
                    msg = Message(content=content, status=MessageStatus.PENDING)
                    session.add(msg)
                    await session.flush()
                    msg_id = msg.id
        logger.debug("message saved", extra={"op": op, "msg_id": msg_id})
        return msg_id

    async def update_content(self, msg_id: int, content: str) -> None:
        await self._update("storage.update_content", msg_id, content=content)

    async def update_status(self, msg_id: int, status: MessageStatus | str) -> None:
        op = "storage.update_status"
        try:
            status = MessageStatus(status)
        except ValueError as e:
            raise ValidationError(op, f"unknown message status {status!r}", e) from e
        await self._update(op, msg_id, status=status)

    async def _update(self, op: str, msg_id: int, **values) -> None:
        with _storage_errors(op):
            async with self._session_factory() as session:
                async with session.begin():
                    res = await session.execute(
                        update(Message).where(Message.id == msg_id).values(**values)
                    )
        if res.rowcount == 0:
            logger.warning("no message matched update", extra={"op": op, "msg_id": msg_id})

    async def get(self, msg_id: int) -> Message | None:
        with _storage_errors("storage.get"):
            async with self._session_factory() as session:
                return await session.get(Message, msg_id)

    async def total_messages(self) -> int:
        with _storage_errors("storage.total_messages"):
            async with self._session_factory() as session:
                total = (await session.execute(select(func.count(Message.id)))).scalar_one()
        return int(total)

    async def messages_by_status(self) -> Dict[str, int]:
        with _storage_errors("storage.messages_by_status"):
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(Message.status, func.count(Message.id)).group_by(Message.status)
                    )
                ).all()
        return {MessageStatus(status).value: int(count) for status, count in rows}

    async def messages_last_day(self) -> int:
        with _storage_errors("storage.messages_last_day"):
            return await self._count_since(Message.created_at)

    async def messages_updated_last_day(self) -> int:
        with _storage_errors("storage.messages_updated_last_day"):
            return await self._count_since(Message.updated_at)

    async def _count_since(self, column) -> int:
        cutoff = datetime.now(timezone.utc) - LAST_DAY
        async with self._session_factory() as session:
            count = (
                await session.execute(select(func.count(Message.id)).where(column >= cutoff))
            ).scalar_one()
        return int(count)

    async def average_message_length(self) -> float:
        with _storage_errors("storage.average_message_length"):
            async with self._session_factory() as session:
                avg = (
                    await session.execute(select(func.avg(func.length(Message.content))))
                ).scalar_one()
        return float(avg) if avg is not None else 0.0
