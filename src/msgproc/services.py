from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict

from msgproc.errors import ValidationError
from msgproc.messaging.producer import Producer
from msgproc.storage import MessageStorage

logger = logging.getLogger(__name__)


class MessageService:
    """Ingest path: store the message, then hand it to the broker."""

    def __init__(self, storage: MessageStorage, producer: Producer) -> None:
        self.storage = storage
        self.producer = producer

    async def process_message(self, content: str, cancel_event: asyncio.Event | None = None) -> int:
        """Return the id of the new, still ``pending``, message.

        If publishing fails after the row was committed, the error is raised
        and the row is left ``pending``; nothing sweeps such rows.
        """
        op = "services.process_message"
        if not isinstance(content, str) or not content.strip():
            raise ValidationError(op, "message content must be a non-empty string")

        msg_id = await self.storage.save(content)
        logger.info("message saved", extra={"op": op, "msg_id": msg_id})

        placement = await self.producer.send(content, msg_id, cancel_event=cancel_event)
        logger.info(
            "message handed off",
            extra={"op": op, "msg_id": msg_id, "delivery_tag": placement.delivery_tag},
        )
        return msg_id


@dataclass(frozen=True)
class StatisticsSnapshot:
    total_messages: int
    messages_by_status: Dict[str, int] = field(default_factory=dict)
    messages_last_day: int = 0
    messages_updated_last_day: int = 0
    average_message_length: float = 0.0


class StatisticsService:
    def __init__(self, storage: MessageStorage) -> None:
        self.storage = storage

    async def snapshot(self) -> StatisticsSnapshot:
        # sequential, the first failing aggregate aborts the snapshot
        total = await self.storage.total_messages()
        by_status = await self.storage.messages_by_status()
        last_day = await self.storage.messages_last_day()
        updated_last_day = await self.storage.messages_updated_last_day()
        avg_length = await self.storage.average_message_length()
        logger.debug("statistics computed", extra={"op": "services.snapshot", "total": total})
        return StatisticsSnapshot(
            total_messages=total,
            messages_by_status=by_status,
            messages_last_day=last_day,
            messages_updated_last_day=updated_last_day,
            average_message_length=avg_length,
        )
