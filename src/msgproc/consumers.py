from __future__ import annotations

import asyncio
import logging

from aio_pika.abc import AbstractIncomingMessage, AbstractQueueIterator

from msgproc.errors import DecodeError, StorageError, UpdateError
from msgproc.messaging.envelope import Envelope, decode
from msgproc.messaging.rabbit import Rabbit
from msgproc.models.message import MessageStatus
from msgproc.storage import MessageStorage

logger = logging.getLogger(__name__)


class MessageProcessor:
    """Consumer-group member that finalizes stored messages.

    A delivery is acknowledged only once a terminal status has been written.
    Undecodable deliveries are rejected without requeue and end up in the
    parking queue. A failed status write or any other failure requeues the
    delivery, so every handling step must be safe to replay.
    """

    def __init__(self, rabbit: Rabbit, storage: MessageStorage, requeue_delay: float = 1.0) -> None:
        self.rabbit = rabbit
        self.storage = storage
        self.requeue_delay = requeue_delay
        self._iterator: AbstractQueueIterator | None = None

    async def setup(self) -> AbstractQueueIterator:
        if self.rabbit.queue is None:
            raise RuntimeError("broker is not connected")
        self._iterator = self.rabbit.queue.iterator()
        logger.info("joined consumer group", extra={"consumer_group": self.rabbit.consumer_group})
        return self._iterator

    async def cleanup(self) -> None:
        qiter, self._iterator = self._iterator, None
        if qiter is not None:
            await qiter.close()
            logger.info("left consumer group", extra={"consumer_group": self.rabbit.consumer_group})

    async def run(self, stop_event: asyncio.Event) -> None:
        qiter = await self.setup()
        watcher = asyncio.create_task(self._close_on(stop_event))
        try:
            async for message in qiter:
                await self.handle(message)
                if stop_event.is_set():
                    break
        finally:
            watcher.cancel()
            await self.cleanup()

    async def _close_on(self, stop_event: asyncio.Event) -> None:
        await stop_event.wait()
        await self.cleanup()

    async def handle(self, message: AbstractIncomingMessage) -> None:
        op = "consumer.handle"
        try:
            envelope = decode(message.body)
        except DecodeError as e:
            # never acknowledged: the queue dead-letters it to the parking queue
            logger.error(
                "parking undecodable envelope",
                extra={"op": op, "delivery_tag": message.delivery_tag, "error": str(e)},
            )
            await message.reject(requeue=False)
            return

        logger.info("message received", extra={"op": op, "msg_id": envelope.id, "delivery_tag": message.delivery_tag})
        try:
            async with message.process(requeue=True):
                status = await self._reconcile(envelope)
        except StorageError as e:
            logger.warning(
                "status not recorded, delivery requeued",
                extra={"op": op, "msg_id": envelope.id, "error": str(e)},
            )
            return
        except Exception:
            logger.exception(
                "unexpected failure, delivery requeued",
                extra={"op": op, "msg_id": envelope.id, "delivery_tag": message.delivery_tag},
            )
            await asyncio.sleep(self.requeue_delay)
            return
        logger.info("message processed", extra={"op": op, "msg_id": envelope.id, "status": status.value})

    async def _reconcile(self, envelope: Envelope) -> MessageStatus:
        op = "consumer.reconcile"
        status = MessageStatus.COMPLETED
        try:
            await self.storage.update_content(envelope.id, envelope.content.strip())
        except StorageError as e:
            err = UpdateError(op, f"failed to update message {envelope.id}", e)
            logger.error(str(err), extra={"op": op, "msg_id": envelope.id})
            status = MessageStatus.FAILED

        try:
            await self.storage.update_status(envelope.id, status)
        except StorageError:
            logger.error(
                "failed to update message status",
                extra={"op": op, "msg_id": envelope.id, "status": status.value},
            )
            await asyncio.sleep(self.requeue_delay)
            raise
        return status
