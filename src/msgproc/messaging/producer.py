from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from aio_pika import DeliveryMode, Message
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError

from msgproc.errors import PublishCancelledError, PublishError
from msgproc.messaging.envelope import Envelope, encode
from msgproc.messaging.rabbit import Rabbit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    exchange: str
    routing_key: str
    delivery_tag: int | None


class Producer:
    def __init__(self, rabbit: Rabbit, publish_timeout: float = 5.0) -> None:
        self.rabbit = rabbit
        self.publish_timeout = publish_timeout

    async def send(self, content: str, msg_id: int, cancel_event: asyncio.Event | None = None) -> Placement:
        """Publish the envelope for ``msg_id`` and wait for the broker to confirm it.

        Nothing is sent once ``cancel_event`` is set. There is no retry: on
        failure the stored row stays ``pending``.
        """
        op = "producer.send"
        log_extra = {"op": op, "msg_id": msg_id}

        if cancel_event is not None and cancel_event.is_set():
            logger.error("publish cancelled before send", extra=log_extra)
            raise PublishCancelledError(op, "cancelled before send")

        exchange = self.rabbit.exchange
        if exchange is None:
            raise PublishError(op, "broker is not connected")

        msg = Message(
            body=encode(Envelope.of(content, msg_id)),
            message_id=str(msg_id),
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
        )
        try:
            confirmation = await asyncio.wait_for(
                exchange.publish(msg, routing_key=self.rabbit.routing_key, mandatory=True),
                timeout=self.publish_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("publish not confirmed in time", extra=log_extra)
            raise PublishError(op, f"no confirm within {self.publish_timeout}s", e) from e
        except (AMQPError, ChannelInvalidStateError, ConnectionError) as e:
            logger.error("failed to publish message", extra={**log_extra, "error": str(e)})
            raise PublishError(op, "failed to publish message", e) from e

        placement = Placement(
            exchange=self.rabbit.topic,
            routing_key=self.rabbit.routing_key,
            delivery_tag=getattr(confirmation, "delivery_tag", None),
        )
        logger.info("message published", extra={**log_extra, "delivery_tag": placement.delivery_tag})
        return placement
