from __future__ import annotations

import logging

import aio_pika
from aio_pika import ExchangeType, RobustChannel, RobustConnection
from aio_pika.abc import AbstractExchange, AbstractQueue

logger = logging.getLogger(__name__)


class Rabbit:
    """Broker connection and topology: one topic exchange feeding one consumer-group queue."""

    def __init__(self, url: str, topic: str, routing_key: str, consumer_group: str, prefetch: int = 1) -> None:
        self.url = url
        self.topic = topic
        self.routing_key = routing_key
        self.consumer_group = consumer_group
        self.prefetch = prefetch

        self.connection: RobustConnection | None = None
        self.channel: RobustChannel | None = None
        self.exchange: AbstractExchange | None = None
        self.queue: AbstractQueue | None = None
        self.parking_queue: AbstractQueue | None = None

    async def connect(self) -> None:
        self.connection = await aio_pika.connect_robust(self.url)
        self.channel = await self.connection.channel(publisher_confirms=True)
        await self.channel.set_qos(prefetch_count=self.prefetch)

        self.exchange = await self.channel.declare_exchange(self.topic, ExchangeType.TOPIC, durable=True)

        # undecodable deliveries rejected by the consumer are parked here
        dead_letters = await self.channel.declare_exchange(self.dead_letter_exchange, ExchangeType.DIRECT, durable=True)
        self.parking_queue = await self.channel.declare_queue(self.parking_queue_name, durable=True)
        await self.parking_queue.bind(dead_letters, routing_key=self.parking_queue_name)

        # one active consumer per group queue keeps deliveries in arrival order
        self.queue = await self.channel.declare_queue(
            self.consumer_group,
            durable=True,
            arguments={
                "x-single-active-consumer": True,
                "x-dead-letter-exchange": self.dead_letter_exchange,
                "x-dead-letter-routing-key": self.parking_queue_name,
            },
        )
        await self.queue.bind(self.exchange, routing_key=self.routing_key)
        logger.info(
            "connected to broker",
            extra={"topic": self.topic, "consumer_group": self.consumer_group},
        )

    @property
    def dead_letter_exchange(self) -> str:
        return f"{self.topic}.dlx"

    @property
    def parking_queue_name(self) -> str:
        return f"{self.consumer_group}.parked"

    async def close(self) -> None:
        if self.connection:
            await self.connection.close()
            logger.info("broker connection closed")
