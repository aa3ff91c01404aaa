"""Tests for the Producer."""

import asyncio
import json

import pytest
from aio_pika import DeliveryMode
from aio_pika.exceptions import AMQPError

from conftest import FakeExchange, FakeRabbit
from msgproc.errors import PublishCancelledError, PublishError
from msgproc.messaging.producer import Placement, Producer


async def test_send_publishes_envelope_and_returns_placement(producer, rabbit):
    placement = await producer.send("hello", 3)

    assert placement == Placement(exchange="msgproc", routing_key="msgproc.message", delivery_tag=1)
    message, routing_key = rabbit.exchange.published[0]
    assert routing_key == "msgproc.message"
    assert json.loads(message.body) == {"msg": "hello", "msgID": 3}
    assert message.message_id == "3"
    assert message.delivery_mode == DeliveryMode.PERSISTENT
    assert message.content_type == "application/json"


async def test_send_does_nothing_once_cancelled(producer, rabbit):
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(PublishCancelledError):
        await producer.send("hello", 1, cancel_event=cancel)

    assert rabbit.exchange.published == []


async def test_unset_cancel_event_does_not_block_send(producer, rabbit):
    await producer.send("hello", 1, cancel_event=asyncio.Event())

    assert len(rabbit.exchange.published) == 1


@pytest.mark.parametrize("error", [AMQPError("channel closed"), ConnectionError("reset by peer")])
async def test_broker_failure_raises_publish_error(error):
    producer = Producer(FakeRabbit(exchange=FakeExchange(error=error)))

    with pytest.raises(PublishError) as exc_info:
        await producer.send("hello", 1)

    assert exc_info.value.op == "producer.send"
    assert exc_info.value.__cause__ is error
    assert not isinstance(exc_info.value, PublishCancelledError)


async def test_unconfirmed_publish_times_out():
    producer = Producer(FakeRabbit(exchange=FakeExchange(hang=True)), publish_timeout=0.01)

    with pytest.raises(PublishError, match="no confirm"):
        await producer.send("hello", 1)


async def test_send_without_connection_fails():
    rabbit = FakeRabbit()
    rabbit.exchange = None

    with pytest.raises(PublishError, match="not connected"):
        await Producer(rabbit).send("hello", 1)
