from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from msgproc.api.routes import install_error_handlers, router as messages_router
from msgproc.config import Settings
from msgproc.consumers import MessageProcessor
from msgproc.db.session import build_engine, build_session_factory
from msgproc.logging_utils import RequestLoggingMiddleware, setup_logging
from msgproc.messaging.producer import Producer
from msgproc.messaging.rabbit import Rabbit
from msgproc.services import MessageService, StatisticsService
from msgproc.storage import MessageStorage

logger = logging.getLogger(__name__)


def build_api(lifespan=None) -> FastAPI:
    app = FastAPI(title="msgproc", version="1.0.0", lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(messages_router)
    install_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def _log_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("consumer task cancelled")
    elif task.exception() is not None:
        logger.error("consumer task crashed", exc_info=task.exception())
    else:
        logger.info("consumer task finished")


async def stop_consumer(task: asyncio.Task, grace_period: float) -> None:
    done, _ = await asyncio.wait({task}, timeout=grace_period)
    if not done:
        logger.error("consumer did not stop within grace period", extra={"grace_period": grace_period})
        task.cancel()


class GracefulServer(uvicorn.Server):
    """Sets the shared stop event as soon as shutdown begins, before requests are drained."""

    def __init__(self, config: uvicorn.Config, stop_event: asyncio.Event) -> None:
        super().__init__(config)
        self.stop_event = stop_event
        self._loop: asyncio.AbstractEventLoop | None = None

    async def serve(self, sockets=None) -> None:
        self._loop = asyncio.get_running_loop()
        await super().serve(sockets=sockets)

    def handle_exit(self, sig, frame) -> None:
        if self._loop is not None and not self.stop_event.is_set():
            logger.info("shutdown requested", extra={"signal": int(sig)})
            self._loop.call_soon_threadsafe(self.stop_event.set)
        super().handle_exit(sig, frame)


def create_app(settings: Settings) -> FastAPI:
    stop = asyncio.Event()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url)
        storage = MessageStorage(build_session_factory(engine))

        rabbit = Rabbit(
            settings.rabbitmq_url,
            topic=settings.topic,
            routing_key=settings.routing_key,
            consumer_group=settings.consumer_group,
            prefetch=settings.consumer_prefetch,
        )
        await rabbit.connect()

        producer = Producer(rabbit, publish_timeout=settings.publish_timeout_sec)
        processor = MessageProcessor(rabbit, storage, requeue_delay=settings.requeue_delay_sec)

        app.state.storage = storage
        app.state.message_service = MessageService(storage, producer)
        app.state.statistics_service = StatisticsService(storage)

        consumer = asyncio.create_task(processor.run(stop))
        consumer.add_done_callback(_log_consumer_exit)
        logger.info("msgproc started")
        try:
            yield
        finally:
            logger.info("stopping msgproc")
            stop.set()
            await stop_consumer(consumer, settings.consumer_grace_period_sec)
            await rabbit.close()
            await engine.dispose()
            logger.info("msgproc stopped")

    app = build_api(lifespan=lifespan)
    app.state.stop_event = stop
    return app


def run() -> None:
    from msgproc.config import settings

    setup_logging(settings.env)
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.http_host,
        port=settings.http_port,
        timeout_graceful_shutdown=settings.http_drain_timeout_sec,
        log_config=None,
    )
    GracefulServer(config, app.state.stop_event).run()


if __name__ == "__main__":
    run()
