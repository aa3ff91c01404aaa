from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from msgproc.api.deps import get_message_service, get_statistics_service, get_stop_event, get_storage
from msgproc.errors import PublishCancelledError, PublishError, StorageError, ValidationError
from msgproc.schemas import ErrorResponse, MessageCreate, MessageCreated, MessageRead, StatsRead
from msgproc.services import MessageService, StatisticsService
from msgproc.storage import MessageStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.post("/msg", response_model=MessageCreated)
async def create_message(
    payload: MessageCreate,
    service: MessageService = Depends(get_message_service),
    stop_event: asyncio.Event = Depends(get_stop_event),
):
    msg_id = await service.process_message(payload.msg, cancel_event=stop_event)
    return MessageCreated(msg_id=msg_id)


@router.get("/msg/{msg_id}", response_model=MessageRead)
async def get_message(msg_id: int, storage: MessageStorage = Depends(get_storage)):
    msg = await storage.get(msg_id)
    if not msg:
        raise HTTPException(status_code=404, detail="Message not found")
    return msg


@router.get("/stat", response_model=StatsRead)
async def get_stats(service: StatisticsService = Depends(get_statistics_service)):
    snapshot = await service.snapshot()
    return StatsRead.model_validate(snapshot)


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        logger.warning("request validation failed", extra={"errors": str(exc.errors())})
        return _error(400, "request validation failed")

    @app.exception_handler(ValidationError)
    async def validation_handler(_: Request, exc: ValidationError):
        logger.warning(str(exc), extra={"op": exc.op})
        return _error(400, exc.message)

    @app.exception_handler(StorageError)
    async def storage_handler(_: Request, exc: StorageError):
        logger.error(str(exc), extra={"op": exc.op})
        return _error(500, "storage failure")

    @app.exception_handler(PublishCancelledError)
    async def publish_cancelled_handler(_: Request, exc: PublishCancelledError):
        logger.warning(str(exc), extra={"op": exc.op})
        return _error(503, "service is shutting down")

    @app.exception_handler(PublishError)
    async def publish_handler(_: Request, exc: PublishError):
        logger.error(str(exc), extra={"op": exc.op})
        return _error(502, "failed to publish message")
