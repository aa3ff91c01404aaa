import asyncio

from fastapi import Request

from msgproc.services import MessageService, StatisticsService
from msgproc.storage import MessageStorage


def get_message_service(request: Request) -> MessageService:
    return request.app.state.message_service


def get_statistics_service(request: Request) -> StatisticsService:
    return request.app.state.statistics_service


def get_storage(request: Request) -> MessageStorage:
    return request.app.state.storage


def get_stop_event(request: Request) -> asyncio.Event:
    return request.app.state.stop_event
