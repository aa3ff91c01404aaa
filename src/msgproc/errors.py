from __future__ import annotations


class MsgprocError(Exception):
    """Base error: carries the tag of the operation that failed and its cause."""

    def __init__(self, op: str, message: str, cause: BaseException | None = None) -> None:
        super().__init__(f"{op}: {message}")
        self.op = op
        self.message = message
        self.cause = cause


class ValidationError(MsgprocError):
    pass


class StorageError(MsgprocError):
    pass


class PublishError(MsgprocError):
    pass


class PublishCancelledError(PublishError):
    pass


class DecodeError(MsgprocError):
    pass


class UpdateError(MsgprocError):
    pass
