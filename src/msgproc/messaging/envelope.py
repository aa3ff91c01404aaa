from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from msgproc.errors import DecodeError


class Envelope(BaseModel):
    """Wire payload relayed from the ingest path to the processor: ``{"msg": ..., "msgID": ...}``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    content: StrictStr = Field(alias="msg")
    id: StrictInt = Field(alias="msgID")

    @classmethod
    def of(cls, content: str, msg_id: int) -> "Envelope":
        return cls(msg=content, msgID=msg_id)


def encode(envelope: Envelope) -> bytes:
    return json.dumps(envelope.model_dump(by_alias=True), ensure_ascii=False).encode("utf-8")


def decode(body: bytes) -> Envelope:
    op = "envelope.decode"
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(op, "envelope is not valid JSON", e) from e
    if not isinstance(payload, dict):
        raise DecodeError(op, f"envelope must be a JSON object, got {type(payload).__name__}")
    try:
        return Envelope.model_validate(payload)
    except PydanticValidationError as e:
        raise DecodeError(op, "envelope does not match the expected shape", e) from e
