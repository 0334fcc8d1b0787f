from __future__ import annotations

from pydantic import BaseModel, Field


class PubSubMessage(BaseModel):
    data: str
    messageId: str = Field(min_length=1)
    publishTime: str
    attributes: dict[str, str] | None = None


class PubSubEnvelope(BaseModel):
    message: PubSubMessage
    subscription: str


class PubSubAckResponse(BaseModel):
    ok: bool = True
    messageId: str
    handled: bool
