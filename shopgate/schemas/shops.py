from __future__ import annotations

from pydantic import BaseModel


class OAuthCallbackResponse(BaseModel):
    ok: bool = True
    shop: str
    scope: str
    installedAt: str


class WebhookAckResponse(BaseModel):
    ok: bool = True
    replay: bool
