"""Webhook response schemas."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    status: str = "ok"
    applied: bool = False
