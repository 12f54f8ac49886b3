from typing import Any

from pydantic import BaseModel, Field


class SubscriptionRequest(BaseModel):
    # Loosely typed on purpose: malformed values are reported as 400 by the
    # intake service rather than as schema errors.
    email: str | None = Field(default=None, max_length=320)
    items: Any = None


class SubscriptionResponse(BaseModel):
    message: str
