from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WebhookMessage(BaseModel):
    """Payload delivered to a channel webhook."""

    content: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    components: List[Dict[str, Any]] = Field(default_factory=list)
    allowed_mentions: Dict[str, Any] = Field(
        default_factory=lambda: {"parse": ["users"]}
    )


class DeliveryResult(BaseModel):
    """Result of a webhook delivery attempt."""

    success: bool
    status_code: Optional[int] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
