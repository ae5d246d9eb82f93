"""Domain records shared by the orchestrator, notifier and HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

WEBHOOK_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Process:
    id: int
    created_by_id: int
    image_amount: int
    output_url: str
    status: str = STATUS_PROCESSING
    created_at: datetime = field(default_factory=utcnow)
    finished_processing_at: Optional[datetime] = None
    image_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class Webhook:
    id: int
    owner_id: int
    label: str
    url: str
    method: str = "POST"
    request_config: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class WebhookEvent:
    id: int
    webhook_id: int
    process_id: int
    request: Dict[str, Any]
    response: Any
    response_status: int
    created_at: datetime = field(default_factory=utcnow)
