"""Persistence boundary for processes, webhooks and webhook events."""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol

from .models import Process, Webhook, WebhookEvent


class RepositoryError(Exception):
    """Base exception for persistence errors."""
    pass


class NotFoundError(RepositoryError):
    """Requested record does not exist."""
    pass


class Repository(Protocol):
    """Operations the gateway needs from the persistence layer."""

    def create_process(self, created_by_id: int, image_amount: int, output_url: str) -> Process: ...

    def get_process(self, process_id: int) -> Process: ...

    def list_processes(self, owner_id: int) -> List[Process]: ...

    def update_process(self, process_id: int, **changes: Any) -> Process: ...

    def count_processes(self) -> Dict[str, int]: ...

    def create_webhook(
        self,
        owner_id: int,
        label: str,
        url: str,
        method: str,
        request_config: Optional[Dict[str, Any]],
    ) -> Webhook: ...

    def get_webhook(self, webhook_id: int) -> Webhook: ...

    def list_webhooks(self, owner_id: int) -> List[Webhook]: ...

    def update_webhook(self, webhook_id: int, **changes: Any) -> Webhook: ...

    def delete_webhook(self, webhook_id: int) -> None: ...

    def create_webhook_event(
        self,
        webhook_id: int,
        process_id: int,
        request: Dict[str, Any],
        response: Any,
        response_status: int,
    ) -> WebhookEvent: ...

    def list_webhook_events(self, webhook_id: int) -> List[WebhookEvent]: ...


class InMemoryRepository:
    """
    Thread-safe dictionary store.

    Records handed out are copies, so callers never mutate stored state
    without going through ``update_*``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = {
            "process": itertools.count(1),
            "webhook": itertools.count(1),
            "event": itertools.count(1),
        }
        self._processes: Dict[int, Process] = {}
        self._webhooks: Dict[int, Webhook] = {}
        self._events: Dict[int, WebhookEvent] = {}

    # processes

    def create_process(self, created_by_id: int, image_amount: int, output_url: str) -> Process:
        with self._lock:
            process = Process(
                id=next(self._ids["process"]),
                created_by_id=created_by_id,
                image_amount=image_amount,
                output_url=output_url,
            )
            self._processes[process.id] = process
            return replace(process)

    def get_process(self, process_id: int) -> Process:
        with self._lock:
            process = self._processes.get(process_id)
            if process is None:
                raise NotFoundError(f"process {process_id} not found")
            return replace(process, image_urls=list(process.image_urls))

    def list_processes(self, owner_id: int) -> List[Process]:
        with self._lock:
            owned = [p for p in self._processes.values() if p.created_by_id == owner_id]
        owned.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [replace(p, image_urls=list(p.image_urls)) for p in owned]

    def update_process(self, process_id: int, **changes: Any) -> Process:
        with self._lock:
            process = self._processes.get(process_id)
            if process is None:
                raise NotFoundError(f"process {process_id} not found")
            updated = replace(process, **changes)
            self._processes[process_id] = updated
            return replace(updated)

    def count_processes(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for process in self._processes.values():
                counts[process.status] = counts.get(process.status, 0) + 1
            return counts

    # webhooks

    def create_webhook(
        self,
        owner_id: int,
        label: str,
        url: str,
        method: str,
        request_config: Optional[Dict[str, Any]],
    ) -> Webhook:
        with self._lock:
            webhook = Webhook(
                id=next(self._ids["webhook"]),
                owner_id=owner_id,
                label=label,
                url=url,
                method=method,
                request_config=request_config,
            )
            self._webhooks[webhook.id] = webhook
            return replace(webhook)

    def get_webhook(self, webhook_id: int) -> Webhook:
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            if webhook is None:
                raise NotFoundError(f"webhook {webhook_id} not found")
            return replace(webhook)

    def list_webhooks(self, owner_id: int) -> List[Webhook]:
        with self._lock:
            return [replace(w) for w in self._webhooks.values() if w.owner_id == owner_id]

    def update_webhook(self, webhook_id: int, **changes: Any) -> Webhook:
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            if webhook is None:
                raise NotFoundError(f"webhook {webhook_id} not found")
            updated = replace(webhook, **changes)
            self._webhooks[webhook_id] = updated
            return replace(updated)

    def delete_webhook(self, webhook_id: int) -> None:
        with self._lock:
            if self._webhooks.pop(webhook_id, None) is None:
                raise NotFoundError(f"webhook {webhook_id} not found")

    # webhook events

    def create_webhook_event(
        self,
        webhook_id: int,
        process_id: int,
        request: Dict[str, Any],
        response: Any,
        response_status: int,
    ) -> WebhookEvent:
        with self._lock:
            event = WebhookEvent(
                id=next(self._ids["event"]),
                webhook_id=webhook_id,
                process_id=process_id,
                request=request,
                response=response,
                response_status=response_status,
            )
            self._events[event.id] = event
            return replace(event)

    def list_webhook_events(self, webhook_id: int) -> List[WebhookEvent]:
        with self._lock:
            events = [e for e in self._events.values() if e.webhook_id == webhook_id]
        events.sort(key=lambda e: e.id, reverse=True)
        return [replace(e) for e in events]
