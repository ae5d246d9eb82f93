"""HTTP client delivering process notifications to user webhooks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .models import STATUS_FAILED, Process, Webhook, WebhookEvent, utcnow
from .repository import Repository

logger = logging.getLogger(__name__)

SYNTHETIC_FAILURE_STATUS = 500


def build_payload(
    process: Process,
    status: str,
    image_urls: Sequence[str],
    finished_at: datetime,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "processId": process.id,
        "status": status,
        "imageUrls": list(image_urls),
        "imageAmount": process.image_amount,
        "finishedProcessingAt": finished_at.isoformat(),
    }
    if status == STATUS_FAILED and error:
        payload["error"] = error
    return payload


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class WebhookNotifier:
    """Send one notification per webhook and log every attempt as an event."""

    def __init__(self, repository: Repository, timeout: Optional[float] = 10.0):
        """
        Initialize webhook notifier.

        Args:
            repository: Store receiving one WebhookEvent per delivery attempt
            timeout: Default HTTP timeout in seconds, ``None`` disables it
        """
        self.repository = repository
        self.timeout = timeout

    async def notify(
        self,
        process: Process,
        webhooks: Sequence[Webhook],
        image_urls: Sequence[str],
        status: str,
        finished_at: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> List[WebhookEvent]:
        """
        Deliver the completion payload to every webhook concurrently.

        Delivery failures are recorded, never raised. Returns the created
        events in webhook order.
        """
        if not webhooks:
            return []
        payload = build_payload(process, status, image_urls, finished_at or utcnow(), error)
        return list(
            await asyncio.gather(*(self.deliver(webhook, process.id, payload) for webhook in webhooks))
        )

    def build_request(self, webhook: Webhook, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the webhook's stored request config with the JSON payload."""
        config = dict(webhook.request_config or {})
        headers = {"Content-Type": "application/json"}
        extra_headers = config.get("headers")
        if isinstance(extra_headers, dict):
            headers.update({str(k): str(v) for k, v in extra_headers.items()})
        request: Dict[str, Any] = {
            "method": webhook.method.upper(),
            "url": webhook.url,
            "headers": headers,
            "data": payload,
        }
        params = config.get("params")
        if isinstance(params, dict):
            request["params"] = params
        request["timeout"] = self._timeout_for(webhook, config.get("timeout"))
        return request

    def _timeout_for(self, webhook: Webhook, timeout_ms: Any) -> Optional[float]:
        """Convert an axios-style millisecond timeout, 0 meaning none."""
        if timeout_ms is None:
            return self.timeout
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)) or timeout_ms < 0:
            logger.warning(f"Webhook {webhook.id} has an invalid timeout {timeout_ms!r}, using the default")
            return self.timeout
        if timeout_ms == 0:
            return None
        return timeout_ms / 1000.0

    async def deliver(self, webhook: Webhook, process_id: int, payload: Dict[str, Any]) -> WebhookEvent:
        request = self.build_request(webhook, payload)
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    request["method"],
                    request["url"],
                    json=request["data"],
                    headers=request["headers"],
                    params=request.get("params"),
                    timeout=request.get("timeout"),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(
                f"Webhook {webhook.id} returned status {status_code} for process {process_id}"
            )
            return self._record(
                webhook, process_id, request, {"error": f"Request failed with status code {status_code}"}, status_code
            )
        except Exception as e:  # noqa: BLE001
            logger.error(f"Webhook {webhook.id} delivery error for process {process_id}: {e}")
            return self._record(
                webhook, process_id, request, {"error": str(e) or type(e).__name__}, SYNTHETIC_FAILURE_STATUS
            )

        logger.info(f"Webhook {webhook.id} delivered for process {process_id} ({response.status_code})")
        return self._record(webhook, process_id, request, _response_body(response), response.status_code)

    def _record(
        self,
        webhook: Webhook,
        process_id: int,
        request: Dict[str, Any],
        response: Any,
        status_code: int,
    ) -> WebhookEvent:
        return self.repository.create_webhook_event(
            webhook_id=webhook.id,
            process_id=process_id,
            request=request,
            response=response,
            response_status=status_code,
        )
